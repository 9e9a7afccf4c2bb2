"""
Day-ahead reminders for confirmed appointments.

Meant to be run periodically, either in-process through
``spa_booking.scheduler`` (``python manage.py run-scheduler``) or with
``python manage.py send-reminders`` from cron every few minutes. Each run
picks up confirmed appointments starting roughly 24 hours from now that
have not been reminded yet.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from spa_booking.core.logging_config import log_performance
from spa_booking.services.appointment_service import AppointmentService
from spa_booking.services.notification_service import AppointmentNotifier

logger = logging.getLogger(__name__)

REMINDER_LEAD = timedelta(hours=24)
REMINDER_TOLERANCE = timedelta(minutes=5)


class ReminderService:
    def __init__(
        self, appointment_service: AppointmentService, notifier: AppointmentNotifier
    ):
        self.appointment_service = appointment_service
        self.notifier = notifier

    def send_due_reminders(self, now: Optional[datetime] = None) -> int:
        """Queue reminders for the current window and flag them as sent.

        Returns the number of reminders queued.
        """
        started = time.perf_counter()
        now = now or datetime.now(timezone.utc)
        window_start = now + REMINDER_LEAD - REMINDER_TOLERANCE
        window_end = now + REMINDER_LEAD + REMINDER_TOLERANCE

        due = self.appointment_service.find_due_reminders(window_start, window_end)
        queued = 0
        for appointment in due:
            message = self.notifier.reminder_to_client(appointment)
            if message is None:
                logger.debug(
                    "No reminder rendered",
                    extra={"context": {"appointment_id": appointment.id}},
                )
                continue
            self.notifier.notify(message)
            self.appointment_service.mark_reminder_sent(appointment.id)
            queued += 1

        log_performance(
            "send_due_reminders",
            (time.perf_counter() - started) * 1000,
            window_start=window_start.isoformat(),
            due=len(due),
            queued=queued,
        )
        return queued
