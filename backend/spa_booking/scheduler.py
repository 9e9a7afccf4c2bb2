"""
In-process scheduling of the day-ahead reminder job.

``create_reminder_scheduler`` returns an APScheduler ``BackgroundScheduler``
with the reminder job registered but not started; the caller starts it and
shuts it down. Each run opens its own session.
"""

import logging
from datetime import timedelta
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from spa_booking.bootstrap import build_appointment_service
from spa_booking.core import config
from spa_booking.db.session import SessionLocal
from spa_booking.services.notification_service import AppointmentNotifier
from spa_booking.services.reminder_service import REMINDER_TOLERANCE, ReminderService

logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "day_ahead_reminders"

# A run every window width at most, so no appointment slips between two runs
MAX_REMINDER_INTERVAL = 2 * REMINDER_TOLERANCE


def run_reminders(
    notifier: AppointmentNotifier, session_factory: Optional[Callable] = None
) -> int:
    """Scheduled job: queue the reminders that are due right now.

    Errors are logged and swallowed so the scheduler keeps the job alive.
    Returns the number of reminders queued (0 on failure).
    """
    session = (session_factory or SessionLocal)()
    try:
        service = build_appointment_service(session, notifier)
        queued = ReminderService(service, notifier).send_due_reminders()
        logger.info(
            "Scheduled reminder run completed",
            extra={"context": {"job": REMINDER_JOB_ID, "queued": queued}},
        )
        return queued
    except Exception as e:
        session.rollback()
        logger.error(
            "Error in scheduled reminder run",
            extra={
                "context": {
                    "job": REMINDER_JOB_ID,
                    "status": "error",
                    "error": str(e),
                }
            },
            exc_info=True,
        )
        return 0
    finally:
        session.close()


def create_reminder_scheduler(
    notifier: AppointmentNotifier,
    interval_minutes: Optional[float] = None,
    session_factory: Optional[Callable] = None,
) -> BackgroundScheduler:
    """Build a scheduler that runs ``run_reminders`` every few minutes.

    Raises:
        ValueError: If the interval is not positive or is wider than the
            reminder window.
    """
    if interval_minutes is None:
        interval_minutes = config.REMINDER_INTERVAL_MINUTES
    interval = timedelta(minutes=interval_minutes)
    if interval <= timedelta(0) or interval > MAX_REMINDER_INTERVAL:
        raise ValueError(
            f"Reminder interval must be between 0 and "
            f"{MAX_REMINDER_INTERVAL.total_seconds() / 60:g} minutes, "
            f"got {interval_minutes}"
        )

    tz_name = str(config.BUSINESS_TZ)
    scheduler = BackgroundScheduler(timezone=tz_name)
    scheduler.add_job(
        run_reminders,
        trigger=IntervalTrigger(minutes=interval_minutes, timezone=tz_name),
        args=[notifier, session_factory],
        id=REMINDER_JOB_ID,
        name="Send day-ahead appointment reminders",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        "Reminder job registered",
        extra={
            "context": {
                "job_id": REMINDER_JOB_ID,
                "interval_minutes": interval_minutes,
                "timezone": tz_name,
            }
        },
    )
    return scheduler
