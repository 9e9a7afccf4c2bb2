"""
Outbound appointment notifications over WhatsApp.

Delivery is decoupled from booking: ``AppointmentNotifier`` renders the
messages of one booking event and hands them to ``NotificationDispatcher``,
whose single worker thread sends them through an ``INotificationSender``
paced by a ``TokenBucket``. Sends are at-most-once. A failed message is
logged and dropped; it never reaches the caller and never undoes the booking.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

import requests

from spa_booking.core import config
from spa_booking.core.exceptions import NotificationError
from spa_booking.domain.entities import Appointment
from spa_booking.domain.interfaces import INotificationSender
from spa_booking.utils.time_utils import format_for_message

logger = logging.getLogger(__name__)


class TokenBucket:
    """Classic token bucket: ``rate_per_minute`` refill, at most ``burst`` tokens.

    ``clock`` and ``sleep`` are injectable so tests can run without waiting.
    """

    def __init__(
        self,
        rate_per_minute: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate_per_minute <= 0:
            raise ValueError("rate_per_minute must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.interval = 60.0 / rate_per_minute  # seconds per token
        self.capacity = float(burst)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._last = now
        self._tokens = min(self.capacity, self._tokens + elapsed / self.interval)

    def try_acquire(self) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    def acquire(self) -> None:
        """Block until a token is available, then take it."""
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait = (1 - self._tokens) * self.interval
            self._sleep(wait)


@dataclass(frozen=True)
class NotificationMessage:
    to: str
    text: str
    kind: str = "custom"


class NotificationDispatcher:
    """Queue plus one daemon worker that delivers message groups in order.

    A group (the messages of one booking event) is queued as a single item,
    so its messages are never interleaved with another event's.
    """

    _STOP = object()

    def __init__(
        self,
        sender: INotificationSender,
        bucket: Optional[TokenBucket] = None,
        enabled: Optional[bool] = None,
    ):
        self.sender = sender
        self.bucket = bucket or TokenBucket(
            config.NOTIFY_RATE_PER_MINUTE, config.NOTIFY_BURST
        )
        self.enabled = config.NOTIFICATIONS_ENABLED if enabled is None else enabled
        self._queue: "queue.Queue" = queue.Queue()
        self._pending = 0
        self._idle = threading.Condition()
        self._worker: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()
        self.sent_count = 0
        self.failed_count = 0

    def start(self) -> None:
        with self._start_lock:
            if self._worker and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._run, name="notification-dispatcher", daemon=True
            )
            self._worker.start()

    def enqueue(self, messages: Iterable[NotificationMessage]) -> int:
        """Queue one group of messages; returns how many were queued."""
        group: List[NotificationMessage] = list(messages)
        if not group:
            return 0
        if not self.enabled:
            logger.info(
                "Notifications disabled; dropping messages",
                extra={"context": {"kinds": [m.kind for m in group]}},
            )
            return 0

        self.start()
        with self._idle:
            self._pending += 1
        self._queue.put(group)
        return len(group)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued group has been handled.

        Returns False if ``timeout`` elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending:
                if deadline is None:
                    self._idle.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        """Let the worker finish what is queued, then end it."""
        if not self._worker or not self._worker.is_alive():
            return
        self._queue.put(self._STOP)
        self._worker.join(timeout)

    def _run(self) -> None:
        while True:
            group = self._queue.get()
            if group is self._STOP:
                break
            try:
                for message in group:
                    self._deliver(message)
            finally:
                with self._idle:
                    self._pending -= 1
                    self._idle.notify_all()

    def _deliver(self, message: NotificationMessage) -> None:
        self.bucket.acquire()
        try:
            self.sender.send(message.to, message.text)
        except Exception as e:
            self.failed_count += 1
            logger.error(
                f"Failed to send {message.kind} notification: {e}",
                extra={"context": {"kind": message.kind, "error": str(e)}},
                exc_info=not isinstance(e, NotificationError),
            )
            return
        self.sent_count += 1
        logger.info(
            "Notification sent",
            extra={"context": {"kind": message.kind}},
        )


class WhatsAppSender(INotificationSender):
    """WasenderAPI client: POSTs ``{"to", "text"}`` with a Bearer token."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_url = api_url or config.WASENDER_API_URL
        self.api_key = api_key or config.WASENDER_API_KEY
        self.timeout = timeout or config.NOTIFY_HTTP_TIMEOUT

        if not self.api_url or not self.api_key:
            logger.error("WASENDER_API_URL or WASENDER_API_KEY is not configured")
            raise NotificationError(
                "WhatsApp configuration incomplete: set WASENDER_API_URL and WASENDER_API_KEY"
            )

    def send(self, to: str, text: str) -> None:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        logger.debug(
            f"Sending WhatsApp message: {text[:50]}...",
            extra={"context": {"to": to}},
        )
        try:
            response = requests.post(
                self.api_url,
                json={"to": to, "text": text},
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            body = e.response.text[:200] if e.response is not None else ""
            raise NotificationError(
                f"WhatsApp provider rejected message to {to}: {e} {body}".strip()
            ) from e
        except requests.RequestException as e:
            raise NotificationError(f"WhatsApp provider unreachable: {e}") from e


class AppointmentNotifier:
    """Renders appointment messages and queues them on the dispatcher.

    Appointments passed in must have ``client``, ``staff`` and ``treatment``
    hydrated. Recipients without a phone number are skipped.
    """

    def __init__(
        self, dispatcher: NotificationDispatcher, business_name: Optional[str] = None
    ):
        self.dispatcher = dispatcher
        self.business_name = business_name or config.BUSINESS_NAME

    def notify(self, *messages: Optional[NotificationMessage]) -> int:
        return self.dispatcher.enqueue(m for m in messages if m is not None)

    def new_appointment_to_staff(self, appointment: Appointment):
        staff, client, treatment = self._parties(appointment)
        return self._message(
            staff.phone,
            "new_appointment",
            appointment,
            f"Hello {staff.name}! You have a NEW APPOINTMENT "
            f"({appointment.status.value}) with {client.name} for {treatment.name} "
            f"on {format_for_message(appointment.start_time)}.",
        )

    def confirmation_to_client(self, appointment: Appointment):
        staff, client, treatment = self._parties(appointment)
        return self._message(
            client.phone,
            "confirmation",
            appointment,
            f"Hello {client.name}! Your appointment at {self.business_name} has been "
            f"CONFIRMED for {treatment.name} with {staff.name} on "
            f"{format_for_message(appointment.start_time)}. We look forward to seeing you!",
        )

    def update_to_staff(self, appointment: Appointment):
        staff, client, treatment = self._parties(appointment)
        return self._message(
            staff.phone,
            "update",
            appointment,
            f"Hello {staff.name}! The appointment with {client.name} for "
            f"{treatment.name} on {format_for_message(appointment.start_time)} "
            f"has been UPDATED to status: {appointment.status.value}.",
        )

    def cancellation_to_staff(self, appointment: Appointment):
        staff, client, treatment = self._parties(appointment)
        return self._message(
            staff.phone,
            "cancellation",
            appointment,
            f"Hello {staff.name}! The appointment of {client.name} for "
            f"{treatment.name} on {format_for_message(appointment.start_time)} "
            f"has been CANCELLED.",
        )

    def reminder_to_client(self, appointment: Appointment):
        staff, client, treatment = self._parties(appointment)
        return self._message(
            client.phone,
            "reminder",
            appointment,
            f"Hello {client.name}! This is a reminder of your appointment at "
            f"{self.business_name} for {treatment.name} with {staff.name} on "
            f"{format_for_message(appointment.start_time)}.",
        )

    def _parties(self, appointment: Appointment):
        if not (appointment.staff and appointment.client and appointment.treatment):
            raise ValueError(
                f"Appointment {appointment.id} must be loaded with client, staff and treatment"
            )
        return appointment.staff, appointment.client, appointment.treatment

    def _message(
        self, phone: Optional[str], kind: str, appointment: Appointment, text: str
    ) -> Optional[NotificationMessage]:
        if not phone:
            logger.warning(
                f"Skipping {kind} notification: recipient has no phone number",
                extra={"context": {"appointment_id": appointment.id, "kind": kind}},
            )
            return None
        return NotificationMessage(to=phone, text=text, kind=kind)
