"""
Domain entities - Pure business logic, no framework dependencies.

These dataclasses are the representation the services work with,
independent of the SQLAlchemy models and of any transport layer.
"""

from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional


class AppointmentStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    CARD = "Card"
    TRANSFER = "Transfer"
    OTHER = "Other"


class DayOfWeek(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"


# Appointments in these states occupy capacity
ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}
    ),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}


def can_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    """Return True if ``current -> new`` is a legal status change."""
    return current == new or new in ALLOWED_TRANSITIONS[current]


@dataclass
class Client:
    """Domain entity representing a spa client."""

    id: Optional[int] = None
    name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Name is required")
        if self.email and "@" not in self.email:
            raise ValueError("Invalid email format")


@dataclass
class Staff:
    """Domain entity representing a staff member who takes appointments."""

    id: Optional[int] = None
    name: str = ""
    phone: Optional[str] = None
    specialty: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Name is required")


@dataclass
class Treatment:
    """Domain entity for a bookable service."""

    id: Optional[int] = None
    name: str = ""
    duration_minutes: int = 0
    price: Decimal = Decimal("0")

    def __post_init__(self):
        if not self.name:
            raise ValueError("Treatment name is required")
        if self.price < 0:
            raise ValueError("Price cannot be negative")


@dataclass
class AvailabilityBlock:
    """A recurring weekly window in which a staff member takes bookings.

    ``start_time``/``end_time`` are zero-padded ``HH:MM`` strings in the
    business timezone and describe the half-open interval ``[start, end)``.
    """

    id: Optional[int] = None
    staff_id: int = 0
    day_of_week: DayOfWeek = DayOfWeek.MONDAY
    start_time: str = "00:00"
    end_time: str = "00:00"
    max_concurrent: int = 1

    def __post_init__(self):
        if self.staff_id <= 0:
            raise ValueError("Valid staff_id is required")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.start_time >= self.end_time:
            raise ValueError("Start time must be before end time")

    @property
    def start(self) -> time:
        return datetime.strptime(self.start_time, "%H:%M").time()

    @property
    def end(self) -> time:
        return datetime.strptime(self.end_time, "%H:%M").time()

    def contains(self, start_local: time, end_local: time) -> bool:
        """True if the local window lies entirely inside this block."""
        return start_local >= self.start and end_local <= self.end

    def overlaps(self, other: "AvailabilityBlock") -> bool:
        return (
            self.staff_id == other.staff_id
            and self.day_of_week == other.day_of_week
            and self.start < other.end
            and other.start < self.end
        )


@dataclass
class Appointment:
    """Domain entity for Appointment business logic.

    ``client``/``staff``/``treatment`` are only populated when the caller
    asked the repository to hydrate them.
    """

    id: Optional[int] = None
    client_id: int = 0
    staff_id: int = 0
    treatment_id: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    price: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    notes: Optional[str] = None
    reminder_sent: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    client: Optional[Client] = None
    staff: Optional[Staff] = None
    treatment: Optional[Treatment] = None

    def __post_init__(self):
        """Validate business rules."""
        if self.client_id <= 0:
            raise ValueError("Valid client_id is required")
        if self.staff_id <= 0:
            raise ValueError("Valid staff_id is required")
        if self.treatment_id <= 0:
            raise ValueError("Valid treatment_id is required")
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        if self.price is not None and self.price < 0:
            raise ValueError("Price cannot be negative")

    @property
    def duration_minutes(self) -> int:
        if not self.start_time or not self.end_time:
            return 0
        return int((self.end_time - self.start_time).total_seconds() / 60)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
