"""
Data Transfer Objects (DTOs) and validation schemas.

Requests coerce raw values (strings from a form or JSON body) into domain
types in ``validate()`` and raise ``ValidationFailure`` with reason
``"invalid request"`` when a field is unusable.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import FrozenSet, List, Optional

from spa_booking.core.exceptions import ValidationFailure
from spa_booking.domain.entities import (
    Appointment,
    AppointmentStatus,
    AvailabilityBlock,
    DayOfWeek,
    PaymentMethod,
    PaymentStatus,
)
from spa_booking.utils.time_utils import normalize_hhmm

INVALID_REQUEST = "invalid request"

ALL_RELATIONS: FrozenSet[str] = frozenset({"client", "staff", "treatment"})

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _invalid(detail: str) -> ValidationFailure:
    return ValidationFailure(INVALID_REQUEST, detail)


def _coerce_enum(enum_cls, value, field_name: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise _invalid(f"{field_name} must be one of: {allowed}") from None


def _coerce_price(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, str) and value.strip() == "":
        return None
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise _invalid("price must be a number") from None
    if price < 0:
        raise _invalid("price must not be less than 0")
    return price


def _require_id(value, field_name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise _invalid(f"Valid {field_name} is required")


def _require_datetime(value, field_name: str) -> None:
    if not isinstance(value, datetime):
        raise _invalid(f"{field_name} must be a datetime")


def coerce_include(include) -> FrozenSet[str]:
    """Validate relation names for ``include`` parameters."""
    names = frozenset(include or ())
    unknown = names - ALL_RELATIONS
    if unknown:
        raise _invalid(f"Unknown relations to include: {', '.join(sorted(unknown))}")
    return names


@dataclass
class AppointmentCreateRequest:
    """DTO for booking requests."""

    client_id: int
    staff_id: int
    treatment_id: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus = AppointmentStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    price: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        """Validate field shapes and coerce enums and price."""
        _require_id(self.client_id, "client_id")
        _require_id(self.staff_id, "staff_id")
        _require_id(self.treatment_id, "treatment_id")
        _require_datetime(self.start_time, "start_time")
        _require_datetime(self.end_time, "end_time")
        self.status = _coerce_enum(AppointmentStatus, self.status, "status")
        self.payment_status = _coerce_enum(
            PaymentStatus, self.payment_status, "payment_status"
        )
        self.payment_method = _coerce_enum(
            PaymentMethod, self.payment_method, "payment_method"
        )
        self.price = _coerce_price(self.price)
        if self.status is None:
            raise _invalid("status is required")
        if self.payment_status is None:
            raise _invalid("payment_status is required")


@dataclass
class AppointmentUpdateRequest:
    """DTO for partial appointment updates. ``None`` means "unchanged"."""

    client_id: Optional[int] = None
    staff_id: Optional[int] = None
    treatment_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[AppointmentStatus] = None
    payment_status: Optional[PaymentStatus] = None
    price: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        for name in ("client_id", "staff_id", "treatment_id"):
            if getattr(self, name) is not None:
                _require_id(getattr(self, name), name)
        for name in ("start_time", "end_time"):
            if getattr(self, name) is not None:
                _require_datetime(getattr(self, name), name)
        self.status = _coerce_enum(AppointmentStatus, self.status, "status")
        self.payment_status = _coerce_enum(
            PaymentStatus, self.payment_status, "payment_status"
        )
        self.payment_method = _coerce_enum(
            PaymentMethod, self.payment_method, "payment_method"
        )
        self.price = _coerce_price(self.price)


class AppointmentSortBy(str, Enum):
    ID = "id"
    START_TIME = "start_time"
    CLIENT_NAME = "client_name"
    STAFF_NAME = "staff_name"
    STATUS = "status"
    PRICE = "price"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class AppointmentQuery:
    """Every filter, sort key and paging option ``list`` understands.

    ``start_date``/``end_date`` are business-local dates, both inclusive.
    ``search`` matches client, staff or treatment names and notes,
    case-insensitively. ``include`` names the relations to hydrate and is
    empty by default.
    """

    client_id: Optional[int] = None
    staff_id: Optional[int] = None
    status: Optional[AppointmentStatus] = None
    payment_status: Optional[PaymentStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    sort_by: AppointmentSortBy = AppointmentSortBy.START_TIME
    sort_order: SortOrder = SortOrder.DESC
    include: FrozenSet[str] = field(default_factory=frozenset)

    def validate(self) -> None:
        if self.client_id is not None:
            _require_id(self.client_id, "client_id")
        if self.staff_id is not None:
            _require_id(self.staff_id, "staff_id")
        self.status = _coerce_enum(AppointmentStatus, self.status, "status")
        self.payment_status = _coerce_enum(
            PaymentStatus, self.payment_status, "payment_status"
        )
        self.sort_by = _coerce_enum(AppointmentSortBy, self.sort_by, "sort_by")
        self.sort_order = _coerce_enum(
            SortOrder,
            self.sort_order.lower() if isinstance(self.sort_order, str) else self.sort_order,
            "sort_order",
        )
        if not isinstance(self.page, int) or self.page < 1:
            raise _invalid("page must be an integer >= 1")
        if not isinstance(self.limit, int) or not 1 <= self.limit <= MAX_PAGE_SIZE:
            raise _invalid(f"limit must be an integer between 1 and {MAX_PAGE_SIZE}")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise _invalid("start_date must not be after end_date")
        if self.search is not None:
            self.search = self.search.strip() or None
        self.include = coerce_include(self.include)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class AppointmentResponse:
    """DTO for appointment responses."""

    id: int
    client_id: int
    staff_id: int
    treatment_id: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    payment_status: PaymentStatus
    price: Optional[Decimal]
    payment_method: Optional[PaymentMethod]
    notes: Optional[str]
    client_name: Optional[str] = None
    staff_name: Optional[str] = None
    treatment_name: Optional[str] = None

    @classmethod
    def from_domain(cls, appointment: Appointment) -> "AppointmentResponse":
        """Create response from domain entity."""
        return cls(
            id=appointment.id,
            client_id=appointment.client_id,
            staff_id=appointment.staff_id,
            treatment_id=appointment.treatment_id,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            status=appointment.status,
            payment_status=appointment.payment_status,
            price=appointment.price,
            payment_method=appointment.payment_method,
            notes=appointment.notes,
            client_name=appointment.client.name if appointment.client else None,
            staff_name=appointment.staff.name if appointment.staff else None,
            treatment_name=(
                appointment.treatment.name if appointment.treatment else None
            ),
        )


@dataclass
class AppointmentPage:
    """One page of ``list`` results plus the total number of matches."""

    items: List[AppointmentResponse]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit


@dataclass
class AvailabilityBlockCreateRequest:
    """DTO for availability block creation."""

    staff_id: int
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    max_concurrent: int = 1

    def validate(self) -> None:
        _require_id(self.staff_id, "staff_id")
        self.day_of_week = _coerce_enum(DayOfWeek, self.day_of_week, "day_of_week")
        if self.day_of_week is None:
            raise _invalid("day_of_week is required")
        self.start_time = _normalize_time(self.start_time, "start_time")
        self.end_time = _normalize_time(self.end_time, "end_time")
        check_block_shape(self.start_time, self.end_time, self.max_concurrent)


@dataclass
class AvailabilityBlockUpdateRequest:
    """DTO for partial availability block updates."""

    staff_id: Optional[int] = None
    day_of_week: Optional[DayOfWeek] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    max_concurrent: Optional[int] = None

    def validate(self) -> None:
        if self.staff_id is not None:
            _require_id(self.staff_id, "staff_id")
        self.day_of_week = _coerce_enum(DayOfWeek, self.day_of_week, "day_of_week")
        if self.start_time is not None:
            self.start_time = _normalize_time(self.start_time, "start_time")
        if self.end_time is not None:
            self.end_time = _normalize_time(self.end_time, "end_time")


def _normalize_time(value, field_name: str) -> str:
    try:
        return normalize_hhmm(value)
    except ValueError:
        raise _invalid(f"{field_name} must be in HH:MM format") from None


def check_block_shape(start_time: str, end_time: str, max_concurrent) -> None:
    """Shared checks for the effective values of a block."""
    if start_time >= end_time:
        raise _invalid("start_time must be before end_time")
    if (
        not isinstance(max_concurrent, int)
        or isinstance(max_concurrent, bool)
        or max_concurrent < 1
    ):
        raise _invalid("max_concurrent must be an integer >= 1")


@dataclass
class AvailabilityBlockResponse:
    """DTO for availability block responses."""

    id: int
    staff_id: int
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    max_concurrent: int

    @classmethod
    def from_domain(cls, block: AvailabilityBlock) -> "AvailabilityBlockResponse":
        return cls(
            id=block.id,
            staff_id=block.staff_id,
            day_of_week=block.day_of_week,
            start_time=block.start_time,
            end_time=block.end_time,
            max_concurrent=block.max_concurrent,
        )
