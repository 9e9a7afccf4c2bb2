"""
Abstract interfaces for repositories and external collaborators.

These interfaces define contracts without implementation details,
enabling dependency injection and easier testing.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import TYPE_CHECKING, Collection, List, Optional, Tuple

from .entities import (
    Appointment,
    AppointmentStatus,
    AvailabilityBlock,
    Client,
    DayOfWeek,
    Staff,
    Treatment,
)

if TYPE_CHECKING:
    from spa_booking.schemas.dtos import AppointmentQuery


class IClientReader(ABC):
    """Interface for client read operations."""

    @abstractmethod
    def get_by_id(self, client_id: int) -> Optional[Client]:
        """Get client by ID."""
        pass


class IStaffReader(ABC):
    """Interface for staff read operations."""

    @abstractmethod
    def get_by_id(self, staff_id: int) -> Optional[Staff]:
        """Get staff member by ID."""
        pass


class ITreatmentReader(ABC):
    """Interface for treatment read operations."""

    @abstractmethod
    def get_by_id(self, treatment_id: int) -> Optional[Treatment]:
        """Get treatment by ID."""
        pass


class IAvailabilityReader(ABC):
    """Interface for availability read operations."""

    @abstractmethod
    def find_by_staff_and_day(
        self, staff_id: int, day_of_week: DayOfWeek
    ) -> List[AvailabilityBlock]:
        """Get a staff member's blocks for one weekday, ordered by start time."""
        pass

    @abstractmethod
    def get_by_id(self, block_id: int) -> Optional[AvailabilityBlock]:
        """Get availability block by ID."""
        pass

    @abstractmethod
    def get_by_staff(self, staff_id: int) -> List[AvailabilityBlock]:
        """Get every block of a staff member."""
        pass


class IAvailabilityWriter(ABC):
    """Interface for availability write operations."""

    @abstractmethod
    def create(self, block: AvailabilityBlock) -> AvailabilityBlock:
        """Create a new availability block."""
        pass

    @abstractmethod
    def update(self, block: AvailabilityBlock) -> AvailabilityBlock:
        """Update an existing availability block."""
        pass

    @abstractmethod
    def delete(self, block_id: int) -> bool:
        """Delete an availability block."""
        pass


class IAvailabilityRepository(IAvailabilityReader, IAvailabilityWriter):
    """Complete availability repository interface."""

    pass


class IAppointmentReader(ABC):
    """Interface for appointment read operations."""

    @abstractmethod
    def get_by_id(
        self, appointment_id: int, include: Collection[str] = ()
    ) -> Optional[Appointment]:
        """Get appointment by ID, hydrating the relations named in ``include``."""
        pass

    @abstractmethod
    def get_by_client_id(
        self, client_id: int, include: Collection[str] = ()
    ) -> List[Appointment]:
        """Get all appointments for a client, newest first."""
        pass

    @abstractmethod
    def list(self, query: "AppointmentQuery") -> Tuple[List[Appointment], int]:
        """Return one page of appointments and the total match count."""
        pass

    @abstractmethod
    def count_overlapping(
        self,
        staff_id: int,
        start: datetime,
        end: datetime,
        statuses: Collection[AppointmentStatus],
        exclude_appointment_id: Optional[int] = None,
    ) -> int:
        """Count appointments of ``staff_id`` in ``statuses`` overlapping ``[start, end)``."""
        pass

    @abstractmethod
    def get_reminders_due(
        self, window_start: datetime, window_end: datetime
    ) -> List[Appointment]:
        """Confirmed appointments starting in the window that have no reminder yet."""
        pass


class IAppointmentWriter(ABC):
    """Interface for appointment write operations."""

    @abstractmethod
    def create(self, appointment: Appointment) -> Appointment:
        """Create a new appointment."""
        pass

    @abstractmethod
    def update(self, appointment: Appointment) -> Appointment:
        """Update an existing appointment."""
        pass

    @abstractmethod
    def delete(self, appointment_id: int) -> bool:
        """Hard-delete an appointment."""
        pass

    @abstractmethod
    def mark_reminder_sent(self, appointment_id: int) -> bool:
        """Flag the appointment's reminder as delivered."""
        pass

    @abstractmethod
    def get_for_update(self, appointment_id: int) -> Optional[Appointment]:
        """Fresh, row-locked read of an appointment; call inside a booking scope."""
        pass

    @abstractmethod
    def staff_booking_scope(self, *staff_ids: int) -> AbstractContextManager:
        """Serialize check-then-write bookings for the given staff members.

        Everything executed inside the scope observes a state no other
        booking for the same staff members can change until the scope exits.
        """
        pass


class IAppointmentRepository(IAppointmentReader, IAppointmentWriter):
    """Complete appointment repository interface."""

    pass


class INotificationSender(ABC):
    """Interface for an outbound messaging provider."""

    @abstractmethod
    def send(self, to: str, text: str) -> None:
        """Deliver one text message; raise NotificationError on failure."""
        pass


class IInvoiceRenderer(ABC):
    """Interface for invoice document rendering (provided elsewhere)."""

    @abstractmethod
    def render(self, appointment: Appointment) -> bytes:
        """Render the invoice for a completed appointment."""
        pass


class IMetricsAggregator(ABC):
    """Interface for income/metrics aggregation (provided elsewhere)."""

    @abstractmethod
    def record_completed(self, appointment: Appointment) -> None:
        """Account for a completed and paid appointment."""
        pass
