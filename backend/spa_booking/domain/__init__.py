"""
Domain package - Pure business logic layer.

This package contains:
- entities.py: Domain entities, enums and the status transition table
- interfaces.py: Repository and collaborator contracts
"""

from .entities import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    AvailabilityBlock,
    Client,
    DayOfWeek,
    PaymentMethod,
    PaymentStatus,
    Staff,
    Treatment,
)
from .interfaces import (
    IAppointmentReader,
    IAppointmentRepository,
    IAppointmentWriter,
    IAvailabilityReader,
    IAvailabilityRepository,
    IAvailabilityWriter,
    IClientReader,
    IInvoiceRenderer,
    IMetricsAggregator,
    INotificationSender,
    IStaffReader,
    ITreatmentReader,
)

__all__ = [
    # Domain entities
    "Appointment",
    "AvailabilityBlock",
    "Client",
    "Staff",
    "Treatment",
    # Enums
    "AppointmentStatus",
    "PaymentStatus",
    "PaymentMethod",
    "DayOfWeek",
    "ACTIVE_STATUSES",
    # Repository interfaces
    "IAppointmentRepository",
    "IAvailabilityRepository",
    "IClientReader",
    "IStaffReader",
    "ITreatmentReader",
    # Segregated interfaces
    "IAppointmentReader",
    "IAppointmentWriter",
    "IAvailabilityReader",
    "IAvailabilityWriter",
    # External collaborators
    "INotificationSender",
    "IInvoiceRenderer",
    "IMetricsAggregator",
]
