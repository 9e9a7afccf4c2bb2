# Repositories package initialization
# SQLAlchemy implementations of the domain interfaces

from .appointment_repo import AppointmentRepository
from .availability_repo import AvailabilityRepository
from .client_repo import ClientRepository
from .staff_repo import StaffRepository
from .treatment_repo import TreatmentRepository

__all__ = [
    "AppointmentRepository",
    "AvailabilityRepository",
    "ClientRepository",
    "StaffRepository",
    "TreatmentRepository",
]
