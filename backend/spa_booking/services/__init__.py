# Services package initialization
# This file makes the services directory a Python package
# and allows importing service modules

from . import appointment_service
from . import availability_catalog
from . import conflict_counter
from . import notification_service
from . import reminder_service
from . import schedule_validator

__all__ = [
    "appointment_service",
    "availability_catalog",
    "conflict_counter",
    "notification_service",
    "reminder_service",
    "schedule_validator",
]
