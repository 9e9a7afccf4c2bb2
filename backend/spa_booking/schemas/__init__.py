"""
Schemas package - Data Transfer Objects and validation.

This package contains the request, query and response contracts
of the scheduling core.
"""

from .dtos import (
    ALL_RELATIONS,
    AppointmentCreateRequest,
    AppointmentPage,
    AppointmentQuery,
    AppointmentResponse,
    AppointmentSortBy,
    AppointmentUpdateRequest,
    AvailabilityBlockCreateRequest,
    AvailabilityBlockResponse,
    AvailabilityBlockUpdateRequest,
    SortOrder,
)

__all__ = [
    # Appointment DTOs
    "AppointmentCreateRequest",
    "AppointmentUpdateRequest",
    "AppointmentResponse",
    "AppointmentPage",
    # Listing options
    "AppointmentQuery",
    "AppointmentSortBy",
    "SortOrder",
    "ALL_RELATIONS",
    # Availability DTOs
    "AvailabilityBlockCreateRequest",
    "AvailabilityBlockUpdateRequest",
    "AvailabilityBlockResponse",
]
