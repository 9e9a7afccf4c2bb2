"""Composition root: wires services to the SQLAlchemy repositories."""

from typing import Optional

from spa_booking.domain.interfaces import IInvoiceRenderer, IMetricsAggregator
from spa_booking.repositories import (
    AppointmentRepository,
    AvailabilityRepository,
    ClientRepository,
    StaffRepository,
    TreatmentRepository,
)
from spa_booking.services.appointment_service import AppointmentService
from spa_booking.services.availability_catalog import AvailabilityCatalog
from spa_booking.services.conflict_counter import ConflictCounter
from spa_booking.services.notification_service import AppointmentNotifier
from spa_booking.services.schedule_validator import ScheduleValidator


def build_availability_catalog(session) -> AvailabilityCatalog:
    return AvailabilityCatalog(AvailabilityRepository(session), StaffRepository(session))


def build_appointment_service(
    session,
    notifier: Optional[AppointmentNotifier] = None,
    metrics: Optional[IMetricsAggregator] = None,
    invoice_renderer: Optional[IInvoiceRenderer] = None,
) -> AppointmentService:
    """Wire the appointment service to repositories sharing ``session``."""
    appointment_repo = AppointmentRepository(session)
    catalog = build_availability_catalog(session)
    return AppointmentService(
        appointment_repo,
        ClientRepository(session),
        StaffRepository(session),
        TreatmentRepository(session),
        ScheduleValidator(catalog, ConflictCounter(appointment_repo)),
        notifier=notifier,
        metrics=metrics,
        invoice_renderer=invoice_renderer,
    )
