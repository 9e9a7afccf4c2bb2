"""
Appointment lifecycle service.

Booking writes follow one path: referenced entities must exist, then inside
the staff member's booking scope the schedule is validated and the row is
written, and only after the scope is released are notifications queued.
"""

import logging
from datetime import datetime
from typing import Collection, List, Optional

from spa_booking.core.exceptions import NotFoundError, ValidationFailure
from spa_booking.domain.entities import Appointment as DomainAppointment
from spa_booking.domain.entities import (
    AppointmentStatus,
    PaymentStatus,
    can_transition,
)
from spa_booking.domain.interfaces import (
    IAppointmentRepository,
    IClientReader,
    IInvoiceRenderer,
    IMetricsAggregator,
    IStaffReader,
    ITreatmentReader,
)
from spa_booking.schemas.dtos import (
    ALL_RELATIONS,
    AppointmentCreateRequest,
    AppointmentPage,
    AppointmentQuery,
    AppointmentResponse,
    AppointmentUpdateRequest,
    coerce_include,
)
from spa_booking.services.notification_service import AppointmentNotifier
from spa_booking.services.schedule_validator import ScheduleValidator
from spa_booking.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

COMPLETED_MUST_BE_PAID = "completed appointment must be paid"
INVALID_STATUS_TRANSITION = "invalid status transition"
INVOICE_NOT_AVAILABLE = "invoice not available"

_CLIENT_HISTORY_RELATIONS = frozenset({"staff", "treatment"})


class AppointmentService:
    """Application service for appointment use-cases.

    Depends only on the domain interfaces. The notifier, metrics aggregator
    and invoice renderer are optional collaborators.
    """

    def __init__(
        self,
        appointment_repo: IAppointmentRepository,
        client_repo: IClientReader,
        staff_repo: IStaffReader,
        treatment_repo: ITreatmentReader,
        validator: ScheduleValidator,
        notifier: Optional[AppointmentNotifier] = None,
        metrics: Optional[IMetricsAggregator] = None,
        invoice_renderer: Optional[IInvoiceRenderer] = None,
    ):
        self.appointment_repo = appointment_repo
        self.client_repo = client_repo
        self.staff_repo = staff_repo
        self.treatment_repo = treatment_repo
        self.validator = validator
        self.notifier = notifier
        self.metrics = metrics
        self.invoice_renderer = invoice_renderer

    def create(self, request: AppointmentCreateRequest) -> AppointmentResponse:
        """Book a new appointment.

        Business Rules:
        - Client, staff member and treatment must exist
        - The slot must fit one of the staff member's availability blocks
        - The block's capacity must not already be used up
        - A Completed appointment must be Paid
        """
        request.validate()

        self._require(self.client_repo, "Client", request.client_id)
        self._require(self.staff_repo, "Staff", request.staff_id)
        treatment = self._require(self.treatment_repo, "Treatment", request.treatment_id)

        start, end = ensure_utc(request.start_time), ensure_utc(request.end_time)

        with self.appointment_repo.staff_booking_scope(request.staff_id):
            self._check_schedule(request.staff_id, start, end)
            self._check_payment(request.status, request.payment_status)

            created = self.appointment_repo.create(
                DomainAppointment(
                    client_id=request.client_id,
                    staff_id=request.staff_id,
                    treatment_id=request.treatment_id,
                    start_time=start,
                    end_time=end,
                    status=request.status,
                    price=request.price if request.price is not None else treatment.price,
                    payment_method=request.payment_method,
                    payment_status=request.payment_status,
                    notes=request.notes,
                )
            )

        logger.info(
            "Appointment created",
            extra={
                "context": {
                    "appointment_id": created.id,
                    "staff_id": created.staff_id,
                    "client_id": created.client_id,
                    "status": created.status.value,
                }
            },
        )

        self._notify_created(created.id)
        if created.status == AppointmentStatus.COMPLETED:
            self._record_completed(created.id)
        return AppointmentResponse.from_domain(created)

    def update(
        self, appointment_id: int, request: AppointmentUpdateRequest
    ) -> AppointmentResponse:
        """Apply a partial update. The schedule is re-validated on every update.

        The appointment is re-read under the booking locks of both its
        current and its target staff member, and every rule runs against
        that fresh copy. If another writer moved it to a different staff
        member in the meantime, the locks are re-taken for the new owner.
        """
        request.validate()

        snapshot = self.appointment_repo.get_by_id(appointment_id)
        if not snapshot:
            raise NotFoundError("Appointment", appointment_id)

        if request.client_id is not None:
            self._require(self.client_repo, "Client", request.client_id)
        if request.staff_id is not None:
            self._require(self.staff_repo, "Staff", request.staff_id)
        if request.treatment_id is not None:
            self._require(self.treatment_repo, "Treatment", request.treatment_id)

        owner_id = snapshot.staff_id
        while True:
            target_id = _pick(request.staff_id, owner_id)
            with self.appointment_repo.staff_booking_scope(owner_id, target_id):
                current = self.appointment_repo.get_for_update(appointment_id)
                if not current:
                    raise NotFoundError("Appointment", appointment_id)
                if current.staff_id == owner_id:
                    updated = self._apply_update(current, request)
                    break
            logger.debug(
                "Appointment changed staff before the lock was taken; retrying",
                extra={
                    "context": {
                        "appointment_id": appointment_id,
                        "staff_id": current.staff_id,
                    }
                },
            )
            owner_id = current.staff_id

        logger.info(
            "Appointment updated",
            extra={
                "context": {
                    "appointment_id": appointment_id,
                    "status": f"{current.status.value}->{updated.status.value}",
                }
            },
        )

        self._notify_updated(current, updated)
        if (
            updated.status == AppointmentStatus.COMPLETED
            and current.status != AppointmentStatus.COMPLETED
        ):
            self._record_completed(appointment_id)
        return AppointmentResponse.from_domain(updated)

    def remove(self, appointment_id: int) -> None:
        if not self.appointment_repo.delete(appointment_id):
            raise NotFoundError("Appointment", appointment_id)
        logger.info(
            "Appointment removed", extra={"context": {"appointment_id": appointment_id}}
        )

    def find_one(
        self, appointment_id: int, include: Collection[str] = ALL_RELATIONS
    ) -> AppointmentResponse:
        appointment = self.appointment_repo.get_by_id(
            appointment_id, include=coerce_include(include)
        )
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)
        return AppointmentResponse.from_domain(appointment)

    def list(self, query: Optional[AppointmentQuery] = None) -> AppointmentPage:
        query = query or AppointmentQuery()
        query.validate()
        items, total = self.appointment_repo.list(query)
        return AppointmentPage(
            items=[AppointmentResponse.from_domain(a) for a in items],
            total=total,
            page=query.page,
            limit=query.limit,
        )

    def find_by_client(self, client_id: int) -> List[AppointmentResponse]:
        """A client's appointment history, most recent first."""
        self._require(self.client_repo, "Client", client_id)
        appointments = self.appointment_repo.get_by_client_id(
            client_id, include=_CLIENT_HISTORY_RELATIONS
        )
        return [AppointmentResponse.from_domain(a) for a in appointments]

    def find_due_reminders(
        self, window_start: datetime, window_end: datetime
    ) -> List[DomainAppointment]:
        """Confirmed, not yet reminded appointments starting inside the window.

        Returned fully hydrated so reminder messages can be rendered.
        """
        return self.appointment_repo.get_reminders_due(
            ensure_utc(window_start), ensure_utc(window_end)
        )

    def mark_reminder_sent(self, appointment_id: int) -> None:
        if not self.appointment_repo.mark_reminder_sent(appointment_id):
            raise NotFoundError("Appointment", appointment_id)

    def render_invoice(self, appointment_id: int) -> bytes:
        """Render the invoice document of a completed appointment."""
        appointment = self.appointment_repo.get_by_id(
            appointment_id, include=ALL_RELATIONS
        )
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)
        if appointment.status != AppointmentStatus.COMPLETED:
            raise ValidationFailure(
                INVOICE_NOT_AVAILABLE,
                f"Appointment {appointment_id} is {appointment.status.value}, not Completed",
            )
        if not self.invoice_renderer:
            raise ValidationFailure(INVOICE_NOT_AVAILABLE, "No invoice renderer configured")
        return self.invoice_renderer.render(appointment)

    # ----- rules ---------------------------------------------------------

    def _apply_update(
        self, current: DomainAppointment, request: AppointmentUpdateRequest
    ) -> DomainAppointment:
        """Check and write the patch against ``current``; runs inside the scope."""
        staff_id = _pick(request.staff_id, current.staff_id)
        start = ensure_utc(_pick(request.start_time, current.start_time))
        end = ensure_utc(_pick(request.end_time, current.end_time))
        status = _pick(request.status, current.status)
        payment_status = _pick(request.payment_status, current.payment_status)

        self._check_schedule(staff_id, start, end, exclude_appointment_id=current.id)
        self._check_payment(status, payment_status)
        if not can_transition(current.status, status):
            raise ValidationFailure(
                INVALID_STATUS_TRANSITION,
                f"Cannot change status from {current.status.value} to {status.value}",
            )

        return self.appointment_repo.update(
            DomainAppointment(
                id=current.id,
                client_id=_pick(request.client_id, current.client_id),
                staff_id=staff_id,
                treatment_id=_pick(request.treatment_id, current.treatment_id),
                start_time=start,
                end_time=end,
                status=status,
                price=_pick(request.price, current.price),
                payment_method=_pick(request.payment_method, current.payment_method),
                payment_status=payment_status,
                notes=_pick(request.notes, current.notes),
                reminder_sent=current.reminder_sent,
            )
        )

    def _require(self, repo, resource: str, entity_id: int):
        entity = repo.get_by_id(entity_id)
        if not entity:
            raise NotFoundError(resource, entity_id)
        return entity

    def _check_schedule(
        self,
        staff_id: int,
        start: datetime,
        end: datetime,
        exclude_appointment_id: Optional[int] = None,
    ) -> None:
        decision = self.validator.validate(
            staff_id, start, end, exclude_appointment_id=exclude_appointment_id
        )
        if not decision.accepted:
            logger.info(
                f"Booking rejected: {decision.reason}",
                extra={
                    "context": {
                        "staff_id": staff_id,
                        "start": start.isoformat(),
                        "end": end.isoformat(),
                        "reason": decision.reason,
                    }
                },
            )
            raise ValidationFailure(decision.reason, decision.detail)

    @staticmethod
    def _check_payment(status: AppointmentStatus, payment_status: PaymentStatus) -> None:
        if status == AppointmentStatus.COMPLETED and payment_status != PaymentStatus.PAID:
            raise ValidationFailure(
                COMPLETED_MUST_BE_PAID,
                'Payment status must be "Paid" when the appointment is "Completed"',
            )

    # ----- collaborators -------------------------------------------------

    def _notify_created(self, appointment_id: int) -> None:
        if not self.notifier:
            return
        try:
            appointment = self.appointment_repo.get_by_id(
                appointment_id, include=ALL_RELATIONS
            )
            messages = [self.notifier.new_appointment_to_staff(appointment)]
            if appointment.status == AppointmentStatus.CONFIRMED:
                messages.append(self.notifier.confirmation_to_client(appointment))
            self.notifier.notify(*messages)
        except Exception:
            logger.exception(
                "Failed to queue notifications for new appointment",
                extra={"context": {"appointment_id": appointment_id}},
            )

    def _notify_updated(
        self, previous: DomainAppointment, updated: DomainAppointment
    ) -> None:
        if not self.notifier:
            return

        time_changed = (
            previous.start_time != updated.start_time
            or previous.end_time != updated.end_time
        )
        staff_changed = previous.staff_id != updated.staff_id
        status_changed = previous.status != updated.status
        if not (time_changed or staff_changed or status_changed):
            return

        try:
            appointment = self.appointment_repo.get_by_id(
                updated.id, include=ALL_RELATIONS
            )
            if status_changed and appointment.status == AppointmentStatus.CONFIRMED:
                self.notifier.notify(
                    self.notifier.confirmation_to_client(appointment),
                    self.notifier.update_to_staff(appointment),
                )
            elif status_changed and appointment.status == AppointmentStatus.CANCELLED:
                self.notifier.notify(self.notifier.cancellation_to_staff(appointment))
            else:
                self.notifier.notify(self.notifier.update_to_staff(appointment))
        except Exception:
            logger.exception(
                "Failed to queue notifications for updated appointment",
                extra={"context": {"appointment_id": updated.id}},
            )


    def _record_completed(self, appointment_id: int) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.record_completed(
                self.appointment_repo.get_by_id(appointment_id, include=ALL_RELATIONS)
            )
        except Exception:
            logger.exception(
                "Failed to record completed appointment",
                extra={"context": {"appointment_id": appointment_id}},
            )


def _pick(new_value, current_value):
    return current_value if new_value is None else new_value
