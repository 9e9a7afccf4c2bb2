"""
Unit tests for AppointmentService.

This module tests the lifecycle rules with mocked repositories:
- entity existence checks and the booking scope
- schedule rejections surfacing as ValidationFailure
- the Completed/Paid coupling and status transitions
- notification fan-out for create and update
"""

from dataclasses import replace
from decimal import Decimal
from unittest.mock import Mock, call

import pytest

from spa_booking.core.exceptions import NotFoundError, ValidationFailure
from spa_booking.domain.entities import AppointmentStatus, PaymentStatus
from spa_booking.domain.interfaces import IInvoiceRenderer, IMetricsAggregator
from spa_booking.schemas.dtos import (
    ALL_RELATIONS,
    AppointmentCreateRequest,
    AppointmentQuery,
    AppointmentUpdateRequest,
)
from spa_booking.services.appointment_service import (
    COMPLETED_MUST_BE_PAID,
    INVALID_STATUS_TRANSITION,
    INVOICE_NOT_AVAILABLE,
    AppointmentService,
)
from spa_booking.services.schedule_validator import (
    CAPACITY_EXCEEDED,
    OUTSIDE_AVAILABILITY,
    ScheduleDecision,
    ScheduleValidator,
)
from tests.config.test_data import MONDAY, local
from tests.factories.repository_factories import (
    AppointmentRepositoryFactory,
    EntityReaderFactory,
    make_appointment,
    make_block,
    make_client,
    make_staff,
    make_treatment,
)


@pytest.fixture
def appointment_repo() -> Mock:
    return AppointmentRepositoryFactory.create_mock_full()


@pytest.fixture
def validator() -> Mock:
    validator = Mock(spec=ScheduleValidator)
    validator.validate.return_value = ScheduleDecision.ok(make_block())
    return validator


@pytest.fixture
def staff_reader() -> Mock:
    return EntityReaderFactory.staff_reader(make_staff())


@pytest.fixture
def service(appointment_repo, validator, staff_reader, mock_notifier) -> AppointmentService:
    return AppointmentService(
        appointment_repo,
        EntityReaderFactory.client_reader(make_client()),
        staff_reader,
        EntityReaderFactory.treatment_reader(make_treatment()),
        validator,
        notifier=mock_notifier,
    )


def hydrated(appointment):
    return replace(
        appointment, client=make_client(), staff=make_staff(), treatment=make_treatment()
    )


def create_request(**overrides) -> AppointmentCreateRequest:
    data = {
        "client_id": 1,
        "staff_id": 7,
        "treatment_id": 3,
        "start_time": local(MONDAY, 9),
        "end_time": local(MONDAY, 10),
    }
    data.update(overrides)
    return AppointmentCreateRequest(**data)


@pytest.fixture
def existing():
    """Pending Monday 09:00-10:00 appointment with id 1."""
    return make_appointment(local(MONDAY, 9), local(MONDAY, 10), notes="first visit")


def load_for_update(appointment_repo, current, after=None):
    """Serve ``current`` to the pre-read and the locked re-read, then a hydrated copy."""
    appointment_repo.get_by_id.side_effect = [current, hydrated(after or current)]
    appointment_repo.get_for_update.return_value = current


class TestCreate:
    def test_create_success(self, service, appointment_repo, validator):
        response = service.create(create_request())

        assert response.id == 1
        assert response.status == AppointmentStatus.PENDING
        appointment_repo.staff_booking_scope.assert_called_once_with(7)
        validator.validate.assert_called_once_with(
            7, local(MONDAY, 9), local(MONDAY, 10), exclude_appointment_id=None
        )
        appointment_repo.create.assert_called_once()

    def test_price_defaults_to_treatment_price(self, service, appointment_repo):
        service.create(create_request())

        created = appointment_repo.create.call_args.args[0]
        assert created.price == Decimal("120000")

    def test_explicit_price_kept(self, service, appointment_repo):
        service.create(create_request(price="80000"))

        assert appointment_repo.create.call_args.args[0].price == Decimal("80000")

    @pytest.mark.parametrize(
        "reader_attr, resource",
        [("client_repo", "Client"), ("staff_repo", "Staff"), ("treatment_repo", "Treatment")],
    )
    def test_missing_entity_raises_not_found(
        self, service, appointment_repo, reader_attr, resource
    ):
        getattr(service, reader_attr).get_by_id.return_value = None

        with pytest.raises(NotFoundError) as exc:
            service.create(create_request())

        assert exc.value.resource == resource
        appointment_repo.staff_booking_scope.assert_not_called()

    @pytest.mark.parametrize("reason", [OUTSIDE_AVAILABILITY, CAPACITY_EXCEEDED])
    def test_schedule_rejection_raises(self, service, appointment_repo, validator, reason):
        validator.validate.return_value = ScheduleDecision.rejected(reason, "no")

        with pytest.raises(ValidationFailure) as exc:
            service.create(create_request())

        assert exc.value.reason == reason
        appointment_repo.create.assert_not_called()

    def test_completed_requires_paid(self, service, appointment_repo):
        with pytest.raises(ValidationFailure) as exc:
            service.create(
                create_request(
                    status=AppointmentStatus.COMPLETED,
                    payment_status=PaymentStatus.PENDING,
                )
            )

        assert exc.value.reason == COMPLETED_MUST_BE_PAID
        appointment_repo.create.assert_not_called()

    def test_completed_unpaid_rejected_even_when_schedule_invalid(self, service, validator):
        validator.validate.return_value = ScheduleDecision.rejected(OUTSIDE_AVAILABILITY)

        with pytest.raises(ValidationFailure):
            service.create(
                create_request(
                    status=AppointmentStatus.COMPLETED,
                    payment_status=PaymentStatus.PENDING,
                )
            )

    def test_completed_and_paid_accepted(self, service, appointment_repo):
        response = service.create(
            create_request(status="Completed", payment_status="Paid")
        )

        assert response.status == AppointmentStatus.COMPLETED

    def test_invalid_request_never_reaches_repositories(self, service, appointment_repo):
        with pytest.raises(ValidationFailure):
            service.create(create_request(client_id=0))

        service.client_repo.get_by_id.assert_not_called()
        appointment_repo.create.assert_not_called()


class TestCreateNotifications:
    def test_pending_notifies_staff_only(self, service, appointment_repo, mock_notifier):
        appointment_repo.get_by_id.side_effect = lambda appointment_id, include=(): hydrated(
            make_appointment(local(MONDAY, 9), local(MONDAY, 10), id=appointment_id)
        )

        service.create(create_request())

        appointment_repo.get_by_id.assert_called_once_with(1, include=ALL_RELATIONS)
        mock_notifier.notify.assert_called_once_with("new_appointment_to_staff")

    def test_confirmed_also_notifies_client(self, service, appointment_repo, mock_notifier):
        appointment_repo.get_by_id.return_value = hydrated(
            make_appointment(
                local(MONDAY, 9), local(MONDAY, 10), status=AppointmentStatus.CONFIRMED
            )
        )

        service.create(create_request(status="Confirmed"))

        mock_notifier.notify.assert_called_once_with(
            "new_appointment_to_staff", "confirmation_to_client"
        )

    def test_notification_failure_does_not_fail_booking(
        self, service, appointment_repo, mock_notifier
    ):
        appointment_repo.get_by_id.return_value = hydrated(
            make_appointment(local(MONDAY, 9), local(MONDAY, 10))
        )
        mock_notifier.notify.side_effect = RuntimeError("queue broken")

        response = service.create(create_request())

        assert response.id == 1

    def test_without_notifier_nothing_is_loaded(
        self, appointment_repo, validator, staff_reader
    ):
        service = AppointmentService(
            appointment_repo,
            EntityReaderFactory.client_reader(make_client()),
            staff_reader,
            EntityReaderFactory.treatment_reader(make_treatment()),
            validator,
        )

        service.create(create_request())

        appointment_repo.get_by_id.assert_not_called()


class TestUpdate:
    def test_missing_appointment_raises(self, service):
        with pytest.raises(NotFoundError):
            service.update(99, AppointmentUpdateRequest(notes="x"))

    def test_notes_only_update_excludes_itself(
        self, service, appointment_repo, validator, existing, mock_notifier
    ):
        load_for_update(appointment_repo, existing)

        response = service.update(1, AppointmentUpdateRequest(notes="bring towel"))

        assert response.notes == "bring towel"
        validator.validate.assert_called_once_with(
            7, existing.start_time, existing.end_time, exclude_appointment_id=1
        )
        mock_notifier.notify.assert_not_called()

    def test_unchanged_fields_are_kept(self, service, appointment_repo, existing):
        load_for_update(appointment_repo, existing)

        service.update(1, AppointmentUpdateRequest(payment_status="Paid"))

        saved = appointment_repo.update.call_args.args[0]
        assert saved.notes == "first visit"
        assert saved.start_time == existing.start_time
        assert saved.payment_status == PaymentStatus.PAID

    def test_scope_uses_effective_staff(self, service, appointment_repo, existing):
        load_for_update(appointment_repo, existing)

        service.update(1, AppointmentUpdateRequest(staff_id=8))

        appointment_repo.staff_booking_scope.assert_called_once_with(7, 8)

    def test_rules_use_the_locked_copy(self, service, appointment_repo, existing):
        # cancelled by someone else between the first read and the lock
        appointment_repo.get_by_id.return_value = replace(
            existing, status=AppointmentStatus.CONFIRMED
        )
        appointment_repo.get_for_update.return_value = replace(
            existing, status=AppointmentStatus.CANCELLED
        )

        with pytest.raises(ValidationFailure) as exc:
            service.update(
                1, AppointmentUpdateRequest(status="Completed", payment_status="Paid")
            )

        assert exc.value.reason == INVALID_STATUS_TRANSITION
        appointment_repo.update.assert_not_called()

    def test_untouched_fields_come_from_the_locked_copy(
        self, service, appointment_repo, existing
    ):
        moved = replace(existing, start_time=local(MONDAY, 10), end_time=local(MONDAY, 11))
        appointment_repo.get_by_id.side_effect = [existing, hydrated(moved)]
        appointment_repo.get_for_update.return_value = moved

        service.update(1, AppointmentUpdateRequest(notes="bring towel"))

        saved = appointment_repo.update.call_args.args[0]
        assert (saved.start_time, saved.end_time) == (local(MONDAY, 10), local(MONDAY, 11))

    def test_staff_change_after_first_read_retakes_locks(
        self, service, appointment_repo, validator, existing
    ):
        reassigned = replace(existing, staff_id=9)
        appointment_repo.get_by_id.side_effect = [existing, hydrated(reassigned)]
        appointment_repo.get_for_update.return_value = reassigned

        service.update(1, AppointmentUpdateRequest(notes="bring towel"))

        assert appointment_repo.staff_booking_scope.call_args_list == [call(7, 7), call(9, 9)]
        assert appointment_repo.update.call_args.args[0].staff_id == 9
        assert validator.validate.call_args.args[0] == 9

    def test_referenced_staff_must_exist(self, service, appointment_repo, existing, staff_reader):
        load_for_update(appointment_repo, existing)
        staff_reader.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            service.update(1, AppointmentUpdateRequest(staff_id=8))

    def test_schedule_rejection_raises(self, service, appointment_repo, validator, existing):
        load_for_update(appointment_repo, existing)
        validator.validate.return_value = ScheduleDecision.rejected(CAPACITY_EXCEEDED)

        with pytest.raises(ValidationFailure) as exc:
            service.update(1, AppointmentUpdateRequest(end_time=local(MONDAY, 11)))

        assert exc.value.reason == CAPACITY_EXCEEDED
        appointment_repo.update.assert_not_called()

    def test_completed_requires_paid(self, service, appointment_repo, existing):
        load_for_update(
            appointment_repo, replace(existing, status=AppointmentStatus.CONFIRMED)
        )

        with pytest.raises(ValidationFailure) as exc:
            service.update(1, AppointmentUpdateRequest(status="Completed"))

        assert exc.value.reason == COMPLETED_MUST_BE_PAID

    def test_paid_appointment_may_complete(self, service, appointment_repo, existing):
        load_for_update(
            appointment_repo,
            replace(existing, status=AppointmentStatus.CONFIRMED, payment_status=PaymentStatus.PAID),
        )

        response = service.update(1, AppointmentUpdateRequest(status="Completed"))

        assert response.status == AppointmentStatus.COMPLETED

    def test_unpaying_a_completed_appointment_rejected(self, service, appointment_repo, existing):
        load_for_update(
            appointment_repo,
            replace(existing, status=AppointmentStatus.COMPLETED, payment_status=PaymentStatus.PAID),
        )

        with pytest.raises(ValidationFailure) as exc:
            service.update(1, AppointmentUpdateRequest(payment_status="Pending"))

        assert exc.value.reason == COMPLETED_MUST_BE_PAID

    @pytest.mark.parametrize(
        "current, requested",
        [
            (AppointmentStatus.CANCELLED, "Pending"),
            (AppointmentStatus.CANCELLED, "Confirmed"),
            (AppointmentStatus.CONFIRMED, "Pending"),
        ],
    )
    def test_invalid_transition_rejected(
        self, service, appointment_repo, existing, current, requested
    ):
        load_for_update(appointment_repo, replace(existing, status=current))

        with pytest.raises(ValidationFailure) as exc:
            service.update(1, AppointmentUpdateRequest(status=requested))

        assert exc.value.reason == INVALID_STATUS_TRANSITION
        appointment_repo.update.assert_not_called()


class TestUpdateNotifications:
    def test_confirmation_notifies_client_and_staff(
        self, service, appointment_repo, existing, mock_notifier
    ):
        load_for_update(
            appointment_repo, existing, replace(existing, status=AppointmentStatus.CONFIRMED)
        )

        service.update(1, AppointmentUpdateRequest(status="Confirmed"))

        mock_notifier.notify.assert_called_once_with(
            "confirmation_to_client", "update_to_staff"
        )

    def test_cancellation_notifies_staff(
        self, service, appointment_repo, existing, mock_notifier
    ):
        load_for_update(
            appointment_repo, existing, replace(existing, status=AppointmentStatus.CANCELLED)
        )

        service.update(1, AppointmentUpdateRequest(status="Cancelled"))

        mock_notifier.notify.assert_called_once_with("cancellation_to_staff")

    def test_time_change_sends_update_notice(
        self, service, appointment_repo, existing, mock_notifier
    ):
        load_for_update(appointment_repo, existing)

        service.update(
            1,
            AppointmentUpdateRequest(
                start_time=local(MONDAY, 10), end_time=local(MONDAY, 11)
            ),
        )

        mock_notifier.notify.assert_called_once_with("update_to_staff")

    def test_payment_only_change_is_silent(
        self, service, appointment_repo, existing, mock_notifier
    ):
        load_for_update(appointment_repo, existing)

        service.update(1, AppointmentUpdateRequest(payment_status="Paid", price="1000"))

        mock_notifier.notify.assert_not_called()


class TestQueries:
    def test_remove_missing_raises(self, service, appointment_repo):
        appointment_repo.delete.return_value = False

        with pytest.raises(NotFoundError):
            service.remove(5)

    def test_remove_existing(self, service, appointment_repo):
        appointment_repo.delete.return_value = True

        service.remove(5)

        appointment_repo.delete.assert_called_once_with(5)

    def test_find_one_hydrates_all_relations_by_default(
        self, service, appointment_repo, existing
    ):
        appointment_repo.get_by_id.return_value = hydrated(existing)

        response = service.find_one(1)

        appointment_repo.get_by_id.assert_called_once_with(1, include=ALL_RELATIONS)
        assert response.staff_name == "Ana Gomez"

    def test_find_one_missing_raises(self, service):
        with pytest.raises(NotFoundError):
            service.find_one(1)

    def test_find_one_rejects_unknown_relation(self, service):
        with pytest.raises(ValidationFailure):
            service.find_one(1, include=("invoice",))

    def test_find_by_client_requires_client(self, service):
        service.client_repo.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            service.find_by_client(1)

    def test_find_by_client_hydrates_staff_and_treatment(
        self, service, appointment_repo, existing
    ):
        appointment_repo.get_by_client_id.return_value = [existing]

        result = service.find_by_client(1)

        assert len(result) == 1
        appointment_repo.get_by_client_id.assert_called_once_with(
            1, include=frozenset({"staff", "treatment"})
        )

    def test_list_wraps_repository_page(self, service, appointment_repo, existing):
        appointment_repo.list.return_value = ([existing], 31)

        page = service.list(AppointmentQuery(page=2, limit=10))

        assert page.total == 31
        assert page.total_pages == 4
        assert [item.id for item in page.items] == [1]

    def test_list_validates_query(self, service, appointment_repo):
        with pytest.raises(ValidationFailure):
            service.list(AppointmentQuery(limit=500))

        appointment_repo.list.assert_not_called()

    def test_mark_reminder_sent_missing_raises(self, service, appointment_repo):
        appointment_repo.mark_reminder_sent.return_value = False

        with pytest.raises(NotFoundError):
            service.mark_reminder_sent(3)

    def test_find_due_reminders_passes_window(self, service, appointment_repo):
        start, end = local(MONDAY, 9), local(MONDAY, 10)

        service.find_due_reminders(start, end)

        assert appointment_repo.get_reminders_due.call_args == call(start, end)


class TestCollaborators:
    @pytest.fixture
    def metrics(self) -> Mock:
        return Mock(spec=IMetricsAggregator)

    @pytest.fixture
    def renderer(self) -> Mock:
        renderer = Mock(spec=IInvoiceRenderer)
        renderer.render.return_value = b"%PDF-invoice"
        return renderer

    @pytest.fixture
    def full_service(self, service, metrics, renderer) -> AppointmentService:
        service.metrics = metrics
        service.invoice_renderer = renderer
        return service

    def test_completing_records_metrics(
        self, full_service, appointment_repo, existing, metrics
    ):
        current = replace(
            existing, status=AppointmentStatus.CONFIRMED, payment_status=PaymentStatus.PAID
        )
        done = hydrated(replace(current, status=AppointmentStatus.COMPLETED))
        appointment_repo.get_by_id.side_effect = [current, done, done]
        appointment_repo.get_for_update.return_value = current

        full_service.update(1, AppointmentUpdateRequest(status="Completed"))

        metrics.record_completed.assert_called_once_with(done)

    def test_other_updates_do_not_record_metrics(
        self, full_service, appointment_repo, existing, metrics
    ):
        load_for_update(appointment_repo, existing)

        full_service.update(1, AppointmentUpdateRequest(status="Confirmed"))

        metrics.record_completed.assert_not_called()

    def test_created_as_completed_records_metrics(
        self, full_service, appointment_repo, metrics
    ):
        appointment_repo.get_by_id.side_effect = lambda _id, include=(): hydrated(
            make_appointment(
                local(MONDAY, 9),
                local(MONDAY, 10),
                status=AppointmentStatus.COMPLETED,
                payment_status=PaymentStatus.PAID,
            )
        )

        full_service.create(create_request(status="Completed", payment_status="Paid"))

        metrics.record_completed.assert_called_once()

    def test_metrics_failure_does_not_fail_update(
        self, full_service, appointment_repo, existing, metrics
    ):
        current = replace(
            existing, status=AppointmentStatus.CONFIRMED, payment_status=PaymentStatus.PAID
        )
        done = hydrated(replace(current, status=AppointmentStatus.COMPLETED))
        appointment_repo.get_by_id.side_effect = [current, done, done]
        appointment_repo.get_for_update.return_value = current
        metrics.record_completed.side_effect = RuntimeError("ledger offline")

        response = full_service.update(1, AppointmentUpdateRequest(status="Completed"))

        assert response.status == AppointmentStatus.COMPLETED

    def test_render_invoice_for_completed(
        self, full_service, appointment_repo, existing, renderer
    ):
        done = hydrated(
            replace(
                existing,
                status=AppointmentStatus.COMPLETED,
                payment_status=PaymentStatus.PAID,
            )
        )
        appointment_repo.get_by_id.return_value = done

        assert full_service.render_invoice(1) == b"%PDF-invoice"
        renderer.render.assert_called_once_with(done)
        assert appointment_repo.get_by_id.call_args == call(1, include=ALL_RELATIONS)

    def test_render_invoice_requires_completed(
        self, full_service, appointment_repo, existing, renderer
    ):
        appointment_repo.get_by_id.return_value = existing

        with pytest.raises(ValidationFailure) as exc:
            full_service.render_invoice(1)

        assert exc.value.reason == INVOICE_NOT_AVAILABLE
        renderer.render.assert_not_called()

    def test_render_invoice_without_renderer(self, service, appointment_repo, existing):
        appointment_repo.get_by_id.return_value = replace(
            existing, status=AppointmentStatus.COMPLETED, payment_status=PaymentStatus.PAID
        )

        with pytest.raises(ValidationFailure) as exc:
            service.render_invoice(1)

        assert exc.value.reason == INVOICE_NOT_AVAILABLE

    def test_render_invoice_missing_appointment(self, full_service):
        with pytest.raises(NotFoundError):
            full_service.render_invoice(42)
