"""
Updates that interleave with another writer's commit.

Two services with separate sessions share one file-backed SQLite database.
The second writer commits after the first has read the appointment but
before it takes the booking locks.
"""

import pytest

from spa_booking.bootstrap import build_appointment_service, build_availability_catalog
from spa_booking.core.exceptions import ValidationFailure
from spa_booking.domain.entities import AppointmentStatus, Client, Staff, Treatment
from spa_booking.repositories import (
    ClientRepository,
    StaffRepository,
    TreatmentRepository,
)
from spa_booking.schemas.dtos import (
    AppointmentCreateRequest,
    AppointmentUpdateRequest,
    AvailabilityBlockCreateRequest,
)
from spa_booking.services.appointment_service import INVALID_STATUS_TRANSITION
from tests.config.test_data import MONDAY, local

pytestmark = pytest.mark.concurrency


@pytest.fixture
def booked(session_factory):
    """Confirmed Monday 09:00-10:00 appointment; both staff work 09:00-12:00."""
    session = session_factory()
    try:
        client = ClientRepository(session).create(Client(name="Maria Lopez"))
        ana = StaffRepository(session).create(Staff(name="Ana Gomez"))
        lucia = StaffRepository(session).create(Staff(name="Lucia Perez"))
        treatment = TreatmentRepository(session).create(
            Treatment(name="Facial", duration_minutes=60)
        )
        catalog = build_availability_catalog(session)
        for staff in (ana, lucia):
            catalog.create_block(
                AvailabilityBlockCreateRequest(
                    staff_id=staff.id,
                    day_of_week="Monday",
                    start_time="09:00",
                    end_time="12:00",
                )
            )
        appointment = build_appointment_service(session).create(
            AppointmentCreateRequest(
                client_id=client.id,
                staff_id=ana.id,
                treatment_id=treatment.id,
                start_time=local(MONDAY, 9),
                end_time=local(MONDAY, 10),
                status="Confirmed",
            )
        )
        return appointment.id, ana.id, lucia.id
    finally:
        session.close()


@pytest.fixture
def services(session_factory):
    sessions = [session_factory(), session_factory()]
    yield [build_appointment_service(s) for s in sessions]
    for s in sessions:
        s.close()


def commit_before_lock(monkeypatch, service, other_write):
    """Run ``other_write`` once, right before ``service`` takes its first lock."""
    repo = service.appointment_repo
    real_scope = repo.staff_booking_scope
    pending = [other_write]

    def scope(*staff_ids):
        while pending:
            pending.pop()()
        return real_scope(*staff_ids)

    monkeypatch.setattr(repo, "staff_booking_scope", scope)


def reload(session_factory, appointment_id):
    session = session_factory()
    try:
        return build_appointment_service(session).find_one(appointment_id)
    finally:
        session.close()


def test_cancellation_is_not_overwritten_by_completion(
    monkeypatch, session_factory, booked, services
):
    appointment_id, _, _ = booked
    first, second = services
    commit_before_lock(
        monkeypatch,
        first,
        lambda: second.update(appointment_id, AppointmentUpdateRequest(status="Cancelled")),
    )

    with pytest.raises(ValidationFailure) as exc_info:
        first.update(
            appointment_id,
            AppointmentUpdateRequest(status="Completed", payment_status="Paid"),
        )

    assert exc_info.value.reason == INVALID_STATUS_TRANSITION
    assert reload(session_factory, appointment_id).status == AppointmentStatus.CANCELLED


def test_notes_update_keeps_a_reschedule_committed_meanwhile(
    monkeypatch, session_factory, booked, services
):
    appointment_id, _, _ = booked
    first, second = services
    commit_before_lock(
        monkeypatch,
        first,
        lambda: second.update(
            appointment_id,
            AppointmentUpdateRequest(
                start_time=local(MONDAY, 10), end_time=local(MONDAY, 11)
            ),
        ),
    )

    first.update(appointment_id, AppointmentUpdateRequest(notes="Prefers low light"))

    saved = reload(session_factory, appointment_id)
    assert saved.start_time == local(MONDAY, 10)
    assert saved.end_time == local(MONDAY, 11)
    assert saved.notes == "Prefers low light"


def test_reassignment_committed_meanwhile_is_kept(
    monkeypatch, session_factory, booked, services
):
    appointment_id, ana_id, lucia_id = booked
    first, second = services
    locked = []
    commit_before_lock(
        monkeypatch,
        first,
        lambda: second.update(appointment_id, AppointmentUpdateRequest(staff_id=lucia_id)),
    )
    patched_scope = first.appointment_repo.staff_booking_scope

    def recording_scope(*staff_ids):
        locked.append(sorted(set(staff_ids)))
        return patched_scope(*staff_ids)

    monkeypatch.setattr(first.appointment_repo, "staff_booking_scope", recording_scope)

    first.update(appointment_id, AppointmentUpdateRequest(notes="Prefers low light"))

    saved = reload(session_factory, appointment_id)
    assert saved.staff_id == lucia_id
    assert saved.notes == "Prefers low light"
    assert locked == [[ana_id], [lucia_id]]
