"""
Appointment repository implementation.

Besides CRUD and listing, this repository owns the per-staff booking scope
that makes "count overlapping appointments, then write" atomic with respect
to other bookings for the same staff member:

- a process-local lock keyed by staff id serializes threads of one process
  on every backend, SQLite included;
- ``SELECT ... FOR UPDATE`` on the staff row serializes separate processes
  on PostgreSQL (SQLite ignores it, so multi-process deployments need
  PostgreSQL).
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import Collection, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import selectinload

from spa_booking.core.exceptions import NotFoundError
from spa_booking.db.base import Appointment as DbAppointment
from spa_booking.db.base import Client as DbClient
from spa_booking.db.base import Staff as DbStaff
from spa_booking.db.base import Treatment as DbTreatment
from spa_booking.domain.entities import Appointment as DomainAppointment
from spa_booking.domain.entities import (
    AppointmentStatus,
    PaymentMethod,
    PaymentStatus,
)
from spa_booking.domain.interfaces import IAppointmentRepository
from spa_booking.repositories.client_repo import client_to_domain
from spa_booking.repositories.staff_repo import staff_to_domain
from spa_booking.repositories.treatment_repo import treatment_to_domain
from spa_booking.schemas.dtos import AppointmentQuery, AppointmentSortBy, SortOrder
from spa_booking.utils.time_utils import local_day_bounds

logger = logging.getLogger(__name__)

_RELATIONSHIPS = {
    "client": DbAppointment.client,
    "staff": DbAppointment.staff,
    "treatment": DbAppointment.treatment,
}


class _StaffLockRegistry:
    """One ``threading.Lock`` per staff id, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def get(self, staff_id: int) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(staff_id, threading.Lock())


_STAFF_LOCKS = _StaffLockRegistry()


class AppointmentRepository(IAppointmentRepository):
    """Repository for Appointment persistence operations."""

    def __init__(self, db_session) -> None:
        self.db = db_session

    # ----- booking scope -------------------------------------------------

    @contextmanager
    def staff_booking_scope(self, *staff_ids: int) -> Iterator[None]:
        """Hold the booking locks of the given staff members for the enclosed block.

        Locks are always taken in ascending staff id order. Commits on normal
        exit and rolls back if the block raises.
        """
        ordered = sorted(set(staff_ids))
        if not ordered:
            raise ValueError("At least one staff ID is required")

        with ExitStack() as held:
            for staff_id in ordered:
                held.enter_context(_STAFF_LOCKS.get(staff_id))
            try:
                self.db.query(DbStaff.id).filter(DbStaff.id.in_(ordered)).order_by(
                    DbStaff.id
                ).with_for_update().all()
                yield
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    # ----- reads ---------------------------------------------------------

    def get_by_id(
        self, appointment_id: int, include: Collection[str] = ()
    ) -> Optional[DomainAppointment]:
        query = self._with_includes(self.db.query(DbAppointment), include)
        db_appointment = query.filter(DbAppointment.id == appointment_id).first()
        return self._to_domain(db_appointment, include) if db_appointment else None

    def get_for_update(self, appointment_id: int) -> Optional[DomainAppointment]:
        """Re-read an appointment inside a booking scope, locking its row.

        Attributes already loaded in this session are overwritten with the
        committed values.
        """
        db_appointment = (
            self.db.query(DbAppointment)
            .filter(DbAppointment.id == appointment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        return self._to_domain(db_appointment) if db_appointment else None

    def get_by_client_id(
        self, client_id: int, include: Collection[str] = ()
    ) -> List[DomainAppointment]:
        rows = (
            self._with_includes(self.db.query(DbAppointment), include)
            .filter(DbAppointment.client_id == client_id)
            .order_by(DbAppointment.start_time.desc(), DbAppointment.id.desc())
            .all()
        )
        return [self._to_domain(row, include) for row in rows]

    def count_overlapping(
        self,
        staff_id: int,
        start: datetime,
        end: datetime,
        statuses: Collection[AppointmentStatus],
        exclude_appointment_id: Optional[int] = None,
    ) -> int:
        query = self.db.query(func.count(DbAppointment.id)).filter(
            DbAppointment.staff_id == staff_id,
            DbAppointment.status.in_(list(statuses)),
            DbAppointment.start_time < end,
            DbAppointment.end_time > start,
        )
        if exclude_appointment_id is not None:
            query = query.filter(DbAppointment.id != exclude_appointment_id)
        return query.scalar() or 0

    def list(self, query: AppointmentQuery) -> Tuple[List[DomainAppointment], int]:
        q = self.db.query(DbAppointment)

        needs_client = query.search or query.sort_by == AppointmentSortBy.CLIENT_NAME
        needs_staff = query.search or query.sort_by == AppointmentSortBy.STAFF_NAME
        if needs_client:
            q = q.join(DbAppointment.client)
        if needs_staff:
            q = q.join(DbAppointment.staff)
        if query.search:
            q = q.join(DbAppointment.treatment)

        if query.client_id is not None:
            q = q.filter(DbAppointment.client_id == query.client_id)
        if query.staff_id is not None:
            q = q.filter(DbAppointment.staff_id == query.staff_id)
        if query.status is not None:
            q = q.filter(DbAppointment.status == query.status)
        if query.payment_status is not None:
            q = q.filter(DbAppointment.payment_status == query.payment_status)
        if query.start_date or query.end_date:
            lower, upper = local_day_bounds(
                query.start_date or query.end_date, query.end_date or query.start_date
            )
            if query.start_date:
                q = q.filter(DbAppointment.start_time >= lower)
            if query.end_date:
                q = q.filter(DbAppointment.start_time < upper)
        if query.search:
            pattern = f"%{query.search}%"
            q = q.filter(
                or_(
                    DbClient.name.ilike(pattern),
                    DbStaff.name.ilike(pattern),
                    DbTreatment.name.ilike(pattern),
                    DbAppointment.notes.ilike(pattern),
                )
            )

        total = q.count()

        sort_column = {
            AppointmentSortBy.ID: DbAppointment.id,
            AppointmentSortBy.START_TIME: DbAppointment.start_time,
            AppointmentSortBy.CLIENT_NAME: DbClient.name,
            AppointmentSortBy.STAFF_NAME: DbStaff.name,
            AppointmentSortBy.STATUS: DbAppointment.status,
            AppointmentSortBy.PRICE: DbAppointment.price,
        }[query.sort_by]
        if query.sort_order == SortOrder.ASC:
            ordering = [sort_column.asc(), DbAppointment.id.asc()]
        else:
            ordering = [sort_column.desc(), DbAppointment.id.desc()]

        rows = (
            self._with_includes(q, query.include)
            .order_by(*ordering)
            .offset(query.offset)
            .limit(query.limit)
            .all()
        )
        return [self._to_domain(row, query.include) for row in rows], total

    def get_reminders_due(
        self, window_start: datetime, window_end: datetime
    ) -> List[DomainAppointment]:
        include = ("client", "staff", "treatment")
        rows = (
            self._with_includes(self.db.query(DbAppointment), include)
            .filter(
                DbAppointment.status == AppointmentStatus.CONFIRMED,
                DbAppointment.reminder_sent.is_(False),
                DbAppointment.start_time >= window_start,
                DbAppointment.start_time <= window_end,
            )
            .order_by(DbAppointment.start_time, DbAppointment.id)
            .all()
        )
        return [self._to_domain(row, include) for row in rows]

    # ----- writes --------------------------------------------------------

    def create(self, appointment: DomainAppointment) -> DomainAppointment:
        db_appointment = DbAppointment()
        self._apply(db_appointment, appointment)
        db_appointment.reminder_sent = appointment.reminder_sent

        self.db.add(db_appointment)
        self.db.commit()
        self.db.refresh(db_appointment)
        return self._to_domain(db_appointment)

    def update(self, appointment: DomainAppointment) -> DomainAppointment:
        if not appointment.id:
            raise ValueError("Appointment ID is required for update")

        db_appointment = self.db.query(DbAppointment).filter_by(id=appointment.id).first()
        if not db_appointment:
            raise NotFoundError("Appointment", appointment.id)

        self._apply(db_appointment, appointment)

        self.db.commit()
        self.db.refresh(db_appointment)
        return self._to_domain(db_appointment)

    def delete(self, appointment_id: int) -> bool:
        db_appointment = self.db.query(DbAppointment).filter_by(id=appointment_id).first()
        if not db_appointment:
            return False

        self.db.delete(db_appointment)
        self.db.commit()
        return True

    def mark_reminder_sent(self, appointment_id: int) -> bool:
        db_appointment = self.db.query(DbAppointment).filter_by(id=appointment_id).first()
        if not db_appointment:
            return False

        db_appointment.reminder_sent = True
        self.db.commit()
        return True

    # ----- mapping -------------------------------------------------------

    def _with_includes(self, query, include: Collection[str]):
        for name in include:
            query = query.options(selectinload(_RELATIONSHIPS[name]))
        return query

    def _apply(self, db_appointment: DbAppointment, appointment: DomainAppointment):
        db_appointment.client_id = appointment.client_id
        db_appointment.staff_id = appointment.staff_id
        db_appointment.treatment_id = appointment.treatment_id
        db_appointment.start_time = appointment.start_time
        db_appointment.end_time = appointment.end_time
        db_appointment.status = appointment.status
        db_appointment.price = appointment.price
        db_appointment.payment_method = appointment.payment_method
        db_appointment.payment_status = appointment.payment_status
        db_appointment.notes = appointment.notes

    def _to_domain(
        self, db_appointment: DbAppointment, include: Collection[str] = ()
    ) -> DomainAppointment:
        """Convert database model to domain entity."""
        return DomainAppointment(
            id=db_appointment.id,
            client_id=db_appointment.client_id,
            staff_id=db_appointment.staff_id,
            treatment_id=db_appointment.treatment_id,
            start_time=db_appointment.start_time,
            end_time=db_appointment.end_time,
            status=AppointmentStatus(db_appointment.status),
            price=db_appointment.price,
            payment_method=(
                PaymentMethod(db_appointment.payment_method)
                if db_appointment.payment_method
                else None
            ),
            payment_status=PaymentStatus(db_appointment.payment_status),
            notes=db_appointment.notes,
            reminder_sent=bool(db_appointment.reminder_sent),
            created_at=db_appointment.created_at,
            updated_at=db_appointment.updated_at,
            client=(
                client_to_domain(db_appointment.client)
                if "client" in include
                else None
            ),
            staff=staff_to_domain(db_appointment.staff) if "staff" in include else None,
            treatment=(
                treatment_to_domain(db_appointment.treatment)
                if "treatment" in include
                else None
            ),
        )
