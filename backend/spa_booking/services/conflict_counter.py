"""Counts active appointments that overlap a requested window."""

from datetime import datetime
from typing import Collection, Optional

from spa_booking.domain.entities import ACTIVE_STATUSES, AppointmentStatus
from spa_booking.domain.interfaces import IAppointmentReader
from spa_booking.utils.time_utils import ensure_utc


class ConflictCounter:
    """Overlap counting over half-open intervals.

    Two appointments overlap when ``existing.start < end`` and
    ``existing.end > start``, so back-to-back appointments never conflict.
    Call it inside the staff booking scope so the count and the write that
    follows see the same state.
    """

    def __init__(self, appointment_repo: IAppointmentReader):
        self.appointment_repo = appointment_repo

    def count_overlapping(
        self,
        staff_id: int,
        start: datetime,
        end: datetime,
        active_statuses: Collection[AppointmentStatus] = ACTIVE_STATUSES,
        exclude_appointment_id: Optional[int] = None,
    ) -> int:
        return self.appointment_repo.count_overlapping(
            staff_id,
            ensure_utc(start),
            ensure_utc(end),
            frozenset(active_statuses),
            exclude_appointment_id=exclude_appointment_id,
        )
