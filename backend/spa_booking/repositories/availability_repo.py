"""Availability repository implementation.

Catalog order for a staff member's weekday is ``start_time`` ascending;
``HH:MM`` strings are zero-padded so string order equals time order.
"""

from typing import List, Optional

from spa_booking.core.exceptions import NotFoundError
from spa_booking.db.base import StaffAvailability as DbAvailability
from spa_booking.domain.entities import AvailabilityBlock, DayOfWeek
from spa_booking.domain.interfaces import IAvailabilityRepository

_DAY_ORDER = {day: index for index, day in enumerate(DayOfWeek)}


class AvailabilityRepository(IAvailabilityRepository):
    """Repository for recurring staff availability blocks."""

    def __init__(self, db_session) -> None:
        self.db = db_session

    def find_by_staff_and_day(
        self, staff_id: int, day_of_week: DayOfWeek
    ) -> List[AvailabilityBlock]:
        rows = (
            self.db.query(DbAvailability)
            .filter(
                DbAvailability.staff_id == staff_id,
                DbAvailability.day_of_week == day_of_week,
            )
            .order_by(DbAvailability.start_time, DbAvailability.id)
            .all()
        )
        return [self._to_domain(row) for row in rows]

    def get_by_id(self, block_id: int) -> Optional[AvailabilityBlock]:
        row = self.db.query(DbAvailability).filter_by(id=block_id).first()
        return self._to_domain(row) if row else None

    def get_by_staff(self, staff_id: int) -> List[AvailabilityBlock]:
        rows = (
            self.db.query(DbAvailability)
            .filter(DbAvailability.staff_id == staff_id)
            .order_by(DbAvailability.start_time, DbAvailability.id)
            .all()
        )
        blocks = [self._to_domain(row) for row in rows]
        # sorted() is stable, so start order is kept within a day
        return sorted(blocks, key=lambda b: _DAY_ORDER[b.day_of_week])

    def create(self, block: AvailabilityBlock) -> AvailabilityBlock:
        row = DbAvailability(
            staff_id=block.staff_id,
            day_of_week=block.day_of_week,
            start_time=block.start_time,
            end_time=block.end_time,
            max_concurrent=block.max_concurrent,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return self._to_domain(row)

    def update(self, block: AvailabilityBlock) -> AvailabilityBlock:
        if not block.id:
            raise ValueError("Availability block ID is required for update")

        row = self.db.query(DbAvailability).filter_by(id=block.id).first()
        if not row:
            raise NotFoundError("Availability block", block.id)

        row.staff_id = block.staff_id
        row.day_of_week = block.day_of_week
        row.start_time = block.start_time
        row.end_time = block.end_time
        row.max_concurrent = block.max_concurrent

        self.db.commit()
        self.db.refresh(row)
        return self._to_domain(row)

    def delete(self, block_id: int) -> bool:
        row = self.db.query(DbAvailability).filter_by(id=block_id).first()
        if not row:
            return False

        self.db.delete(row)
        self.db.commit()
        return True

    def _to_domain(self, row: DbAvailability) -> AvailabilityBlock:
        return AvailabilityBlock(
            id=row.id,
            staff_id=row.staff_id,
            day_of_week=DayOfWeek(row.day_of_week),
            start_time=row.start_time,
            end_time=row.end_time,
            max_concurrent=row.max_concurrent,
        )
