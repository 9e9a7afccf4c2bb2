"""Staff repository implementation."""

from typing import Optional

from spa_booking.db.base import Staff as DbStaff
from spa_booking.domain.entities import Staff as DomainStaff
from spa_booking.domain.interfaces import IStaffReader
from spa_booking.utils.name_utils import normalize_display_name


def staff_to_domain(db_staff: DbStaff) -> DomainStaff:
    return DomainStaff(
        id=db_staff.id,
        name=db_staff.name,
        phone=db_staff.phone,
        specialty=db_staff.specialty,
    )


class StaffRepository(IStaffReader):
    """Repository for Staff persistence operations."""

    def __init__(self, db_session) -> None:
        self.db = db_session

    def get_by_id(self, staff_id: int) -> Optional[DomainStaff]:
        db_staff = self.db.query(DbStaff).filter_by(id=staff_id).first()
        return staff_to_domain(db_staff) if db_staff else None

    def create(self, staff: DomainStaff) -> DomainStaff:
        db_staff = DbStaff(
            name=normalize_display_name(staff.name),
            phone=staff.phone,
            specialty=staff.specialty,
        )
        self.db.add(db_staff)
        self.db.commit()
        self.db.refresh(db_staff)
        return staff_to_domain(db_staff)
