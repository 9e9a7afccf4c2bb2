"""Treatment repository implementation."""

from decimal import Decimal
from typing import Optional

from spa_booking.db.base import Treatment as DbTreatment
from spa_booking.domain.entities import Treatment as DomainTreatment
from spa_booking.domain.interfaces import ITreatmentReader


def treatment_to_domain(db_treatment: DbTreatment) -> DomainTreatment:
    return DomainTreatment(
        id=db_treatment.id,
        name=db_treatment.name,
        duration_minutes=db_treatment.duration_minutes,
        price=Decimal(db_treatment.price or 0),
    )


class TreatmentRepository(ITreatmentReader):
    """Repository for Treatment persistence operations."""

    def __init__(self, db_session) -> None:
        self.db = db_session

    def get_by_id(self, treatment_id: int) -> Optional[DomainTreatment]:
        db_treatment = self.db.query(DbTreatment).filter_by(id=treatment_id).first()
        return treatment_to_domain(db_treatment) if db_treatment else None

    def create(self, treatment: DomainTreatment) -> DomainTreatment:
        db_treatment = DbTreatment(
            name=treatment.name.strip(),
            duration_minutes=treatment.duration_minutes,
            price=treatment.price,
        )
        self.db.add(db_treatment)
        self.db.commit()
        self.db.refresh(db_treatment)
        return treatment_to_domain(db_treatment)
