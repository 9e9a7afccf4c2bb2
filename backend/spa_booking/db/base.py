from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from spa_booking.domain.entities import (
    AppointmentStatus,
    DayOfWeek,
    PaymentMethod,
    PaymentStatus,
)

from .session import Base


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC on every backend.

    SQLite drops tzinfo, so values are normalized to UTC on the way in and
    tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _enum_column(enum_cls, name: str):
    # Persist the enum values ("Pending"), not the member names ("PENDING")
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Client(Base):
    """Spa client"""

    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}')>"


class Staff(Base):
    """Staff member who performs treatments"""

    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    specialty: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )

    availabilities = relationship(
        "StaffAvailability",
        back_populates="staff",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Staff(id={self.id}, name='{self.name}')>"


class Treatment(Base):
    """Bookable service offered by the spa"""

    __tablename__ = "treatments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)

    def __repr__(self):
        return f"<Treatment(id={self.id}, name='{self.name}')>"


class StaffAvailability(Base):
    """Recurring weekly availability block for a staff member.

    Times are ``HH:MM`` strings interpreted in the business timezone.
    """

    __tablename__ = "staff_availability"
    __table_args__ = (Index("ix_availability_staff_day", "staff_id", "day_of_week"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    staff_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("staff.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week: Mapped[DayOfWeek] = mapped_column(
        _enum_column(DayOfWeek, "day_of_week"), nullable=False
    )
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    max_concurrent: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    staff = relationship("Staff", back_populates="availabilities")

    def __repr__(self):
        return (
            f"<StaffAvailability(id={self.id}, staff_id={self.staff_id}, "
            f"day='{self.day_of_week}', {self.start_time}-{self.end_time})>"
        )


class Appointment(Base):
    """Booked appointment"""

    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_staff_start", "staff_id", "start_time"),
        Index("ix_appointments_client", "client_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    client_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clients.id"), nullable=False
    )
    staff_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("staff.id"), nullable=False
    )
    treatment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("treatments.id"), nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        _enum_column(AppointmentStatus, "appointment_status"),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        _enum_column(PaymentMethod, "payment_method"), nullable=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), onupdate=func.now()
    )

    client = relationship("Client")
    staff = relationship("Staff")
    treatment = relationship("Treatment")

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, staff_id={self.staff_id}, "
            f"start={self.start_time}, status='{self.status}')>"
        )
