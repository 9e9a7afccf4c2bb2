"""
Central pytest configuration for the spa booking tests.

This file provides common fixtures, test markers, and setup
for both unit and integration tests.
"""

import os
import sys
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to sys.path for imports to work
backend_root = Path(__file__).parent.parent  # backend/
sys.path.insert(0, str(backend_root))

# Test environment (set early so import-time configuration uses it)
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["BUSINESS_TIMEZONE"] = "America/Bogota"
os.environ["BUSINESS_NAME"] = "Casa Bonita Spa"
os.environ["NOTIFICATIONS_ENABLED"] = "true"
os.environ.pop("WASENDER_API_URL", None)
os.environ.pop("WASENDER_API_KEY", None)

from spa_booking.bootstrap import (  # noqa: E402
    build_appointment_service,
    build_availability_catalog,
)
from spa_booking.db import base  # noqa: E402,F401  registers the models
from spa_booking.db.session import Base  # noqa: E402
from spa_booking.domain.entities import Client, Staff, Treatment  # noqa: E402
from spa_booking.repositories import (  # noqa: E402
    ClientRepository,
    StaffRepository,
    TreatmentRepository,
)
from spa_booking.services.notification_service import (  # noqa: E402
    AppointmentNotifier,
)

from tests.config.markers import (  # noqa: E402,F401
    pytest_collection_modifyitems,
    pytest_configure,
)


# =====================================================
# DATABASE FIXTURES
# =====================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db_session(engine):
    """Session bound to the per-test database."""
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite database shared by several sessions or threads."""
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'spa.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(file_engine):
    return sessionmaker(bind=file_engine, expire_on_commit=False)


@pytest.fixture
def seeded(db_session):
    """One client, two staff members and a 60 minute treatment."""
    return SimpleNamespace(
        client=ClientRepository(db_session).create(
            Client(name="maria lopez", phone="+573001112233", email="maria@example.com")
        ),
        staff=StaffRepository(db_session).create(
            Staff(name="ana gomez", phone="+573004445566", specialty="massage")
        ),
        other_staff=StaffRepository(db_session).create(
            Staff(name="lucia perez", phone=None, specialty="facial")
        ),
        treatment=TreatmentRepository(db_session).create(
            Treatment(name="Deep Tissue Massage", duration_minutes=60, price=Decimal("120000"))
        ),
    )


# =====================================================
# SERVICE FIXTURES
# =====================================================


@pytest.fixture
def availability_catalog(db_session):
    return build_availability_catalog(db_session)


@pytest.fixture
def mock_notifier():
    """AppointmentNotifier double that records rendered messages."""
    notifier = Mock(spec=AppointmentNotifier)
    for kind in (
        "new_appointment_to_staff",
        "confirmation_to_client",
        "update_to_staff",
        "cancellation_to_staff",
        "reminder_to_client",
    ):
        getattr(notifier, kind).return_value = kind
    return notifier


@pytest.fixture
def appointment_service(db_session, mock_notifier):
    return build_appointment_service(db_session, mock_notifier)
