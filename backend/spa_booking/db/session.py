import logging

from sqlalchemy import create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from spa_booking.core import config

logger = logging.getLogger(__name__)

# Create Base class for models
Base = declarative_base()

# Internal lazy globals
_engine = None
_SessionLocal = None
_database_url = None


def _build_engine(database_url: str):
    url = make_url(database_url)
    if url.drivername.startswith("postgres"):
        return create_engine(
            database_url,
            pool_size=20,
            max_overflow=40,
            pool_pre_ping=True,  # Detects and refreshes stale connections
            pool_recycle=3600,  # Recycle connections every hour to avoid idle timeouts
            connect_args={
                "application_name": "spa_booking",  # Visible in pg_stat_activity
                "connect_timeout": 10,
            },
            echo=False,  # Controlled by logging config
        )
    if url.drivername.startswith("sqlite"):
        if url.database in (None, "", ":memory:"):
            # Single shared in-memory database so DDL persists across sessions
            return create_engine(
                database_url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(database_url, echo=False)


def get_engine():
    """Return a cached SQLAlchemy engine, creating it from DATABASE_URL on
    first call. This allows tests to set DATABASE_URL before the engine is
    constructed."""
    global _engine
    global _database_url
    global _SessionLocal
    database_url = config.get_database_url()
    if _engine is None or _database_url != database_url:
        if _engine is not None:
            _engine.dispose()
        _engine = _build_engine(database_url)
        _database_url = database_url
        _SessionLocal = None
        logger.debug(
            "SQLAlchemy engine created",
            extra={"context": {"dialect": _engine.dialect.name}},
        )
    return _engine


def get_sessionmaker():
    """Return a cached sessionmaker bound to the lazy engine."""
    global _SessionLocal
    engine = get_engine()
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )
    return _SessionLocal


def SessionLocal():
    """Calling SessionLocal() returns a new Session instance."""
    return get_sessionmaker()()


def create_tables(engine=None):
    """Create all tables in database using the lazy engine."""
    # Ensure models are imported so Base.metadata is populated
    from spa_booking.db import base  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
