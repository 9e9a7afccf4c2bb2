"""
Centralized configuration module for application-wide settings.

This module provides centralized configuration for the business timezone,
database location and outbound notification settings. Every value is read
from the environment at import time; ``load_environment()`` loads a ``.env``
file and re-reads them. Consumers read ``config.NAME`` at call time so a
reload is picked up everywhere.
"""

import logging
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_TIMEZONE = "America/Bogota"


def load_environment(env_file: str | None = None) -> bool:
    """Load variables from a ``.env`` file without overriding the environment.

    Returns:
        bool: True if a file was found and loaded.
    """
    loaded = load_dotenv(env_file, override=False)
    reload_settings()
    return loaded


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


def _get_positive_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(
            f"Invalid value '{raw}' for {name}; using default {default}",
            extra={"context": {"variable": name}},
        )
        return default
    if value <= 0:
        logger.warning(
            f"{name} must be positive, got {value}; using default {default}",
            extra={"context": {"variable": name}},
        )
        return default
    return value


# ===========================
# Timezone Configuration
# ===========================


def get_business_timezone() -> ZoneInfo:
    """
    Get the single fixed business timezone.

    Weekdays and local times of day used for availability matching are
    always derived in this timezone, never in the host's or the caller's.

    Returns:
        ZoneInfo: Business timezone (defaults to America/Bogota)

    Environment Variables:
        BUSINESS_TIMEZONE: IANA timezone identifier (e.g. 'America/Bogota')

    Examples:
        >>> # In .env file:
        >>> # BUSINESS_TIMEZONE=America/Bogota
        >>> tz = get_business_timezone()
        >>> print(tz)  # America/Bogota
    """
    tz_name = os.getenv("BUSINESS_TIMEZONE", DEFAULT_BUSINESS_TIMEZONE)

    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(
            f"Invalid timezone '{tz_name}' specified in BUSINESS_TIMEZONE. "
            f"Falling back to UTC. Error: {e}"
        )
        return ZoneInfo("UTC")


# Global timezone instance - initialized once at import time
BUSINESS_TZ = get_business_timezone()

BUSINESS_NAME = os.getenv("BUSINESS_NAME", "Casa Bonita Spa")


# ===========================
# Database Configuration
# ===========================


def get_database_url() -> str:
    """Return the SQLAlchemy URL (defaults to a local SQLite file)."""
    return os.getenv("DATABASE_URL", "sqlite:///./spa_booking.db")


# ===========================
# Notification Configuration
# ===========================

WASENDER_API_URL = os.getenv("WASENDER_API_URL", "")
WASENDER_API_KEY = os.getenv("WASENDER_API_KEY", "")

NOTIFICATIONS_ENABLED = _get_bool("NOTIFICATIONS_ENABLED", "true")

# One message every six seconds by default, matching the provider's limit
NOTIFY_RATE_PER_MINUTE = _get_positive_float("NOTIFY_RATE_PER_MINUTE", 10.0)
NOTIFY_BURST = int(_get_positive_float("NOTIFY_BURST", 1))
NOTIFY_HTTP_TIMEOUT = _get_positive_float("NOTIFY_HTTP_TIMEOUT", 10.0)

# Minutes between reminder runs; must not exceed the reminder window width
REMINDER_INTERVAL_MINUTES = _get_positive_float("REMINDER_INTERVAL_MINUTES", 5.0)


def log_scheduling_config():
    """
    Log the active scheduling configuration.

    Should be called during application startup to provide visibility
    into the timezone and notification pacing being used.
    """
    logger.info(
        "Scheduling configuration initialized",
        extra={
            "context": {
                "business_timezone": str(BUSINESS_TZ),
                "business_name": BUSINESS_NAME,
                "notifications_enabled": NOTIFICATIONS_ENABLED,
                "notify_rate_per_minute": NOTIFY_RATE_PER_MINUTE,
                "notify_burst": NOTIFY_BURST,
                "reminder_interval_minutes": REMINDER_INTERVAL_MINUTES,
            }
        },
    )


def reload_settings() -> None:
    """Re-read every module-level setting from the environment."""
    global BUSINESS_TZ, BUSINESS_NAME, WASENDER_API_URL, WASENDER_API_KEY
    global NOTIFICATIONS_ENABLED, NOTIFY_RATE_PER_MINUTE, NOTIFY_BURST
    global NOTIFY_HTTP_TIMEOUT, REMINDER_INTERVAL_MINUTES

    BUSINESS_TZ = get_business_timezone()
    BUSINESS_NAME = os.getenv("BUSINESS_NAME", "Casa Bonita Spa")
    WASENDER_API_URL = os.getenv("WASENDER_API_URL", "")
    WASENDER_API_KEY = os.getenv("WASENDER_API_KEY", "")
    NOTIFICATIONS_ENABLED = _get_bool("NOTIFICATIONS_ENABLED", "true")
    NOTIFY_RATE_PER_MINUTE = _get_positive_float("NOTIFY_RATE_PER_MINUTE", 10.0)
    NOTIFY_BURST = int(_get_positive_float("NOTIFY_BURST", 1))
    NOTIFY_HTTP_TIMEOUT = _get_positive_float("NOTIFY_HTTP_TIMEOUT", 10.0)
    REMINDER_INTERVAL_MINUTES = _get_positive_float("REMINDER_INTERVAL_MINUTES", 5.0)
