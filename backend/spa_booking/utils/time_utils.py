"""
Business-timezone helpers.

Appointments are stored as absolute instants; availability blocks are stored
as ``HH:MM`` strings in the business timezone. Everything that converts
between the two lives here so that no caller ever falls back to the host's
local timezone.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from spa_booking.core import config
from spa_booking.domain.entities import DayOfWeek

_HHMM_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

# datetime.weekday(): Monday == 0
_WEEKDAYS = (
    DayOfWeek.MONDAY,
    DayOfWeek.TUESDAY,
    DayOfWeek.WEDNESDAY,
    DayOfWeek.THURSDAY,
    DayOfWeek.FRIDAY,
    DayOfWeek.SATURDAY,
    DayOfWeek.SUNDAY,
)


def ensure_utc(instant: datetime) -> datetime:
    """Return ``instant`` as an aware UTC datetime (naive values are UTC)."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def to_business_local(instant: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Convert an absolute instant to wall-clock time in the business timezone."""
    return ensure_utc(instant).astimezone(tz or config.BUSINESS_TZ)


def day_of_week_for(instant: datetime, tz: Optional[ZoneInfo] = None) -> DayOfWeek:
    return _WEEKDAYS[to_business_local(instant, tz).weekday()]


def local_window(
    start: datetime, end: datetime, tz: Optional[ZoneInfo] = None
) -> Tuple[DayOfWeek, time, time]:
    """Derive ``(weekday, start_local, end_local)`` for an appointment.

    Only the start's weekday is used. When the end falls on a later local
    date its time of day is still returned unchanged, so the window is matched
    against the start day's blocks by times of day alone. It fits whenever
    the start is at or after a block's start and the next-day end time is
    within that block: a Monday 08:00-23:59 block accepts Monday 23:00 to
    Tuesday 01:00.
    """
    local_start = to_business_local(start, tz)
    local_end = to_business_local(end, tz)
    return _WEEKDAYS[local_start.weekday()], local_start.time(), local_end.time()


def parse_hhmm(value: str) -> time:
    """Parse a ``HH:MM`` string (00:00-23:59) into a ``time``."""
    match = _HHMM_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"'{value}' is not a valid HH:MM time")
    return time(int(match.group(1)), int(match.group(2)))


def format_hhmm(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def normalize_hhmm(value: str) -> str:
    """Return the zero-padded form of a ``HH:MM`` string ("9:00" -> "09:00")."""
    return format_hhmm(parse_hhmm(value))


def local_day_bounds(
    start_day: date, end_day: date, tz: Optional[ZoneInfo] = None
) -> Tuple[datetime, datetime]:
    """UTC instants covering local days ``start_day`` through ``end_day`` inclusive."""
    zone = tz or config.BUSINESS_TZ
    lower = datetime.combine(start_day, time.min, tzinfo=zone)
    upper = datetime.combine(end_day + timedelta(days=1), time.min, tzinfo=zone)
    return lower.astimezone(timezone.utc), upper.astimezone(timezone.utc)


def format_for_message(instant: datetime, tz: Optional[ZoneInfo] = None) -> str:
    """Human-readable local start time, e.g. 'Monday 14 July 2025 at 09:00'."""
    local = to_business_local(instant, tz)
    return f"{local.strftime('%A')} {local.day} {local.strftime('%B %Y')} at {local.strftime('%H:%M')}"
