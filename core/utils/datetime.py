"""Datetime utilities for common operations."""

from datetime import datetime, date, timedelta, timezone
from typing import Optional

SECONDS_PER_DAY = 86400


def now() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes.

    Some database drivers (SQLite) hand back naive values for
    timezone-aware columns; everything stored is UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(datetime_str: str) -> Optional[datetime]:
    """
    Parse an ISO-8601 or common datetime string.

    Args:
        datetime_str: Datetime string to parse

    Returns:
        Timezone-aware datetime or None if invalid
    """
    if not datetime_str:
        return None

    try:
        return ensure_utc(datetime.fromisoformat(datetime_str.replace("Z", "+00:00")))
    except ValueError:
        pass

    formats = [
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d",
        "%m/%d/%Y %H:%M:%S",
        "%m/%d/%Y",
    ]

    for fmt in formats:
        try:
            return datetime.strptime(datetime_str, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    return None


def fractional_days_between(start: datetime, end: datetime) -> float:
    """Elapsed days as a float (seconds / 86400)."""
    delta = ensure_utc(end) - ensure_utc(start)
    return delta.total_seconds() / SECONDS_PER_DAY


def start_of_day(dt: datetime | date) -> datetime:
    """
    Get start of day (00:00:00 UTC) for a date or datetime.

    Args:
        dt: Date or datetime

    Returns:
        Datetime at start of day
    """
    if isinstance(dt, datetime):
        dt = dt.date()
    return datetime.combine(dt, datetime.min.time()).replace(tzinfo=timezone.utc)


def start_of_week(dt: datetime | date) -> datetime:
    """Sunday 00:00 UTC of the week containing dt."""
    day = start_of_day(dt)
    # weekday(): Monday=0 .. Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    dt = ensure_utc(dt)
    return dt.isoformat() if dt else None
