"""
Shared datetime helpers.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union


SECONDS_PER_DAY = 86400


def ensure_utc(dt: datetime) -> datetime:
    """Return a timezone-aware UTC datetime."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp and normalize it to UTC."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)


def parse_date(value: Union[str, date, datetime]) -> datetime:
    """Parse a ``YYYY-MM-DD`` date (or full timestamp) into a UTC midnight datetime.

    Raises:
        ValueError: if the value is not a date.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    parsed = parse_timestamp(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from ``start`` to ``end`` (negative when ``end`` is earlier)."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_DAY


def add_days(moment: datetime, days: int) -> datetime:
    return ensure_utc(moment) + timedelta(days=days)
