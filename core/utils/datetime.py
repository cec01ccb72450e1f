"""Datetime utilities for common operations."""

from datetime import datetime, date, timedelta, timezone
from typing import Optional


def now() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Return a timezone-aware UTC datetime.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on read).
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_days(dt: datetime, days: int) -> datetime:
    """Add days to a datetime."""
    return dt + timedelta(days=days)


def hours_between(start: datetime, end: datetime) -> float:
    """
    Calculate hours between two datetimes.

    Args:
        start: Start datetime
        end: End datetime

    Returns:
        Number of hours (negative if end is before start)
    """
    return (as_utc(end) - as_utc(start)).total_seconds() / 3600


def isoformat(value: Optional[datetime | date]) -> Optional[str]:
    """Render a datetime/date as ISO 8601, normalising datetimes to UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value.isoformat()
