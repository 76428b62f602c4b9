"""
Time utilities for the Flowboard API.

This module provides a single source of truth for time operations, so
timestamps written into JSON columns and compared in validation agree.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    SQLite drops tzinfo on round trip, so naive values read back from the
    database are taken to already be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_date_range_valid(start: Optional[datetime], end: Optional[datetime]) -> bool:
    """Return False only when both dates are set and start is after end."""
    if start is None or end is None:
        return True
    return as_utc(start) <= as_utc(end)
