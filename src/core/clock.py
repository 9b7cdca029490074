"""
Time helpers. All timestamps are naive UTC, matching what the SQL store reads back.
"""

from datetime import date, datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_date(value: datetime | date) -> date:
    """Drop the time of day, keeping only the calendar date."""
    if isinstance(value, datetime):
        return value.date()
    return value
