"""UTC-everywhere time handling, plus the calendar-date helper billing needs.

Timestamps (paid_at, created_at) are always timezone-aware UTC. Due dates are
plain calendar dates.
"""

from datetime import date, datetime, timedelta, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """
    Normalize a client-supplied datetime to UTC.

    Naive datetimes are taken as UTC (date pickers send "2024-01-05" or
    "2024-01-05T00:00:00"). Aware datetimes are converted.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_days(day: date, days: int) -> date:
    """Shift a calendar date by a number of days."""
    return day + timedelta(days=days)
