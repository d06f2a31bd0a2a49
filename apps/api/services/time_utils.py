"""
Time Utilities

All timestamps are stored and compared in UTC.

Functions:
- utcnow(): timezone-aware current time
- as_utc(dt): attach UTC to naive datetimes read back from the database
- start_of_week(d): Monday of the week containing d
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on round-trip; Postgres timestamptz keeps it."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_week(d: date) -> date:
    return d - timedelta(days=d.weekday())
