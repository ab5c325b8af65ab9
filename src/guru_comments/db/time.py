# src/guru_comments/db/time.py
"""Time utilities for database models."""

from datetime import UTC, datetime, timedelta

_TICK = timedelta(microseconds=1)


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns; those are stored as UTC, so they are tagged rather than shifted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def later_than(previous: datetime) -> datetime:
    """Return the current time, bumped so it is strictly after ``previous``."""
    now = utcnow()
    floor = as_utc(previous) + _TICK
    return now if now >= floor else floor
