"""
UTC helpers.

Timestamps are persisted as naive UTC; values read back from PostgreSQL
come out timezone-aware, so comparisons go through as_naive_utc().
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
