from datetime import datetime, timezone
from typing import Callable

# Timestamps are stored as naive UTC; SQLite drops tzinfo on round-trip.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def get_clock() -> Clock:
    """FastAPI dependency returning the clock stores should use."""
    return utcnow
