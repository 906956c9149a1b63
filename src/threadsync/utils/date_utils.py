"""
Date helpers.

All timestamps in threadsync are timezone-aware UTC datetimes. Values coming
off the wire without an offset are assumed to be UTC.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Milliseconds since the epoch."""
    return int(ensure_utc(value).timestamp() * 1000)


def elapsed_ms(earlier: datetime, later: datetime) -> float:
    """Signed milliseconds from ``earlier`` to ``later``."""
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() * 1000
