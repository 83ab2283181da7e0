"""
Timezone utilities.

All timestamps are stored as naive UTC datetimes (SQLite has no timezone
type); upstream payloads arrive either as ISO 8601 strings with offsets or
as unix seconds and are normalized here.
"""
from datetime import datetime, timezone
from typing import Optional

# UTC timezone for Python < 3.11 compatibility
try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Convert an aware datetime to naive UTC; naive input is assumed UTC.

    Args:
        value: Datetime from an upstream payload or the database

    Returns:
        Naive UTC datetime, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_unix(seconds: int) -> datetime:
    """Convert unix seconds to a naive UTC datetime."""
    return datetime.fromtimestamp(seconds, UTC).replace(tzinfo=None)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Render a stored naive UTC datetime as RFC 3339 with a Z suffix."""
    if value is None:
        return None
    return to_naive_utc(value).isoformat(timespec="seconds") + "Z"
