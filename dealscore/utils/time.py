"""Time utilities (UTC)."""

from datetime import datetime, timedelta, timezone
from typing import Optional

# Smallest step the audit log uses to keep scored_at strictly increasing
MIN_RESOLUTION = timedelta(microseconds=1)


def utc_now_naive() -> datetime:
    """
    Current time in UTC, returned as naive datetime for DB storage.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to naive UTC.

    Naive values are assumed to already be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_iso(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored (naive UTC) datetime as an ISO string with offset."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc).isoformat()
