"""
Standardized UTC timestamp utilities.

All timestamps written to deferred_links are timezone-aware UTC datetimes
produced here, so the recency window and expiry comparisons never mix
naive and aware values.
"""
from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """
    Return current UTC time with timezone info.

    Use this instead of datetime.now() or datetime.utcnow().
    """
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (e.g. from a TIMESTAMP column) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def minutes_before(moment: datetime, minutes: int) -> datetime:
    return moment - timedelta(minutes=minutes)


def isoformat_z(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 with a trailing Z, for JSON responses."""
    if value is None:
        return None
    return ensure_aware(value).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
