"""
DateTime utility functions - All operations use IST (Indian Standard Time).
Database storage, internal operations, and API responses all use IST.
"""
from datetime import datetime, timezone, timedelta
from typing import Optional

# IST timezone (UTC+5:30)
IST = timezone(timedelta(hours=5, minutes=30))


def to_ist(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is in IST timezone.
    Naive datetimes (e.g. read back from SQLite) are assumed to already be IST.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=IST)
    return dt.astimezone(IST)


def to_ist_isoformat(dt: Optional[datetime]) -> Optional[str]:
    """ISO format string in IST, e.g. "2024-12-17T14:30:00+05:30"."""
    ist_dt = to_ist(dt)
    if ist_dt is None:
        return None
    return ist_dt.isoformat()


def now_ist() -> datetime:
    """
    Get current IST datetime (timezone-aware).
    Use this for ALL datetime operations - database storage, internal operations, API responses.
    """
    return datetime.now(IST)


def is_past(dt: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when dt is set and lies before now. A missing dt never expires."""
    if dt is None:
        return False
    return to_ist(now or now_ist()) > to_ist(dt)
