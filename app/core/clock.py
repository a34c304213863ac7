"""
Wall-clock helpers.

All expiry and cool-down math runs on aware UTC datetimes. SQLite (used in
tests) hands back naive values, so anything read from the database goes
through ensure_utc() before it is compared with utcnow().
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime] = None) -> datetime:
    """Return the injected clock value (normalised to UTC) or the real time."""
    if now is None:
        return utcnow()
    return ensure_utc(now)
