"""
Notarium Backend — Time Helpers
=================================

All timestamps are stored and compared in UTC. SQLite hands datetimes back
without tzinfo, so values read from the database pass through as_utc()
before being compared with utcnow().
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
