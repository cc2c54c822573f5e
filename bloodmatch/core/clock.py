"""UTC time helpers shared by core and services.

Stored timestamps come back naive from SQLite and aware from PostgreSQL; every
comparison goes through as_utc so both behave the same.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes, convert aware ones."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
