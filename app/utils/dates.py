from datetime import datetime, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_timestamp(value: Optional[Union[int, float]]) -> Optional[datetime]:
    """Stripe sends unix seconds; 0 and None both mean 'not set'."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)
