"""
Time helpers. Engine components take a `clock` callable so tests can drive
SLA windows without sleeping.
"""
from datetime import datetime, timezone


def utcnow():
    """Timezone-aware current UTC time (the default engine clock)."""
    return datetime.now(timezone.utc)


def to_utc(dt):
    """Normalise a datetime read back from the DB. SQLite drops tzinfo."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_since(start, now):
    if start is None:
        return 0.0
    return (to_utc(now) - to_utc(start)).total_seconds() / 3600.0
