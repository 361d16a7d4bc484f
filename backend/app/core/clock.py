"""UTC helpers. All timestamps are stored as UTC; SQLite hands them back naive."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def month_start(now: datetime) -> datetime:
    now = as_utc(now)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
