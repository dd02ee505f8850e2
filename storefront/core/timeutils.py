"""Работа со временем (всё хранится и сравнивается в UTC)."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Текущее время в UTC с таймзоной."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Привести дату к aware UTC.

    SQLite отдаёт даты без таймзоны, поэтому naive-значения считаем UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
