# locotrack/common/time_utils.py
"""
Работа со временем. Внутри сервиса все метки времени — aware UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Текущее время в UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive-время считаем UTC, aware-время приводим к UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    """ISO-8601 с суффиксом Z."""
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")
