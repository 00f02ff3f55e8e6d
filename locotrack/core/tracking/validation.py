# locotrack/core/tracking/validation.py
"""
Проверка входных данных локации.

Функции не имеют побочных эффектов: при ошибке бросают InvalidInputError,
при успехе возвращают нормализованное значение.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from locotrack.common.exceptions import InvalidInputError
from locotrack.common.time_utils import ensure_utc

LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)


def canonical_id(value: str) -> str:
    """Каноническая форма идентификатора: без пробелов по краям, в верхнем регистре."""
    return value.strip().upper()


def normalize_vehicle_id(value: Any) -> str:
    """
    Проверяет и нормализует идентификатор транспорта.

    Raises:
        InvalidInputError: пустое значение или не строка
    """
    if not isinstance(value, str):
        raise InvalidInputError("vehicleId обязателен", details={"field": "vehicleId"})

    vehicle_id = canonical_id(value)
    if not vehicle_id:
        raise InvalidInputError("vehicleId не может быть пустым", details={"field": "vehicleId"})
    return vehicle_id


def _require_number(value: Any, field: str) -> float:
    # bool является подклассом int, но координатой не является
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(f"{field} должен быть числом", details={"field": field})

    number = float(value)
    if not math.isfinite(number):
        raise InvalidInputError(f"{field} должен быть конечным числом", details={"field": field})
    return number


def validate_coordinates(latitude: Any, longitude: Any) -> tuple[float, float]:
    """
    Проверяет пару координат.

    Returns:
        (latitude, longitude) как float

    Raises:
        InvalidInputError: координата отсутствует, не число или вне диапазона
    """
    lat = _require_number(latitude, "latitude")
    lon = _require_number(longitude, "longitude")

    if not LATITUDE_RANGE[0] <= lat <= LATITUDE_RANGE[1]:
        raise InvalidInputError(
            f"latitude вне диапазона [-90, 90]: {lat}",
            details={"field": "latitude", "value": lat},
        )
    if not LONGITUDE_RANGE[0] <= lon <= LONGITUDE_RANGE[1]:
        raise InvalidInputError(
            f"longitude вне диапазона [-180, 180]: {lon}",
            details={"field": "longitude", "value": lon},
        )
    return lat, lon


def validate_accuracy(accuracy: Any) -> float | None:
    """Точность в метрах: необязательна; переданная должна быть неотрицательным числом."""
    if accuracy is None:
        return None

    value = _require_number(accuracy, "accuracy")
    if value < 0:
        raise InvalidInputError(
            f"accuracy не может быть отрицательной: {value}",
            details={"field": "accuracy", "value": value},
        )
    return value


def parse_captured_at(value: Any) -> datetime | None:
    """
    Время фиксации координат.

    Принимает datetime или строку ISO-8601 (в том числе с суффиксом Z).
    Naive-время считается UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            pass

    raise InvalidInputError(
        "capturedAt должен быть временем в формате ISO-8601",
        details={"field": "capturedAt"},
    )
