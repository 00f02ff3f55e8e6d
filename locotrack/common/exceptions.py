# locotrack/common/exceptions.py
"""
Иерархия исключений ядра трекинга.

Каждое исключение несёт машиночитаемый код ошибки и HTTP-статус,
которые обработчики FastAPI превращают в ErrorResponse.
"""

from __future__ import annotations

from typing import Any

from locotrack.common.constants import RejectReason


class TrackingError(Exception):
    """Базовое исключение ядра трекинга."""

    error_code: str = RejectReason.INTERNAL_ERROR.value
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInputError(TrackingError):
    """Некорректные координаты или отсутствующие поля."""

    error_code = RejectReason.INVALID_INPUT.value
    status_code = 400


class VehicleNotFoundError(TrackingError):
    """Транспорт с таким идентификатором не зарегистрирован."""

    error_code = RejectReason.NOT_FOUND.value
    status_code = 404


class VehicleConflictError(TrackingError):
    """Транспорт с таким идентификатором уже существует."""

    error_code = "conflict"
    status_code = 409


class StoreUnavailableError(TrackingError):
    """Хранилище локаций недоступно."""

    error_code = RejectReason.STORE_UNAVAILABLE.value
    status_code = 503


class InternalError(TrackingError):
    """Непредвиденная ошибка."""

    error_code = RejectReason.INTERNAL_ERROR.value
    status_code = 500


class AccessDeniedError(TrackingError):
    """Неверный или отсутствующий токен администратора."""

    error_code = "forbidden"
    status_code = 403
