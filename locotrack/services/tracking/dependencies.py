# locotrack/services/tracking/dependencies.py
"""
Зависимости FastAPI для сервиса трекинга.
"""

from __future__ import annotations

import hmac

from fastapi import Header, Request

from locotrack.common.exceptions import AccessDeniedError
from locotrack.core.tracking.dispatcher import UpdateDispatcher
from locotrack.services.tracking.bootstrap import TrackingServices


def get_services(request: Request) -> TrackingServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Сервис трекинга не инициализирован")
    return services


def get_dispatcher(request: Request) -> UpdateDispatcher:
    return get_services(request).dispatcher


async def verify_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    """
    Проверяет X-Admin-Token для административных эндпоинтов.
    Если токен в настройках не задан, эндпоинты отключены.
    """
    from locotrack.config import settings

    expected = settings.security.ADMIN_API_TOKEN
    if not expected:
        raise AccessDeniedError("Административные эндпоинты отключены")
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        raise AccessDeniedError("Неверный токен администратора")
