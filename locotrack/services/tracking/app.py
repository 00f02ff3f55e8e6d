# locotrack/services/tracking/app.py
"""
FastAPI приложение сервиса трекинга автобусов.

REST endpoints:
- /api/* — приём и чтение локаций (routes.py)
- GET /health — проверка здоровья
- GET /stats — статистика приёма, соединений и монитора

WebSocket:
- /ws — live-обновления; клиент подписывается событием track-bus
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from locotrack import __version__
from locotrack.common.constants import RejectReason, TypeMsg
from locotrack.common.exceptions import TrackingError
from locotrack.common.logger import log_debug, log_error, log_info, setup_logging
from locotrack.common.time_utils import utcnow
from locotrack.infra.database import close_db
from locotrack.infra.redis_client import close_redis
from locotrack.services.tracking.bootstrap import (
    TrackingServices,
    build_services,
    connect_relay,
    select_store,
)
from locotrack.services.tracking.dependencies import get_services
from locotrack.services.tracking.routes import admin_router, router
from locotrack.shared.models.common import ErrorResponse, HealthStatus

SERVICE_NAME = "tracking_service"


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    # Startup
    owns_infra = getattr(app.state, "services", None) is None
    if owns_infra:
        from locotrack.config import settings

        setup_logging()
        store = await select_store(settings.tracking)
        redis = await connect_relay(settings.tracking)
        app.state.services = build_services(store, settings.tracking, redis=redis)

    services: TrackingServices = app.state.services
    await services.start()
    await log_info(
        f"Сервис трекинга запущен: хранилище {services.store.name}, рассылка {services.broadcaster.name}",
        type_msg=TypeMsg.INFO,
    )

    yield

    # Shutdown
    await services.stop()
    if owns_infra:
        await close_redis()
        await close_db()
        app.state.services = None
    await log_info("Сервис трекинга остановлен", type_msg=TypeMsg.INFO)


# === EXCEPTION HANDLERS ===

def _error_response(status_code: int, error: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error.model_dump())


async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    return _error_response(
        exc.status_code,
        ErrorResponse(error_code=exc.error_code, message=exc.message, details=exc.details or None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return _error_response(
        400,
        ErrorResponse(
            error_code=RejectReason.INVALID_INPUT.value,
            message="Некорректный запрос",
            details={"errors": errors},
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    await log_error(f"Необработанная ошибка {request.method} {request.url.path}: {exc}", exc_info=True)
    return _error_response(
        500,
        ErrorResponse(error_code=RejectReason.INTERNAL_ERROR.value, message="Внутренняя ошибка сервера"),
    )


# === APP ===

def create_app(services: TrackingServices | None = None) -> FastAPI:
    """
    Создаёт приложение.

    Args:
        services: Готовые компоненты ядра; если не переданы,
            они собираются в lifespan по настройкам
    """
    from locotrack.config import settings

    app = FastAPI(
        title="LOCOTrack Tracking Service",
        description="Приём координат автобусов и live-рассылка зрителям.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.deployment.CORS_ALLOW_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TrackingError, tracking_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    app.include_router(admin_router)

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        """Проверка здоровья сервиса."""
        tracking = get_services(request)
        store_ok = await tracking.store.health_check()
        return HealthStatus(
            service=SERVICE_NAME,
            status="healthy" if store_ok else "degraded",
            version=__version__,
            uptime_seconds=(utcnow() - tracking.started_at).total_seconds(),
            dependencies={
                "location_store": tracking.store.name,
                "location_store_status": "ok" if store_ok else "unavailable",
                "realtime_relay": tracking.broadcaster.name,
            },
        )

    # === STATS ===

    @app.get("/stats", tags=["Stats"])
    async def get_stats(request: Request) -> dict[str, Any]:
        """Статистика приёма, соединений и монитора устаревания."""
        return get_services(request).get_stats()

    # === WEBSOCKET ===

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """
        WebSocket для зрителей.

        Входящие сообщения:
        - {"event": "track-bus", "data": {"vehicleId": "..."}}
        - {"event": "stop-tracking", "data": {"vehicleId": "..."}}
        - {"event": "ping"}
        """
        manager = websocket.app.state.services.manager
        connection_id = await manager.connect(websocket)

        try:
            while True:
                try:
                    data = await websocket.receive_json()
                except ValueError:
                    # Не JSON: отвечаем ошибкой и продолжаем слушать
                    await manager.handle_client_message(connection_id, None)
                    continue
                await manager.handle_client_message(connection_id, data)

        except WebSocketDisconnect:
            pass
        except Exception as e:
            await log_debug(f"WebSocket {connection_id} закрыт с ошибкой: {e}")
        finally:
            await manager.on_disconnect(connection_id)

    return app


app = create_app()
