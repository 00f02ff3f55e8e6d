#!/usr/bin/env python3
# main.py
"""
Главная точка входа LOCOTrack.
Запускает сервис трекинга (HTTP + WebSocket) через uvicorn.
"""

from __future__ import annotations

import sys

import uvicorn

from locotrack.config import settings
from locotrack.common.logger import setup_logging

APP_PATH = "locotrack.services.tracking.app:app"


def print_usage() -> None:
    """Выводит справку по запуску."""
    print(f"""
LOCOTrack v{settings.system.VERSION}

Использование:
    python main.py [tracking]

Режимы:
    tracking    — сервис трекинга: приём координат, API и WebSocket (по умолчанию)

Переменные окружения:
    STORE_BACKEND           — postgres | memory
    REALTIME_RELAY_ENABLED  — межинстансная рассылка через Redis
    ADMIN_API_TOKEN         — токен административных эндпоинтов
    """)


def run_tracking() -> None:
    """Запускает сервис трекинга."""
    uvicorn.run(
        APP_PATH,
        host=settings.deployment.TRACKING_SERVICE_HOST,
        port=settings.deployment.TRACKING_SERVICE_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


def main(mode: str = "tracking") -> None:
    setup_logging()

    if mode == "tracking":
        run_tracking()
        return

    print(f"Неизвестный режим: {mode}")
    print_usage()
    sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1].lower() in ("--help", "-h"):
        print_usage()
        sys.exit(0)

    main(sys.argv[1].lower() if len(sys.argv) > 1 else "tracking")
