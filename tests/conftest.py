# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")

from locotrack.core.tracking.store import InMemoryLocationStore  # noqa: E402
from locotrack.services.realtime_ws.broadcaster import Broadcaster  # noqa: E402
from locotrack.shared.models.events import RealtimeEvent  # noqa: E402
from locotrack.shared.models.location import VehicleLocationRecord  # noqa: E402


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "PROJECT_NAME": "locotrack_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "TRACKING_SERVICE_HOST": "127.0.0.1",
        "TRACKING_SERVICE_PORT": 3100,
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "locotrack_test",
        "DB_USER": "postgres",
        "DB_PASSWORD": "test_password",
        "DB_RETRY_ATTEMPTS": 2,
        "DB_RETRY_DELAY": 0.5,
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_NAMESPACE": "locotrack_test",
        "LIVENESS_THRESHOLD_SECONDS": 15,
        "SWEEP_INTERVAL_SECONDS": 30,
        "CLIENT_UPDATE_INTERVAL_SECONDS": 5,
        "WS_SEND_QUEUE_SIZE": 10,
        "STORE_BACKEND": "memory",
        "FALLBACK_TO_MEMORY": True,
        "REALTIME_RELAY_ENABLED": False,
        "REALTIME_RELAY_CHANNEL": "realtime",
        "ADMIN_API_TOKEN": "secret",
    }


# =============================================================================
# ВРЕМЯ
# =============================================================================

class FakeClock:
    """Управляемые часы для диспетчера и монитора."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 18, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# ЯДРО
# =============================================================================

class RecordingBroadcaster(Broadcaster):
    """Запоминает разосланные события вместо доставки."""

    name = "recording"

    def __init__(self) -> None:
        self.to_subscribers: list[tuple[str, RealtimeEvent]] = []
        self.to_all: list[RealtimeEvent] = []

    async def push_to_subscribers(self, vehicle_id: str, event: RealtimeEvent) -> int:
        self.to_subscribers.append((vehicle_id, event))
        return 1

    async def push_to_all(self, event: RealtimeEvent) -> int:
        self.to_all.append(event)
        return 1


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def memory_store() -> InMemoryLocationStore:
    """Хранилище в памяти в режиме реестра: неизвестный транспорт отклоняется."""
    return InMemoryLocationStore(authoritative=True)


@pytest.fixture
def make_record():
    """Фабрика записей транспорта."""
    def _make(vehicle_id: str = "A4", **overrides: Any) -> VehicleLocationRecord:
        data: dict[str, Any] = {
            "vehicle_id": vehicle_id,
            "organization_id": "ORG-1",
            "bus_number": f"BUS-{vehicle_id}",
            "route": "Central - Airport",
            "start": "Central",
            "destination": "Airport",
            "stops": ("Central", "Market", "Airport"),
        }
        data.update(overrides)
        return VehicleLocationRecord(**data)

    return _make


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.fetchval = AsyncMock(return_value=None)
    db.health_check = AsyncMock(return_value=True)

    # Прямое соединение: async with db.acquire() as conn
    db.connection = AsyncMock()
    db.connection.fetchrow = AsyncMock(return_value=None)
    db.acquire = MagicMock()
    db.acquire.return_value.__aenter__.return_value = db.connection
    db.acquire.return_value.__aexit__.return_value = None
    return db


@pytest.fixture
def mock_websocket() -> AsyncMock:
    """Мок WebSocket соединения."""
    websocket = AsyncMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.close = AsyncMock()
    return websocket
