# locotrack/services/tracking/bootstrap.py
"""
Сборка сервиса трекинга при старте.

Хранилище и стратегия рассылки выбираются один раз здесь,
обработчики запросов дальше не проверяют состояние подключений.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from locotrack.common.constants import StoreBackend, TypeMsg
from locotrack.common.logger import log_info, log_warning
from locotrack.common.time_utils import utcnow
from locotrack.config.loader import TrackingSettings
from locotrack.core.tracking.dispatcher import UpdateDispatcher
from locotrack.core.tracking.locks import VehicleLocks
from locotrack.core.tracking.pg_store import PostgresLocationStore
from locotrack.core.tracking.staleness import StalenessMonitor
from locotrack.core.tracking.store import FailoverLocationStore, InMemoryLocationStore, LocationStore
from locotrack.core.tracking.subscriptions import SubscriptionRegistry
from locotrack.infra.database import init_db
from locotrack.infra.redis_client import RedisClient, init_redis
from locotrack.services.realtime_ws.broadcaster import Broadcaster, LocalBroadcaster, RedisBroadcaster
from locotrack.services.realtime_ws.connection_manager import ConnectionManager


@dataclass
class TrackingServices:
    """Компоненты ядра одного процесса сервиса."""
    store: LocationStore
    registry: SubscriptionRegistry
    manager: ConnectionManager
    broadcaster: Broadcaster
    dispatcher: UpdateDispatcher
    monitor: StalenessMonitor
    started_at: datetime = field(default_factory=utcnow)

    async def start(self) -> None:
        await self.broadcaster.start()
        await self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()
        await self.broadcaster.stop()
        await self.manager.close_all()

    def get_stats(self) -> dict[str, Any]:
        return {
            "store": self.store.name,
            "broadcaster": self.broadcaster.name,
            "ingest": self.dispatcher.get_stats(),
            "realtime": self.manager.get_stats(),
            "staleness": self.monitor.get_stats(),
        }


def build_services(
    store: LocationStore,
    tracking: TrackingSettings,
    redis: RedisClient | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> TrackingServices:
    """
    Собирает компоненты ядра.

    Args:
        store: Выбранное хранилище локаций
        tracking: Секция настроек трекинга
        redis: Подключённый Redis, если включена межинстансная рассылка
        clock: Источник времени (подменяется в тестах)
    """
    registry = SubscriptionRegistry()
    manager = ConnectionManager(registry, queue_size=tracking.WS_SEND_QUEUE_SIZE)

    broadcaster: Broadcaster
    if redis is not None:
        broadcaster = RedisBroadcaster(manager, redis, channel=tracking.REALTIME_RELAY_CHANNEL)
    else:
        broadcaster = LocalBroadcaster(manager)

    # Одни блокировки на диспетчер и монитор
    locks = VehicleLocks()

    return TrackingServices(
        store=store,
        registry=registry,
        manager=manager,
        broadcaster=broadcaster,
        dispatcher=UpdateDispatcher(store, broadcaster, locks, clock=clock),
        monitor=StalenessMonitor(
            store,
            broadcaster,
            locks,
            liveness_threshold=tracking.LIVENESS_THRESHOLD_SECONDS,
            sweep_interval=tracking.SWEEP_INTERVAL_SECONDS,
            clock=clock,
        ),
    )


async def select_store(tracking: TrackingSettings) -> LocationStore:
    """
    Выбирает хранилище по настройкам.

    postgres: подключение к БД; если оно не удалось и разрешён FALLBACK_TO_MEMORY,
    сервис работает на памяти, иначе старт прерывается.
    memory: только память процесса.
    """
    if tracking.STORE_BACKEND == StoreBackend.MEMORY:
        await log_info("Хранилище локаций: память процесса", type_msg=TypeMsg.INFO)
        return InMemoryLocationStore()

    try:
        db = await init_db()
    except Exception as e:
        if not tracking.FALLBACK_TO_MEMORY:
            raise
        await log_warning(f"PostgreSQL недоступен ({e}), хранилище локаций: память процесса")
        return InMemoryLocationStore()

    primary = PostgresLocationStore(db)
    if tracking.FALLBACK_TO_MEMORY:
        await log_info("Хранилище локаций: PostgreSQL с запасным хранилищем в памяти", type_msg=TypeMsg.INFO)
        return FailoverLocationStore(primary, InMemoryLocationStore())

    await log_info("Хранилище локаций: PostgreSQL", type_msg=TypeMsg.INFO)
    return primary


async def connect_relay(tracking: TrackingSettings) -> RedisClient | None:
    """Подключает Redis для межинстансной рассылки, если она включена."""
    if not tracking.REALTIME_RELAY_ENABLED:
        return None

    try:
        return await init_redis()
    except Exception as e:
        await log_warning(f"Redis недоступен ({e}), события рассылаются только клиентам этого инстанса")
        return None
