# locotrack/services/realtime_ws/broadcaster.py
"""
Стратегии рассылки realtime-событий.

- LocalBroadcaster — доставка напрямую клиентам этого процесса;
- RedisBroadcaster — публикация в Redis Pub/Sub; каждый инстанс сервиса
  получает сообщение и доставляет его своим клиентам.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from locotrack.common.constants import TypeMsg
from locotrack.common.logger import log_debug, log_info
from locotrack.infra.redis_client import RedisClient
from locotrack.services.realtime_ws.connection_manager import ConnectionManager
from locotrack.services.realtime_ws.redis_subscriber import RedisSubscriber
from locotrack.shared.models.events import RealtimeEvent

# Адресаты сообщения в канале
TARGET_VEHICLE = "vehicle"
TARGET_ALL = "all"


class Broadcaster(ABC):
    """Интерфейс рассылки, которым пользуются диспетчер и монитор."""

    name: str = "abstract"

    @abstractmethod
    async def push_to_subscribers(self, vehicle_id: str, event: RealtimeEvent) -> int:
        """Событие подписчикам транспорта."""

    @abstractmethod
    async def push_to_all(self, event: RealtimeEvent) -> int:
        """Событие всем подключённым клиентам."""

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class LocalBroadcaster(Broadcaster):
    """Доставка в пределах одного процесса."""

    name = "local"

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager

    async def push_to_subscribers(self, vehicle_id: str, event: RealtimeEvent) -> int:
        return await self._manager.push_to_subscribers(vehicle_id, event)

    async def push_to_all(self, event: RealtimeEvent) -> int:
        return await self._manager.push_to_all(event)


class RedisBroadcaster(Broadcaster):
    """
    Рассылка через Redis Pub/Sub.

    Сообщение в канале:
        {"target": "vehicle", "vehicleId": "...", "event": {...}}
        {"target": "all", "event": {...}}

    Локальная доставка происходит только при получении сообщения из канала,
    в том числе своего собственного, поэтому порядок событий одинаков на всех инстансах.
    """

    name = "redis"

    def __init__(
        self,
        manager: ConnectionManager,
        redis: RedisClient,
        channel: str = "realtime",
    ) -> None:
        self._manager = manager
        self._redis = redis
        self._channel = channel
        self._subscriber = RedisSubscriber(redis.pubsub, self.handle_redis_message)

    @property
    def channel(self) -> str:
        """Полное имя канала с namespace."""
        return self._redis.make_key(self._channel)

    async def start(self) -> None:
        await self._subscriber.start(self.channel)
        await log_info(f"Межинстансная рассылка через Redis: {self.channel}", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        await self._subscriber.stop()

    async def push_to_subscribers(self, vehicle_id: str, event: RealtimeEvent) -> int:
        return await self._redis.publish(self._channel, {
            "target": TARGET_VEHICLE,
            "vehicleId": vehicle_id,
            "event": event.to_message(),
        })

    async def push_to_all(self, event: RealtimeEvent) -> int:
        return await self._redis.publish(self._channel, {
            "target": TARGET_ALL,
            "event": event.to_message(),
        })

    async def handle_redis_message(self, channel: str, data: dict[str, Any]) -> None:
        """
        Обработать сообщение из Redis и переслать в WebSocket.

        - target=vehicle -> подписчикам транспорта
        - target=all -> всем
        """
        try:
            event = RealtimeEvent.from_message(data["event"])
        except (KeyError, TypeError, ValueError) as e:
            await log_debug(f"Пропущено сообщение из {channel}: {e}")
            return

        target = data.get("target")
        if target == TARGET_ALL:
            await self._manager.push_to_all(event)
        elif target == TARGET_VEHICLE and data.get("vehicleId"):
            await self._manager.push_to_subscribers(data["vehicleId"], event)
        else:
            await log_debug(f"Неизвестный адресат в {channel}: {target}")
