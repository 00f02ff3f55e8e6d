# locotrack/services/realtime_ws/connection_manager.py
"""
Менеджер WebSocket соединений.
Управляет подписками и доставкой событий зрителям.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from fastapi import WebSocket

from locotrack.common.constants import RealtimeEventType, TypeMsg
from locotrack.common.logger import log_debug, log_info
from locotrack.common.time_utils import utcnow
from locotrack.core.tracking.subscriptions import SubscriptionRegistry
from locotrack.core.tracking.validation import canonical_id
from locotrack.shared.models.events import RealtimeEvent


@dataclass
class ConnectionInfo:
    """Информация о соединении."""
    connection_id: str
    websocket: WebSocket
    queue: asyncio.Queue
    connected_at: datetime = field(default_factory=utcnow)
    sender: asyncio.Task | None = None


class ConnectionManager:
    """
    Менеджер WebSocket соединений.

    У каждого соединения своя ограниченная очередь и задача-отправитель:
    медленный зритель не задерживает рассылку остальным.
    При переполнении очереди событие для этого зрителя отбрасывается.
    """

    def __init__(self, registry: SubscriptionRegistry, queue_size: int = 100) -> None:
        self._registry = registry
        self._queue_size = queue_size

        # connection_id -> ConnectionInfo
        self._connections: dict[str, ConnectionInfo] = {}

        # Для статистики
        self._total_connections: int = 0
        self._total_messages_sent: int = 0
        self._dropped_messages: int = 0

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def active_connections(self) -> int:
        """Количество активных соединений."""
        return len(self._connections)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    async def connect(self, websocket: WebSocket) -> str:
        """
        Принять соединение.

        Returns:
            Идентификатор соединения
        """
        await websocket.accept()

        connection_id = uuid4().hex
        conn = ConnectionInfo(
            connection_id=connection_id,
            websocket=websocket,
            queue=asyncio.Queue(maxsize=self._queue_size),
        )
        conn.sender = asyncio.create_task(self._sender(conn))
        self._connections[connection_id] = conn
        self._total_connections += 1

        await log_debug(f"WebSocket подключён: {connection_id}")
        return connection_id

    async def on_disconnect(self, connection_id: str) -> set[str]:
        """
        Отключить клиента. Повторный вызов ничего не делает.

        Returns:
            Транспорт, на который был подписан клиент
        """
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return set()

        vehicles = self._registry.on_connection_closed(connection_id)

        if conn.sender is not None and conn.sender is not asyncio.current_task():
            conn.sender.cancel()

        await log_debug(
            f"WebSocket отключён: {connection_id}",
            extra={"subscriptions": sorted(vehicles)},
        )
        return vehicles

    # =========================================================================
    # ПОДПИСКИ
    # =========================================================================

    async def on_subscribe_message(self, connection_id: str, vehicle_id: str) -> None:
        """Подписать клиента на транспорт."""
        if connection_id not in self._connections:
            return

        key = canonical_id(vehicle_id)
        self._registry.subscribe(connection_id, key)
        await self.send_personal(
            connection_id,
            RealtimeEvent(event=RealtimeEventType.SUBSCRIBED, data={"vehicleId": key}),
        )

    async def on_unsubscribe_message(self, connection_id: str, vehicle_id: str) -> None:
        """Отписать клиента от транспорта."""
        if connection_id not in self._connections:
            return

        key = canonical_id(vehicle_id)
        self._registry.unsubscribe(connection_id, key)
        await self.send_personal(
            connection_id,
            RealtimeEvent(event=RealtimeEventType.UNSUBSCRIBED, data={"vehicleId": key}),
        )

    async def handle_client_message(self, connection_id: str, message: Any) -> None:
        """
        Обработать сообщение от клиента.

        Входящие сообщения:
        - {"event": "track-bus", "data": {"vehicleId": "KA01AB1234"}}
        - {"event": "stop-tracking", "data": {"vehicleId": "KA01AB1234"}}
        - {"event": "ping"}
        """
        if not isinstance(message, dict):
            await self._send_error(connection_id, "Сообщение должно быть JSON-объектом")
            return

        action = message.get("event")

        if action == RealtimeEventType.PING.value:
            await self.send_personal(connection_id, RealtimeEvent(event=RealtimeEventType.PONG))
            return

        if action not in (RealtimeEventType.TRACK_BUS.value, RealtimeEventType.STOP_TRACKING.value):
            await self._send_error(connection_id, f"Неизвестное событие: {action}")
            return

        vehicle_id = _extract_vehicle_id(message.get("data"))
        if not vehicle_id:
            await self._send_error(connection_id, f"{action}: vehicleId обязателен")
            return

        if action == RealtimeEventType.TRACK_BUS.value:
            await self.on_subscribe_message(connection_id, vehicle_id)
        else:
            await self.on_unsubscribe_message(connection_id, vehicle_id)

    async def _send_error(self, connection_id: str, message: str) -> None:
        await log_debug(f"Некорректное сообщение от {connection_id}: {message}")
        await self.send_personal(connection_id, RealtimeEvent.error(message))

    # =========================================================================
    # ДОСТАВКА
    # =========================================================================

    async def send_personal(self, connection_id: str, event: RealtimeEvent) -> bool:
        """
        Отправить событие конкретному клиенту.

        Returns:
            True если событие поставлено в очередь
        """
        return self._enqueue(connection_id, event.to_message())

    async def push_to_subscribers(self, vehicle_id: str, event: RealtimeEvent) -> int:
        """
        Отправить событие всем подписчикам транспорта.

        Returns:
            Количество клиентов, в чьи очереди попало событие
        """
        message = event.to_message()
        return sum(
            1 for connection_id in self._registry.subscribers_of(vehicle_id)
            if self._enqueue(connection_id, message)
        )

    async def push_to_all(self, event: RealtimeEvent) -> int:
        """Отправить событие всем подключённым клиентам."""
        message = event.to_message()
        sent_count = sum(
            1 for connection_id in list(self._connections)
            if self._enqueue(connection_id, message)
        )

        # Транспорт снят с учёта: подписки на него больше не нужны
        if event.event == RealtimeEventType.BUS_REMOVED:
            vehicle_id = event.data.get("vehicleId")
            if vehicle_id:
                self._registry.drop_vehicle(vehicle_id)

        return sent_count

    def _enqueue(self, connection_id: str, message: dict[str, Any]) -> bool:
        conn = self._connections.get(connection_id)
        if conn is None:
            return False

        try:
            conn.queue.put_nowait(message)
        except asyncio.QueueFull:
            self._dropped_messages += 1
            return False
        return True

    async def _sender(self, conn: ConnectionInfo) -> None:
        """Отправляет события из очереди соединения в сокет."""
        try:
            while True:
                message = await conn.queue.get()
                await conn.websocket.send_json(message)
                self._total_messages_sent += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Соединение разорвано
            await log_debug(f"Ошибка отправки в {conn.connection_id}: {e}")
            await self.on_disconnect(conn.connection_id)

    async def close_all(self) -> None:
        """Закрыть все соединения (остановка сервиса)."""
        for connection_id in list(self._connections):
            conn = self._connections.get(connection_id)
            await self.on_disconnect(connection_id)
            if conn is not None:
                await self._close_connection(conn)

        await log_info("Все WebSocket соединения закрыты", type_msg=TypeMsg.INFO)

    async def _close_connection(self, conn: ConnectionInfo) -> None:
        """Закрыть соединение."""
        try:
            await conn.websocket.close()
        except Exception as e:
            await log_debug(f"Соединение {conn.connection_id} уже закрыто: {e}")

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._connections),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
            "dropped_messages": self._dropped_messages,
            **self._registry.stats(),
        }


def _extract_vehicle_id(data: Any) -> str | None:
    # Старые клиенты присылают идентификатор строкой вместо объекта
    if isinstance(data, str):
        value = data
    elif isinstance(data, dict):
        value = data.get("vehicleId") or data.get("regNo")
    else:
        return None

    if not isinstance(value, str) or not value.strip():
        return None
    return canonical_id(value)
