# locotrack/services/realtime_ws/redis_subscriber.py
"""
Подписчик на Redis Pub/Sub.

Слушает канал межинстансной рассылки и передаёт каждое сообщение
в обработчик, который доставляет событие локальным WebSocket-клиентам.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Coroutine

from redis.asyncio.client import PubSub

from locotrack.common.logger import log_debug, log_error


class RedisSubscriber:
    """
    Подписчик на Redis Pub/Sub.

    Получает сообщения и пересылает их в message_handler.
    """

    def __init__(
        self,
        pubsub_factory: Callable[[], PubSub],
        message_handler: Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]],
    ) -> None:
        """
        Args:
            pubsub_factory: Создаёт объект PubSub (RedisClient.pubsub)
            message_handler: Callback для обработки сообщений (channel, data)
        """
        self._pubsub_factory = pubsub_factory
        self._handler = message_handler
        self._pubsub: PubSub | None = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._channels: set[str] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, *channels: str) -> None:
        """Подписаться на каналы и начать слушать."""
        if self._running:
            return

        self._pubsub = self._pubsub_factory()
        self._running = True

        for channel in channels:
            await self.subscribe_channel(channel)

        self._task = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        """Остановить подписчика."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pubsub:
            await self._pubsub.unsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None
        self._channels.clear()

    async def subscribe_channel(self, channel: str) -> None:
        """Подписаться на канал."""
        if self._pubsub and channel not in self._channels:
            await self._pubsub.subscribe(channel)
            self._channels.add(channel)

    async def _listen(self) -> None:
        """Слушать сообщения из Redis."""
        while self._running:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )

                if message is None:
                    continue

                await self._process_message(message)

            except asyncio.CancelledError:
                break
            except Exception as e:
                # Логируем ошибку, но продолжаем работу
                await log_error(f"Ошибка подписчика Redis: {e}")
                await asyncio.sleep(1)

    async def _process_message(self, message: dict[str, Any]) -> None:
        """Обработать сообщение из Redis."""
        if message.get("type") != "message":
            return

        channel = message.get("channel", "")
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")

        data = message.get("data", "")
        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            parsed_data = json.loads(data)
        except json.JSONDecodeError:
            await log_debug(f"Некорректное сообщение в канале {channel}: {data!r}")
            return

        if not isinstance(parsed_data, dict):
            return

        await self._handler(channel, parsed_data)
