# tests/services/realtime_ws/test_redis_subscriber.py
"""
Тесты для подписчика Redis Pub/Sub.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from locotrack.services.realtime_ws.redis_subscriber import RedisSubscriber


@pytest.fixture
def pubsub() -> AsyncMock:
    async def idle(**kwargs):
        await asyncio.sleep(0.01)
        return None

    pubsub = AsyncMock()
    pubsub.get_message = AsyncMock(side_effect=idle)
    return pubsub


@pytest.fixture
def handler() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def subscriber(pubsub, handler) -> RedisSubscriber:
    return RedisSubscriber(MagicMock(return_value=pubsub), handler)


class TestRedisSubscriber:
    """Тесты для RedisSubscriber."""

    @pytest.mark.asyncio
    async def test_process_message(self, subscriber, handler) -> None:
        """JSON из канала передаётся в обработчик."""
        payload = {"target": "all", "event": {"event": "pong", "data": {}}}

        await subscriber._process_message({
            "type": "message",
            "channel": b"locotrack:realtime",
            "data": json.dumps(payload).encode("utf-8"),
        })

        handler.assert_awaited_once_with("locotrack:realtime", payload)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", [
        {"type": "subscribe", "channel": "locotrack:realtime", "data": 1},
        {"type": "message", "channel": "locotrack:realtime", "data": "not json"},
        {"type": "message", "channel": "locotrack:realtime", "data": "[1, 2]"},
    ])
    async def test_ignored_messages(self, subscriber, handler, message) -> None:
        await subscriber._process_message(message)

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_subscribes_and_stop_closes(self, subscriber, pubsub) -> None:
        await subscriber.start("locotrack:realtime")

        assert subscriber.is_running is True
        pubsub.subscribe.assert_awaited_once_with("locotrack:realtime")

        await subscriber.start("locotrack:realtime")
        await subscriber.stop()

        assert subscriber.is_running is False
        pubsub.subscribe.assert_awaited_once()
        pubsub.unsubscribe.assert_awaited_once()
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_listen_forwards_messages(self, subscriber, pubsub, handler) -> None:
        received = asyncio.Event()
        handler.side_effect = lambda channel, data: received.set()
        messages = [
            {"type": "message", "channel": "locotrack:realtime", "data": '{"target": "all"}'},
        ]

        async def get_message(**kwargs):
            if messages:
                return messages.pop(0)
            await asyncio.sleep(0.01)
            return None

        pubsub.get_message.side_effect = get_message

        await subscriber.start("locotrack:realtime")
        await asyncio.wait_for(received.wait(), timeout=1.0)
        await subscriber.stop()

        handler.assert_awaited_once_with("locotrack:realtime", {"target": "all"})
