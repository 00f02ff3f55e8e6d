# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from locotrack.infra.redis_client import RedisClient


class TestRedisClient:
    """Тесты для RedisClient."""

    @pytest.fixture
    def redis_client(self) -> RedisClient:
        """Создаёт экземпляр RedisClient для тестов."""
        # Сбрасываем синглтон для каждого теста
        RedisClient._instance = None
        RedisClient._client = None
        return RedisClient()

    def test_singleton(self) -> None:
        """Проверяет паттерн Singleton."""
        RedisClient._instance = None

        assert RedisClient() is RedisClient()

    def test_client_not_initialized(self, redis_client: RedisClient) -> None:
        with pytest.raises(RuntimeError, match="Redis клиент не инициализирован"):
            _ = redis_client.client

    def test_make_key(self, redis_client: RedisClient) -> None:
        assert redis_client.make_key("realtime") == "locotrack:realtime"

    def test_make_key_custom_namespace(self, redis_client: RedisClient) -> None:
        redis_client._namespace = "custom"

        assert redis_client.make_key("realtime") == "custom:realtime"

    @pytest.mark.asyncio
    async def test_connect(self, redis_client: RedisClient) -> None:
        """Проверяет подключение к Redis."""
        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(return_value=True)

        with patch("redis.asyncio.from_url", return_value=mock_redis):
            await redis_client.connect(url="redis://localhost:6379/0", max_connections=10, namespace="lt")

        assert redis_client._client is mock_redis
        assert redis_client.namespace == "lt"
        mock_redis.ping.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_already_connected(self, redis_client: RedisClient) -> None:
        redis_client._client = AsyncMock()

        with patch("redis.asyncio.from_url") as mock_from_url:
            await redis_client.connect(url="redis://localhost:6379/0")

        mock_from_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_disconnect(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        redis_client._client = mock_redis

        await redis_client.disconnect()

        mock_redis.aclose.assert_called_once()
        assert redis_client._client is None

    @pytest.mark.asyncio
    async def test_publish(self, redis_client: RedisClient) -> None:
        """Сообщение сериализуется в JSON и публикуется в канал с namespace."""
        mock_redis = AsyncMock()
        mock_redis.publish.return_value = 2
        redis_client._client = mock_redis

        result = await redis_client.publish("realtime", {"target": "all", "event": {"event": "pong"}})

        assert result == 2
        channel, data = mock_redis.publish.call_args.args
        assert channel == "locotrack:realtime"
        assert json.loads(data) == {"target": "all", "event": {"event": "pong"}}

    def test_pubsub(self, redis_client: RedisClient) -> None:
        mock_redis = MagicMock()
        redis_client._client = mock_redis

        assert redis_client.pubsub() is mock_redis.pubsub.return_value

    @pytest.mark.asyncio
    async def test_health_check(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        mock_redis.ping.return_value = True
        redis_client._client = mock_redis

        assert await redis_client.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_failure(self, redis_client: RedisClient) -> None:
        mock_redis = AsyncMock()
        mock_redis.ping.side_effect = ConnectionError("down")
        redis_client._client = mock_redis

        with patch("locotrack.infra.redis_client.log_error", new_callable=AsyncMock):
            assert await redis_client.health_check() is False
