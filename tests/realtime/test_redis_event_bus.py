import json
from typing import Any, AsyncIterator, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.errors import DeliveryError
from app.realtime.redis_event_bus import RedisEventBus, RedisSubscription


def _pubsub(messages: List[Dict[str, Any]]) -> MagicMock:
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()

    async def listen() -> AsyncIterator[Dict[str, Any]]:
        for message in messages:
            yield message

    pubsub.listen = MagicMock(side_effect=listen)
    return pubsub


class TestRedisEventBus:
    """Unit tests for the Redis transport with a mocked client."""

    @pytest.fixture
    def redis(self) -> MagicMock:
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        client.publish = AsyncMock(return_value=2)
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_publish_serializes_json(self, redis: MagicMock) -> None:
        bus = RedisEventBus("redis://test", redis=redis)
        await bus.connect()

        result = await bus.publish("user:a", {"table": "messages"})

        assert result == 2
        redis.publish.assert_awaited_once_with(
            "user:a", json.dumps({"table": "messages"})
        )
        assert bus.publish_count == 1

    @pytest.mark.asyncio
    async def test_publish_failure_raises_delivery_error(
        self, redis: MagicMock
    ) -> None:
        redis.publish.side_effect = ConnectionError("down")
        bus = RedisEventBus("redis://test", redis=redis)

        with pytest.raises(DeliveryError):
            await bus.publish("user:a", {})

        assert bus.error_count == 1

    @pytest.mark.asyncio
    async def test_publish_before_connect(self) -> None:
        bus = RedisEventBus("redis://test")

        assert bus.is_connected is False
        with pytest.raises(DeliveryError):
            await bus.publish("user:a", {})

    @pytest.mark.asyncio
    async def test_subscription_decodes_messages(self, redis: MagicMock) -> None:
        pubsub = _pubsub(
            [
                {"type": "subscribe", "data": 1},
                {"type": "message", "data": "not json"},
                {"type": "message", "data": json.dumps({"n": 1})},
            ]
        )
        redis.pubsub = MagicMock(return_value=pubsub)
        bus = RedisEventBus("redis://test", redis=redis)

        subscription = await bus.open_subscription("user:a")

        pubsub.subscribe.assert_awaited_once_with("user:a")
        assert await subscription.next_event() == {"n": 1}
        # Listener exhausted: the connection is gone
        assert await subscription.next_event() is None
        assert subscription.is_active is False

    @pytest.mark.asyncio
    async def test_subscribe_failure_closes_pubsub(self, redis: MagicMock) -> None:
        pubsub = _pubsub([])
        pubsub.subscribe.side_effect = ConnectionError("down")
        redis.pubsub = MagicMock(return_value=pubsub)
        bus = RedisEventBus("redis://test", redis=redis)

        with pytest.raises(DeliveryError):
            await bus.open_subscription("user:a")

        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        pubsub = _pubsub([])
        subscription = RedisSubscription("user:a", pubsub)

        await subscription.close()
        await subscription.close()

        pubsub.unsubscribe.assert_awaited_once_with("user:a")
        pubsub.aclose.assert_awaited_once()
        assert await subscription.next_event() is None

    @pytest.mark.asyncio
    async def test_close_bus(self, redis: MagicMock) -> None:
        bus = RedisEventBus("redis://test", redis=redis)

        await bus.close()

        redis.aclose.assert_awaited_once()
        assert bus.is_connected is False
