"""Redis pub/sub transport.

Each user channel ``user:<userId>`` maps to a Redis channel of the same
name. Payloads are JSON strings. Publishing never retries: a failed
publish is reported to the caller, who decides whether it matters.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Optional

from redis.asyncio import Redis

from app.errors import DeliveryError
from app.realtime.base_event_bus import EventBus, Subscription

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)


class RedisSubscription(Subscription):
    """One Redis PubSub connection listening on one channel."""

    def __init__(self, channel: str, pubsub: "PubSub"):
        super().__init__(channel)
        self._pubsub = pubsub
        self._listener: Optional[AsyncIterator[Dict[str, Any]]] = None
        self._active = True
        self._closed = False

    @property
    def is_active(self) -> bool:
        return self._active

    async def next_event(self) -> Optional[Dict[str, Any]]:
        if not self._active:
            return None
        if self._listener is None:
            self._listener = self._pubsub.listen()

        try:
            async for message in self._listener:
                if message.get("type") != "message":
                    continue
                try:
                    payload: Dict[str, Any] = json.loads(message["data"])
                except (TypeError, json.JSONDecodeError) as e:
                    logger.warning(f"Invalid JSON on {self.channel}: {e}")
                    continue
                return payload
        except Exception as e:
            logger.error(f"Subscription to {self.channel} lost: {e}")

        self._active = False
        return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._active = False
        try:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
            logger.info(f"Unsubscribed from channel: {self.channel}")
        except Exception as e:
            logger.warning(f"Error closing subscription to {self.channel}: {e}")


class RedisEventBus(EventBus):
    """Event bus backed by Redis pub/sub."""

    def __init__(self, url: str, redis: Optional[Redis] = None):
        super().__init__()
        self.url = url
        self._redis: Optional[Redis] = redis

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = Redis.from_url(self.url, decode_responses=True)
        await self._redis.ping()
        logger.info("Redis event bus connected")

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis event bus closed")

    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        if self._redis is None:
            self.error_count += 1
            raise DeliveryError(f"Redis not initialized, cannot publish to {channel}")

        try:
            result: int = await self._redis.publish(channel, json.dumps(payload))
        except Exception as e:
            self.error_count += 1
            raise DeliveryError(f"Failed to publish to {channel}: {e}") from e

        self.publish_count += 1
        logger.debug(f"Published to {channel} (subscribers: {result})")
        return result

    async def open_subscription(self, channel: str) -> Subscription:
        if self._redis is None:
            raise DeliveryError(f"Redis not initialized, cannot subscribe to {channel}")

        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(channel)
        except Exception as e:
            await pubsub.aclose()
            raise DeliveryError(f"Failed to subscribe to {channel}: {e}") from e

        logger.info(f"Subscribed to channel: {channel}")
        return RedisSubscription(channel, pubsub)
