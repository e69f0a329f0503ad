"""In-process event bus backed by one asyncio queue per subscriber."""

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set

from app.errors import DeliveryError
from app.realtime.base_event_bus import EventBus, Subscription

logger = logging.getLogger(__name__)

_CLOSED = object()


class InMemorySubscription(Subscription):
    """Subscriber side of the in-process bus."""

    def __init__(self, bus: "InMemoryEventBus", channel: str):
        super().__init__(channel)
        self._bus = bus
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    def deliver(self, message: str) -> None:
        if self._active:
            self._queue.put_nowait(message)

    def drop(self) -> None:
        """End the subscription from the transport side."""
        if self._active:
            self._active = False
            self._queue.put_nowait(_CLOSED)

    async def next_event(self) -> Optional[Dict[str, Any]]:
        if not self._active and self._queue.empty():
            return None
        message = await self._queue.get()
        if message is _CLOSED:
            return None
        payload: Dict[str, Any] = json.loads(message)
        return payload

    async def close(self) -> None:
        self._bus._remove(self)
        self._active = False
        # Whatever was still queued is discarded
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)


class InMemoryEventBus(EventBus):
    """Single-process transport. Each subscriber gets every event on its channel."""

    def __init__(self) -> None:
        super().__init__()
        self._subscribers: Dict[str, List[InMemorySubscription]] = defaultdict(list)
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        logger.info("In-memory event bus connected")

    async def close(self) -> None:
        for subscriptions in list(self._subscribers.values()):
            for subscription in list(subscriptions):
                subscription.drop()
        self._subscribers.clear()
        self._connected = False
        logger.info("In-memory event bus closed")

    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        if not self._connected:
            self.error_count += 1
            raise DeliveryError(f"Event bus is not connected, cannot publish to {channel}")

        # Serialize once so every subscriber sees exactly what a remote one would
        message = json.dumps(payload)
        subscribers = list(self._subscribers.get(channel, []))
        for subscription in subscribers:
            subscription.deliver(message)

        self.publish_count += 1
        logger.debug(f"Published to {channel} (subscribers: {len(subscribers)})")
        return len(subscribers)

    async def open_subscription(self, channel: str) -> Subscription:
        if not self._connected:
            raise DeliveryError(f"Event bus is not connected, cannot subscribe to {channel}")

        subscription = InMemorySubscription(self, channel)
        self._subscribers[channel].append(subscription)
        logger.info(f"Subscribed to channel: {channel}")
        return subscription

    def disconnect_channel(self, channel: str) -> None:
        """Drop every subscription on a channel, as a network loss would."""
        for subscription in self._subscribers.pop(channel, []):
            subscription.drop()
        logger.info(f"Dropped subscribers on channel: {channel}")

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    def channels(self) -> Set[str]:
        return {channel for channel, subs in self._subscribers.items() if subs}

    def _remove(self, subscription: InMemorySubscription) -> None:
        subscriptions = self._subscribers.get(subscription.channel)
        if subscriptions and subscription in subscriptions:
            subscriptions.remove(subscription)
            logger.info(f"Unsubscribed from channel: {subscription.channel}")
