from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional


class Subscription(ABC):
    """A live subscription to one channel.

    Iterating yields decoded event payloads in publish order and stops when
    the transport drops the subscription or it is closed.
    """

    def __init__(self, channel: str):
        self.channel = channel

    @abstractmethod
    async def next_event(self) -> Optional[Dict[str, Any]]:
        """Wait for the next payload; None once the subscription has ended."""

    @abstractmethod
    async def close(self) -> None:
        """Stop receiving. Undelivered payloads are dropped."""

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """Whether the transport still considers this subscription open."""

    async def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        while True:
            payload = await self.next_event()
            if payload is None:
                return
            yield payload


class EventBus(ABC):
    """Abstract base class for realtime transports."""

    def __init__(self) -> None:
        self.publish_count = 0
        self.error_count = 0

    @abstractmethod
    async def connect(self) -> None:
        """Open the transport connection."""

    @abstractmethod
    async def close(self) -> None:
        """Close the transport and every subscription on it."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether publish and subscribe can be used."""

    @abstractmethod
    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        """Publish a payload on a channel.

        Returns:
            The number of subscribers the transport handed it to.

        Raises:
            DeliveryError: The transport could not accept the payload.
        """

    @abstractmethod
    async def open_subscription(self, channel: str) -> Subscription:
        """Subscribe to a channel; returns once the transport acknowledged it."""

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncGenerator[Subscription, None]:
        """Scoped subscription, closed on exit."""
        subscription = await self.open_subscription(channel)
        try:
            yield subscription
        finally:
            await subscription.close()

    def get_stats(self) -> Dict[str, Any]:
        """Get publishing statistics."""
        return {
            "backend": type(self).__name__,
            "connected": self.is_connected,
            "publish_count": self.publish_count,
            "error_count": self.error_count,
        }
