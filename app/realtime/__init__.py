"""Realtime delivery: the process-wide event bus and session subscriptions.

The bus is chosen by EVENT_BUS_BACKEND ('memory' or 'redis') and created
once per process. Call connect_event_bus() during startup.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv

from app.realtime.base_event_bus import EventBus, Subscription
from app.realtime.memory_event_bus import InMemoryEventBus
from app.realtime.redis_event_bus import RedisEventBus

load_dotenv()

logger = logging.getLogger(__name__)

EVENT_BUS_BACKEND = os.getenv("EVENT_BUS_BACKEND", "memory").lower()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

_event_bus: Optional[EventBus] = None


def build_event_bus(backend: str = EVENT_BUS_BACKEND) -> EventBus:
    """Create an event bus for the configured backend."""
    if backend == "redis":
        return RedisEventBus(REDIS_URL)
    if backend == "memory":
        return InMemoryEventBus()
    raise ValueError(f"Unknown EVENT_BUS_BACKEND: {backend}. Must be 'memory' or 'redis'")


def get_event_bus() -> EventBus:
    """Get the shared event bus, creating it on first use."""
    global _event_bus
    if _event_bus is None:
        _event_bus = build_event_bus()
    return _event_bus


def set_event_bus(event_bus: Optional[EventBus]) -> None:
    """Replace the shared event bus (startup wiring and tests)."""
    global _event_bus
    _event_bus = event_bus


async def connect_event_bus() -> EventBus:
    event_bus = get_event_bus()
    await event_bus.connect()
    return event_bus


async def close_event_bus() -> None:
    if _event_bus is not None:
        await _event_bus.close()


__all__ = [
    "EventBus",
    "InMemoryEventBus",
    "RedisEventBus",
    "Subscription",
    "build_event_bus",
    "close_event_bus",
    "connect_event_bus",
    "get_event_bus",
    "set_event_bus",
]
