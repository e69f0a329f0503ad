"""
Server-Sent Events stream for one live session.

The stream is the session root: it owns the session's only
SessionSubscriptionManager and forwards what the manager produces to the
client as SSE events:

- connected: once the channel subscription is acknowledged
- change: every delivery event, as published
- invalidate: {"view": "conversations"} or
  {"view": "messages", "conversation_id": ...}
- heartbeat: when idle; each heartbeat also runs the liveness check

Nothing is replayed. A client that reconnects re-fetches its views.
"""

import asyncio
import json
import logging
import os
from typing import AsyncGenerator, Dict

from dotenv import load_dotenv

from app.clock import utcnow
from app.models.api.events import DeliveryEvent
from app.realtime.base_event_bus import EventBus
from app.realtime.subscription_manager import (
    SessionSubscriptionManager,
    ViewInvalidator,
)

load_dotenv()

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = float(os.getenv("SSE_HEARTBEAT_SECONDS", "15"))
SUBSCRIBE_RETRY_MIN = 0.1
SUBSCRIBE_RETRY_MAX = 5.0


def _sse(event: str, data: Dict[str, object]) -> Dict[str, str]:
    return {"event": event, "data": json.dumps(data)}


async def _wait_for_subscription(
    manager: SessionSubscriptionManager, max_delay: float
) -> None:
    """Suspend until the channel is subscribed, retrying a failed setup.

    The first attempt may fail while the event bus is still coming up. Each
    missed wait runs the liveness check, backing off from
    SUBSCRIBE_RETRY_MIN up to the smaller of max_delay and
    SUBSCRIBE_RETRY_MAX. Returns only once subscribed; the client going
    away cancels the wait.
    """
    delay = SUBSCRIBE_RETRY_MIN
    ceiling = max(SUBSCRIBE_RETRY_MIN, min(max_delay, SUBSCRIBE_RETRY_MAX))
    while not manager.is_subscribed:
        try:
            await manager.wait_until_subscribed(timeout=delay)
        except asyncio.TimeoutError:
            await manager.ensure_subscribed()
            delay = min(delay * 2, ceiling)


async def create_session_stream(
    user_id: str,
    event_bus: EventBus,
    heartbeat_interval: float = HEARTBEAT_INTERVAL,
) -> AsyncGenerator[Dict[str, str], None]:
    """Yield SSE event dicts for user_id until the client goes away."""
    outbox: "asyncio.Queue[Dict[str, str]]" = asyncio.Queue()

    invalidator = ViewInvalidator()
    invalidator.on_conversation_list(
        lambda: outbox.put_nowait(_sse("invalidate", {"view": "conversations"}))
    )
    invalidator.on_message_list(
        lambda conversation_id: outbox.put_nowait(
            _sse("invalidate", {"view": "messages", "conversation_id": conversation_id})
        )
    )

    def forward(event: DeliveryEvent) -> None:
        outbox.put_nowait({"event": "change", "data": json.dumps(event.to_payload())})

    manager = SessionSubscriptionManager(event_bus, invalidator)
    manager.add_listener(forward)

    await manager.start(user_id)
    try:
        await _wait_for_subscription(manager, heartbeat_interval)
        yield _sse(
            "connected",
            {
                "user_id": user_id,
                "channel": manager.channel,
                "status": "connected",
                "timestamp": utcnow().isoformat(),
            },
        )

        while True:
            try:
                item = await asyncio.wait_for(outbox.get(), timeout=heartbeat_interval)
            except asyncio.TimeoutError:
                await manager.ensure_subscribed()
                yield _sse(
                    "heartbeat",
                    {
                        "status": manager.state.value,
                        "timestamp": utcnow().isoformat(),
                    },
                )
                continue
            yield item
    except asyncio.CancelledError:
        logger.info(f"Stream cancelled for user {user_id}")
        raise
    finally:
        await manager.stop()
