import logging
from typing import AsyncGenerator, Dict
from uuid import UUID

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from app.dependencies import get_current_user_id
from app.realtime import get_event_bus
from app.realtime.base_event_bus import EventBus
from app.realtime.session_stream import create_session_stream

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/stream")
async def stream_changes(
    user_id: UUID = Depends(get_current_user_id),
    event_bus: EventBus = Depends(get_event_bus),
) -> EventSourceResponse:
    """
    SSE endpoint for the caller's private change channel.

    Events:
    - connected: the subscription is live
    - change: a row change addressed to the caller
    - invalidate: a view the client should re-fetch
    - heartbeat: sent while idle

    Missed events are not replayed; a reconnecting client re-fetches.
    """
    logger.info(f"Stream opened for user {user_id}")

    async def event_generator() -> AsyncGenerator[Dict[str, str], None]:
        async for event in create_session_stream(str(user_id), event_bus):
            yield event

    return EventSourceResponse(
        event_generator(),
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
        media_type="text/event-stream",
    )
