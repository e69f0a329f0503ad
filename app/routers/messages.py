from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user_id
from app.models.api.messages import (
    EditMessageRequest,
    MessageResponse,
    SendMessageRequest,
)
from app.realtime import get_event_bus
from app.realtime.base_event_bus import EventBus
from app.services.send_message_service import SendMessageService

router = APIRouter()


@router.post(
    "", response_model=MessageResponse, status_code=status.HTTP_201_CREATED
)
async def send_message(
    request: SendMessageRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> MessageResponse:
    """Send a message to a conversation the caller participates in."""
    service = SendMessageService(db, event_bus)
    return await service.send_message(user_id, request)


@router.patch("/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: UUID,
    request: EditMessageRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> MessageResponse:
    """Edit one of the caller's messages."""
    service = SendMessageService(db, event_bus)
    return await service.edit_message(user_id, message_id, request.content)


@router.delete("/{message_id}", response_model=MessageResponse)
async def delete_message(
    message_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> MessageResponse:
    """Soft-delete one of the caller's messages."""
    service = SendMessageService(db, event_bus)
    return await service.delete_message(user_id, message_id)
