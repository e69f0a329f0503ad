from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user_id
from app.models.api.conversations import (
    ConversationResponse,
    ConversationSummaryResponse,
    CreateConversationRequest,
    DirectConversationRequest,
    DirectConversationResponse,
)
from app.models.api.messages import MessageWithReplyResponse
from app.realtime import get_event_bus
from app.realtime.base_event_bus import EventBus
from app.services.create_conversation_service import CreateConversationService
from app.services.delete_conversation_service import DeleteConversationService
from app.services.get_conversation_messages_service import (
    GetConversationMessagesService,
)
from app.services.list_conversations_service import ListConversationsService
from app.services.read_state_service import ReadStateService

router = APIRouter()


@router.post(
    "", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED
)
async def create_conversation(
    request: CreateConversationRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> ConversationResponse:
    """
    Create a conversation.

    Body:
    - participant_ids: at least 2 distinct user ids, the caller included
    """
    service = CreateConversationService(db, event_bus)
    return await service.create_conversation(user_id, request.participant_ids)


@router.post("/direct", response_model=DirectConversationResponse)
async def get_or_create_direct_conversation(
    request: DirectConversationRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> DirectConversationResponse:
    """Open the one-to-one conversation with another user, creating it if needed."""
    service = CreateConversationService(db, event_bus)
    return await service.get_or_create_direct_conversation(user_id, request.user_id)


@router.get("", response_model=List[ConversationSummaryResponse])
async def list_conversations(
    limit: Optional[int] = Query(
        50, description="Maximum number of conversations to return", ge=1, le=100
    ),
    offset: Optional[int] = Query(
        0, description="Number of conversations to skip", ge=0
    ),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[ConversationSummaryResponse]:
    """
    List the caller's conversations, most recently active first.

    Query parameters:
    - limit: Maximum number of conversations to return (default: 50, max: 100)
    - offset: Number of conversations to skip (default: 0)
    """
    service = ListConversationsService(db)
    return await service.list_conversations(
        user_id, limit=limit or 50, offset=offset or 0
    )


@router.get("/{conversation_id}", response_model=ConversationSummaryResponse)
async def get_conversation(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ConversationSummaryResponse:
    """
    Get one conversation the caller participates in.

    Path parameters:
    - conversation_id: UUID of the conversation
    """
    service = ListConversationsService(db)
    return await service.get_conversation_summary(user_id, conversation_id)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> None:
    """Delete a conversation for every participant."""
    service = DeleteConversationService(db, event_bus)
    await service.delete_conversation(user_id, conversation_id)


@router.post("/{conversation_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_conversation(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> None:
    """Remove the caller from a conversation."""
    service = DeleteConversationService(db, event_bus)
    await service.leave_conversation(user_id, conversation_id)


@router.post("/{conversation_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_conversation_read(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> None:
    """Mark everything in the conversation as read by the caller."""
    service = ReadStateService(db, event_bus)
    await service.mark_read(conversation_id, user_id)


@router.get(
    "/{conversation_id}/messages", response_model=List[MessageWithReplyResponse]
)
async def get_conversation_messages(
    conversation_id: UUID,
    limit: Optional[int] = Query(
        100, description="Maximum number of messages to return", ge=1, le=200
    ),
    offset: Optional[int] = Query(0, description="Number of messages to skip", ge=0),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[MessageWithReplyResponse]:
    """
    Get the messages of a conversation, oldest first.

    Query parameters:
    - limit: Maximum number of messages to return (default: 100, max: 200)
    - offset: Number of messages to skip (default: 0)
    """
    service = GetConversationMessagesService(db)
    return await service.get_messages(
        user_id, conversation_id, limit=limit or 100, offset=offset or 0
    )
