from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .messages import MessageResponse
from .participants import ParticipantProfileResponse


class CreateConversationRequest(BaseModel):
    """Request model for creating a conversation."""

    participant_ids: Optional[List[UUID]] = Field(
        default=None, description="At least 2 user ids, including the caller"
    )


class DirectConversationRequest(BaseModel):
    """Request model for opening a one-to-one conversation."""

    user_id: UUID = Field(..., description="The other participant")


class ConversationResponse(BaseModel):
    """Response model for conversation data."""

    id: UUID
    created_at: datetime
    last_activity_at: datetime
    participants: List[ParticipantProfileResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ConversationSummaryResponse(BaseModel):
    """A conversation as shown in the caller's conversation list."""

    id: UUID
    created_at: datetime
    last_activity_at: datetime
    participants: List[ParticipantProfileResponse]
    latest_message: Optional[MessageResponse] = None
    is_unread: bool


class DirectConversationResponse(BaseModel):
    """Result of opening a one-to-one conversation."""

    conversation_id: UUID
    is_existing: bool
