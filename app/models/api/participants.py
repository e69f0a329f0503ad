from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ParticipantResponse(BaseModel):
    """Response model for participant data."""

    id: UUID
    conversation_id: UUID
    user_id: UUID
    last_read_at: datetime
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ParticipantProfileResponse(ParticipantResponse):
    """Participant row with the member's public profile fields."""

    username: Optional[str] = None
    avatar_url: Optional[str] = None
    status: Optional[str] = None
