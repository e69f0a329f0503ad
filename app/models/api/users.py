from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

PresenceStatus = Literal["online", "offline", "away"]


class ProfileResponse(BaseModel):
    """Response model for user profile data."""

    id: UUID
    username: str
    avatar_url: Optional[str] = None
    status: PresenceStatus
    last_seen_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UpdateStatusRequest(BaseModel):
    """Request model for changing the caller's presence flag."""

    status: PresenceStatus = Field(..., description="'online', 'offline' or 'away'")
