from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

DELETED_MESSAGE_PLACEHOLDER = "This message was deleted"


class SendMessageRequest(BaseModel):
    """Request model for sending a message."""

    conversation_id: UUID = Field(..., description="Conversation to post into")
    content: str = Field(..., description="Message text")
    sender_id: Optional[UUID] = Field(
        default=None, description="Must match the caller when given"
    )
    reply_to_id: Optional[UUID] = Field(
        default=None, description="Message in the same conversation being replied to"
    )


class EditMessageRequest(BaseModel):
    """Request model for editing a message."""

    content: str = Field(..., description="Replacement message text")


class MessageResponse(BaseModel):
    """Response model for message data."""

    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    edited: bool = False
    reply_to_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)


class ReplyPreview(BaseModel):
    """What a reply shows of the message it points at."""

    id: UUID
    sender_id: Optional[UUID] = None
    content: str
    is_deleted: bool = False

    @classmethod
    def deleted(cls, message_id: UUID) -> "ReplyPreview":
        return cls(id=message_id, content=DELETED_MESSAGE_PLACEHOLDER, is_deleted=True)


class MessageWithReplyResponse(MessageResponse):
    """Message as listed in a conversation, with its reply target resolved."""

    reply_to: Optional[ReplyPreview] = None
