# API models for request/response contracts
from .conversations import (
    ConversationResponse,
    ConversationSummaryResponse,
    CreateConversationRequest,
    DirectConversationRequest,
    DirectConversationResponse,
)
from .events import ChangeOperation, ChangeTable, DeliveryEvent, user_channel
from .messages import (
    EditMessageRequest,
    MessageResponse,
    MessageWithReplyResponse,
    ReplyPreview,
    SendMessageRequest,
)
from .participants import ParticipantProfileResponse, ParticipantResponse
from .users import ProfileResponse, UpdateStatusRequest

__all__ = [
    "ChangeOperation",
    "ChangeTable",
    "ConversationResponse",
    "ConversationSummaryResponse",
    "CreateConversationRequest",
    "DeliveryEvent",
    "DirectConversationRequest",
    "DirectConversationResponse",
    "EditMessageRequest",
    "MessageResponse",
    "MessageWithReplyResponse",
    "ParticipantProfileResponse",
    "ParticipantResponse",
    "ProfileResponse",
    "ReplyPreview",
    "SendMessageRequest",
    "UpdateStatusRequest",
    "user_channel",
]
