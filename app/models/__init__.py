# Export all models
from .api import (
    ConversationResponse,
    ConversationSummaryResponse,
    DeliveryEvent,
    MessageResponse,
    ParticipantResponse,
    ProfileResponse,
    SendMessageRequest,
)
from .db import (
    ConversationModel,
    MessageModel,
    ParticipantModel,
    UserModel,
)

__all__ = [
    # API models
    "SendMessageRequest",
    "MessageResponse",
    "ConversationResponse",
    "ConversationSummaryResponse",
    "ParticipantResponse",
    "ProfileResponse",
    "DeliveryEvent",
    # DB models
    "ConversationModel",
    "MessageModel",
    "ParticipantModel",
    "UserModel",
]
