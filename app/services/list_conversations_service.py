import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError, ValidationError
from app.models.api.conversations import (
    ConversationResponse,
    ConversationSummaryResponse,
)
from app.repositories.base_repository import IdType, as_uuid
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.message_repository import MessageRepository
from app.services.membership_resolver import MembershipResolver
from app.services.read_state_service import is_unread

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ListConversationsService:
    """Service for the caller's conversation list."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.message_repo = MessageRepository(db)
        self.membership = MembershipResolver(db)

    async def list_conversations(
        self, caller_id: IdType, limit: int = 50, offset: int = 0
    ) -> List[ConversationSummaryResponse]:
        """The caller's conversations, most recently active first."""
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset cannot be negative")

        conversations = await self.conversation_repo.list_for_user(
            caller_id, limit=limit, offset=offset
        )
        return [await self._summarize(caller_id, c) for c in conversations]

    async def get_conversation_summary(
        self, caller_id: IdType, conversation_id: IdType
    ) -> ConversationSummaryResponse:
        """One conversation, visible to its participants only."""
        await self.membership.require_participant(conversation_id, caller_id)

        conversation = await self.conversation_repo.get_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")

        return await self._summarize(caller_id, conversation)

    async def _summarize(
        self, caller_id: IdType, conversation: ConversationResponse
    ) -> ConversationSummaryResponse:
        latest_message = await self.message_repo.get_latest(conversation.id)

        caller = as_uuid(caller_id)
        own_row: Optional[object] = next(
            (p for p in conversation.participants if p.user_id == caller), None
        )
        # Unread is derived here on every read and never stored
        unread = is_unread(conversation, own_row) if own_row is not None else False

        return ConversationSummaryResponse(
            id=conversation.id,
            created_at=conversation.created_at,
            last_activity_at=conversation.last_activity_at,
            participants=conversation.participants,
            latest_message=latest_message,
            is_unread=unread,
        )
