import logging
from typing import Dict, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ValidationError
from app.models.api.messages import (
    MessageResponse,
    MessageWithReplyResponse,
    ReplyPreview,
)
from app.repositories.base_repository import IdType
from app.repositories.message_repository import MessageRepository
from app.services.membership_resolver import MembershipResolver

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


class GetConversationMessagesService:
    """Service for reading the messages of a conversation."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.message_repo = MessageRepository(db)
        self.membership = MembershipResolver(db)

    async def get_messages(
        self,
        caller_id: IdType,
        conversation_id: IdType,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MessageWithReplyResponse]:
        """
        List non-deleted messages oldest first, each with its reply target.

        A reply whose target was soft-deleted or no longer exists shows the
        deleted-message placeholder instead of the target's content.
        """
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset cannot be negative")

        await self.membership.require_participant(conversation_id, caller_id)

        messages = await self.message_repo.get_by_conversation(
            conversation_id, limit=limit, offset=offset
        )
        targets = await self.message_repo.get_many(
            m.reply_to_id for m in messages if m.reply_to_id is not None
        )

        return [self._with_reply(message, targets) for message in messages]

    def _with_reply(
        self, message: MessageResponse, targets: Dict[UUID, MessageResponse]
    ) -> MessageWithReplyResponse:
        reply_to = None
        if message.reply_to_id is not None:
            target = targets.get(message.reply_to_id)
            if target is None or target.deleted_at is not None:
                reply_to = ReplyPreview.deleted(message.reply_to_id)
            else:
                reply_to = ReplyPreview(
                    id=target.id, sender_id=target.sender_id, content=target.content
                )

        return MessageWithReplyResponse(**message.model_dump(), reply_to=reply_to)
