"""
Membership Resolver.

Answers "is user X a participant of conversation Y" and "who are the
participants of conversation Y". Every membership-gated operation calls it,
and the change notifier uses it to address events.

TRUSTED ACCESSOR: these lookups read conversation_participants directly
through the session and never go through a membership-gated service.
Routing them through the gate would make the gate call itself.
"""

import logging
from typing import Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.errors import AuthorizationError
from app.models.db.participant_model import ParticipantModel
from app.repositories.base_repository import IdType, as_uuid

logger = logging.getLogger(__name__)


class MembershipResolver:
    """Trusted membership lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_participant(self, conversation_id: IdType, user_id: IdType) -> bool:
        """True iff a participant row exists; False for unknown conversations."""
        query = (
            select(ParticipantModel.id)
            .where(
                ParticipantModel.conversation_id == as_uuid(conversation_id),
                ParticipantModel.user_id == as_uuid(user_id),
            )
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none() is not None

    async def participants_of(self, conversation_id: IdType) -> Set[UUID]:
        """Current participant user ids; empty for unknown conversations."""
        query = select(ParticipantModel.user_id).where(
            ParticipantModel.conversation_id == as_uuid(conversation_id)
        )
        result = await self.db.execute(query)
        return set(result.scalars().all())

    async def require_participant(
        self, conversation_id: IdType, user_id: IdType
    ) -> None:
        """Raise AuthorizationError unless user_id participates."""
        if not await self.is_participant(conversation_id, user_id):
            logger.warning(
                f"User {user_id} is not a participant of conversation {conversation_id}"
            )
            raise AuthorizationError("You are not a participant in this conversation")
