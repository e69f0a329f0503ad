import logging
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import utcnow
from app.errors import ValidationError
from app.models.api.conversations import (
    ConversationResponse,
    DirectConversationResponse,
)
from app.models.api.events import ChangeOperation
from app.realtime.base_event_bus import EventBus
from app.repositories.base_repository import IdType, as_uuid
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.participant_repository import ParticipantRepository
from app.repositories.user_repository import UserRepository
from app.services.change_notifier import ChangeNotifier

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2


class CreateConversationService:
    """Service for creating conversations together with their participants."""

    def __init__(self, db: AsyncSession, event_bus: Optional[EventBus] = None):
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.user_repo = UserRepository(db)
        self.notifier = ChangeNotifier(db, event_bus)

    async def create_conversation(
        self, caller_id: IdType, participant_ids: Optional[Sequence[IdType]]
    ) -> ConversationResponse:
        """
        Create a conversation atomically:

        1. Validate the participant list before touching the database
        2. Insert the conversation and every participant in one transaction
        3. Fan out one participant INSERT event to each new member
        """
        # Step 1: Validate
        user_ids = self._validate_participant_ids(caller_id, participant_ids)

        known_ids = await self.user_repo.get_existing_ids(user_ids)
        unknown_ids = [user_id for user_id in user_ids if user_id not in known_ids]
        if unknown_ids:
            raise ValidationError(
                f"Unknown participant ids: {', '.join(str(u) for u in unknown_ids)}"
            )

        # Step 2: Insert conversation and participants together
        now = utcnow()
        async with self.notifier.transaction():
            conversation = await self.conversation_repo.create_empty(created_at=now)

            for user_id in user_ids:
                participant = await self.participant_repo.add_participant(
                    conversation_id=conversation.id, user_id=user_id, joined_at=now
                )
                # Step 3: Each member hears about their own row
                await self.notifier.participant_changed(
                    ChangeOperation.INSERT, record=participant
                )

        logger.info(
            f"Conversation {conversation.id} created by {caller_id} "
            f"with {len(user_ids)} participants"
        )
        created = await self.conversation_repo.get_by_id(conversation.id)
        return created or conversation

    async def get_or_create_direct_conversation(
        self, caller_id: IdType, other_user_id: IdType
    ) -> DirectConversationResponse:
        """Return the existing one-to-one conversation or create it."""
        if as_uuid(caller_id) == as_uuid(other_user_id):
            raise ValidationError("Cannot open a direct conversation with yourself")

        existing_id = await self.conversation_repo.find_direct_conversation(
            caller_id, other_user_id
        )
        if existing_id:
            return DirectConversationResponse(
                conversation_id=existing_id, is_existing=True
            )

        conversation = await self.create_conversation(
            caller_id, [caller_id, other_user_id]
        )
        return DirectConversationResponse(
            conversation_id=conversation.id, is_existing=False
        )

    def _validate_participant_ids(
        self, caller_id: IdType, participant_ids: Optional[Sequence[IdType]]
    ) -> List[UUID]:
        """Normalize and check the participant list. Writes nothing."""
        if participant_ids is None or len(participant_ids) == 0:
            raise ValidationError("participant_ids cannot be null or empty")

        try:
            unique_ids = list(dict.fromkeys(as_uuid(p) for p in participant_ids))
        except ValueError as e:
            raise ValidationError(f"Invalid participant id: {e}") from e

        if len(unique_ids) < MIN_PARTICIPANTS:
            raise ValidationError("At least 2 participants are required")

        if as_uuid(caller_id) not in unique_ids:
            raise ValidationError(
                "You must be a participant in the conversation you are creating"
            )

        return unique_ids
