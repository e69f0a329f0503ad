import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError
from app.models.api.events import ChangeOperation
from app.realtime.base_event_bus import EventBus
from app.repositories.base_repository import IdType
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.participant_repository import ParticipantRepository
from app.services.change_notifier import ChangeNotifier

logger = logging.getLogger(__name__)


class DeleteConversationService:
    """Service for deleting and leaving conversations."""

    def __init__(self, db: AsyncSession, event_bus: Optional[EventBus] = None):
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.notifier = ChangeNotifier(db, event_bus)

    async def delete_conversation(
        self, caller_id: IdType, conversation_id: IdType
    ) -> None:
        """
        Delete a conversation for everyone:

        1. Check the caller participates
        2. Capture the participant set while the rows still exist
        3. Remove each participant row, one DELETE event to its owner
        4. Remove the messages and the conversation row, one conversations
           DELETE event to every former participant

        Every removed participant sees its own row go before the
        conversation disappears.
        """
        async with self.notifier.transaction():
            # Step 1: Gate
            await self.notifier.membership.require_participant(
                conversation_id, caller_id
            )

            conversation = await self.conversation_repo.get_by_id(conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")

            # Step 2: Capture recipients
            participants = await self.participant_repo.get_by_conversation(
                conversation_id
            )
            recipients = [p.user_id for p in participants]

            # Step 3: Participant rows first
            for participant in participants:
                removed = await self.participant_repo.remove_participant(
                    conversation_id, participant.user_id
                )
                if removed is not None:
                    await self.notifier.participant_changed(
                        ChangeOperation.DELETE, old_record=removed
                    )

            # Step 4: Then the conversation itself
            await self.conversation_repo.delete_with_messages(conversation_id)
            await self.notifier.conversation_changed(
                ChangeOperation.DELETE, recipients, old_record=conversation
            )

        logger.info(
            f"Conversation {conversation_id} deleted by {caller_id} "
            f"({len(recipients)} participants removed)"
        )

    async def leave_conversation(
        self, caller_id: IdType, conversation_id: IdType
    ) -> None:
        """
        Remove the caller from a conversation.

        A caller without a row is a no-op, so a leave that races a delete
        does not fail. When the last participant leaves, the conversation
        and its messages are deleted too.
        """
        async with self.notifier.transaction():
            removed = await self.participant_repo.remove_participant(
                conversation_id, caller_id
            )
            if removed is None:
                logger.debug(
                    f"leave: user {caller_id} has no row in {conversation_id}"
                )
                return

            await self.notifier.participant_changed(
                ChangeOperation.DELETE, old_record=removed
            )

            remaining = await self.participant_repo.count_by_conversation(
                conversation_id
            )
            if remaining == 0:
                conversation = await self.conversation_repo.delete_with_messages(
                    conversation_id
                )
                if conversation is not None:
                    await self.notifier.conversation_changed(
                        ChangeOperation.DELETE, [removed.user_id], old_record=conversation
                    )
                logger.info(f"Conversation {conversation_id} emptied and deleted")

        logger.info(f"User {caller_id} left conversation {conversation_id}")
