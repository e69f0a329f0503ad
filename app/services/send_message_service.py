import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import utcnow
from app.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.api.events import ChangeOperation
from app.models.api.messages import MessageResponse, SendMessageRequest
from app.realtime.base_event_bus import EventBus
from app.repositories.base_repository import IdType, as_uuid
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.message_repository import MessageRepository
from app.services.change_notifier import ChangeNotifier

logger = logging.getLogger(__name__)


class SendMessageService:
    """Service for posting, editing and deleting messages."""

    def __init__(self, db: AsyncSession, event_bus: Optional[EventBus] = None):
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.message_repo = MessageRepository(db)
        self.notifier = ChangeNotifier(db, event_bus)

    async def send_message(
        self, caller_id: IdType, request: SendMessageRequest
    ) -> MessageResponse:
        """
        Post a message into a conversation:

        1. Validate the sender, the content and the reply target
        2. Insert the message and advance the conversation's last_activity_at
        3. Fan out one messages INSERT to every current participant

        The sender's own last_read_at is left alone; their client marks the
        conversation read separately.
        """
        # Step 1: Validate
        if request.sender_id is not None and request.sender_id != as_uuid(caller_id):
            raise AuthorizationError("You can only send messages as yourself")

        content = request.content.strip() if request.content else ""
        if not content:
            raise ValidationError("Message content cannot be empty")

        async with self.notifier.transaction():
            await self.notifier.membership.require_participant(
                request.conversation_id, caller_id
            )

            if request.reply_to_id is not None:
                await self._check_reply_target(
                    request.conversation_id, request.reply_to_id
                )

            # Step 2: Insert and advance activity
            message = await self.message_repo.create_message(
                conversation_id=request.conversation_id,
                sender_id=caller_id,
                content=content,
                created_at=utcnow(),
                reply_to_id=request.reply_to_id,
            )
            await self.conversation_repo.advance_activity(
                request.conversation_id, message.created_at
            )

            # Step 3: Fan out
            recipients = await self.notifier.message_changed(
                ChangeOperation.INSERT, record=message
            )

        logger.info(
            f"Message {message.id} sent to conversation {request.conversation_id} "
            f"({len(recipients)} recipients)"
        )
        return message

    async def edit_message(
        self, caller_id: IdType, message_id: IdType, content: str
    ) -> MessageResponse:
        """Replace the text of one of the caller's own messages."""
        new_content = content.strip() if content else ""
        if not new_content:
            raise ValidationError("Message content cannot be empty")

        async with self.notifier.transaction():
            await self._get_own_message(caller_id, message_id)

            change = await self.message_repo.update_content(
                message_id, new_content, utcnow()
            )
            if change is None:
                raise NotFoundError(f"Message {message_id} not found")

            old_state, new_state = change
            await self.notifier.message_changed(
                ChangeOperation.UPDATE, record=new_state, old_record=old_state
            )

        logger.info(f"Message {message_id} edited by {caller_id}")
        return new_state

    async def delete_message(
        self, caller_id: IdType, message_id: IdType
    ) -> MessageResponse:
        """Soft-delete one of the caller's own messages.

        The row stays so that replies pointing at it still resolve.
        """
        async with self.notifier.transaction():
            await self._get_own_message(caller_id, message_id)

            change = await self.message_repo.soft_delete(message_id, utcnow())
            if change is None:
                raise NotFoundError(f"Message {message_id} not found")

            old_state, new_state = change
            await self.notifier.message_changed(
                ChangeOperation.UPDATE, record=new_state, old_record=old_state
            )

        logger.info(f"Message {message_id} deleted by {caller_id}")
        return new_state

    async def _get_own_message(
        self, caller_id: IdType, message_id: IdType
    ) -> MessageResponse:
        message = await self.message_repo.get_by_id(message_id)
        if message is None or message.deleted_at is not None:
            raise NotFoundError(f"Message {message_id} not found")

        if message.sender_id != as_uuid(caller_id):
            raise AuthorizationError("You can only change your own messages")

        await self.notifier.membership.require_participant(
            message.conversation_id, caller_id
        )
        return message

    async def _check_reply_target(
        self, conversation_id: IdType, reply_to_id: IdType
    ) -> None:
        target = await self.message_repo.get_by_id(reply_to_id)
        if target is None or target.conversation_id != as_uuid(conversation_id):
            raise ValidationError(
                "Reply target must be a message in the same conversation"
            )
