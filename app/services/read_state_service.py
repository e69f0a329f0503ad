"""
Read-State Tracker.

Unread status is derived on every read and never stored:

    unread = conversation.last_activity_at > participant.last_read_at

Only a user's own sessions write that user's last_read_at, so updates are
last-write-wins with no read-modify-write protection.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import as_utc, utcnow
from app.models.api.events import ChangeOperation
from app.realtime.base_event_bus import EventBus
from app.repositories.base_repository import IdType
from app.repositories.participant_repository import ParticipantRepository
from app.services.change_notifier import ChangeNotifier

logger = logging.getLogger(__name__)


def is_unread(conversation: Any, participant: Any) -> bool:
    """Whether the conversation has activity the participant has not read.

    Accepts anything with last_activity_at / last_read_at attributes.
    """
    last_activity_at: Optional[datetime] = as_utc(conversation.last_activity_at)
    last_read_at: Optional[datetime] = as_utc(participant.last_read_at)
    if last_activity_at is None:
        return False
    if last_read_at is None:
        return True
    return last_activity_at > last_read_at


class ReadStateService:
    """Service for marking conversations read."""

    def __init__(self, db: AsyncSession, event_bus: Optional[EventBus] = None):
        self.db = db
        self.participant_repo = ParticipantRepository(db)
        self.notifier = ChangeNotifier(db, event_bus)

    async def mark_read(self, conversation_id: IdType, user_id: IdType) -> None:
        """
        Set last_read_at = now for the (conversation, user) pair.

        Idempotent. A missing pair is a silent no-op: the caller may be
        racing a removal of the row.
        """
        async with self.notifier.transaction():
            change = await self.participant_repo.set_last_read_at(
                conversation_id, user_id, utcnow()
            )
            if change is None:
                logger.debug(
                    f"mark_read: no participant row for user {user_id} "
                    f"in conversation {conversation_id}"
                )
                return

            old_state, new_state = change
            await self.notifier.participant_changed(
                ChangeOperation.UPDATE, record=new_state, old_record=old_state
            )
