"""
Change Notifier: the fan-out engine.

A ChangeNotifier is the unit of work for one write. Services run their
mutations inside ``async with notifier.transaction():`` and record each row
change as it happens. Recording resolves the recipients right away, on the
same session and therefore inside the same transaction as the mutation:

- participants rows: the row's own user only
- messages rows: every current participant of the conversation, sender
  included
- conversations rows: the participant set captured by the caller before
  the membership rows were removed

When the transaction commits, the recorded events are published in the
order they were recorded, one per recipient, on ``user:<userId>``. A
rollback discards them. Publishing is best effort: a failure for one
recipient is logged and counted and never reaches the write path.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api.events import (
    ChangeOperation,
    ChangeTable,
    DeliveryEvent,
    user_channel,
)
from app.realtime import get_event_bus
from app.realtime.base_event_bus import EventBus
from app.services.membership_resolver import MembershipResolver

logger = logging.getLogger(__name__)

Row = Optional[BaseModel]


def _row(model: Row) -> Optional[Dict[str, Any]]:
    return model.model_dump(mode="json") if model is not None else None


class ChangeNotifier:
    """Collects row changes during a transaction and publishes them on commit."""

    def __init__(self, db: AsyncSession, event_bus: Optional[EventBus] = None):
        self.db = db
        self.event_bus = event_bus or get_event_bus()
        self.membership = MembershipResolver(db)
        self._pending: List[Tuple[UUID, DeliveryEvent]] = []
        self.delivered_count = 0
        self.failed_count = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator["ChangeNotifier", None]:
        """Commit and publish on success; roll back and discard on error."""
        try:
            yield self
        except BaseException:
            await self.rollback()
            raise
        await self.commit()

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except BaseException:
            self._pending.clear()
            raise
        pending, self._pending = self._pending, []
        await self._publish(pending)

    async def rollback(self) -> None:
        if self._pending:
            logger.debug(f"Discarding {len(self._pending)} events on rollback")
        self._pending.clear()
        await self.db.rollback()

    async def participant_changed(
        self,
        operation: ChangeOperation,
        record: Row = None,
        old_record: Row = None,
    ) -> List[UUID]:
        """Record a participants row change; addressed to the row's owner."""
        owner = getattr(record or old_record, "user_id", None)
        if owner is None:
            raise ValueError("A participant change needs the row's user_id")
        event = DeliveryEvent(
            table=ChangeTable.PARTICIPANTS,
            operation=operation,
            record=_row(record),
            old_record=_row(old_record),
        )
        self._queue([owner], event)
        return [owner]

    async def message_changed(
        self,
        operation: ChangeOperation,
        record: Row = None,
        old_record: Row = None,
    ) -> List[UUID]:
        """Record a messages row change; addressed to current participants."""
        conversation_id = getattr(record or old_record, "conversation_id", None)
        if conversation_id is None:
            raise ValueError("A message change needs the row's conversation_id")
        recipients = sorted(
            await self.membership.participants_of(conversation_id), key=str
        )
        event = DeliveryEvent(
            table=ChangeTable.MESSAGES,
            operation=operation,
            record=_row(record),
            old_record=_row(old_record),
        )
        self._queue(recipients, event)
        return recipients

    async def conversation_changed(
        self,
        operation: ChangeOperation,
        recipients: Iterable[UUID],
        record: Row = None,
        old_record: Row = None,
    ) -> List[UUID]:
        """Record a conversations row change for an explicit recipient set."""
        addressed = sorted(set(recipients), key=str)
        event = DeliveryEvent(
            table=ChangeTable.CONVERSATIONS,
            operation=operation,
            record=_row(record),
            old_record=_row(old_record),
        )
        self._queue(addressed, event)
        return addressed

    def _queue(self, recipients: Iterable[UUID], event: DeliveryEvent) -> None:
        for user_id in recipients:
            self._pending.append((user_id, event))

    async def _publish(self, pending: List[Tuple[UUID, DeliveryEvent]]) -> None:
        for user_id, event in pending:
            channel = user_channel(user_id)
            try:
                await self.event_bus.publish(channel, event.to_payload())
            except Exception as e:
                # The write already committed; the client recovers by re-fetching
                self.failed_count += 1
                logger.error(
                    f"Failed to deliver {event.table.value} {event.operation.value} "
                    f"to {channel}: {e}"
                )
                continue
            self.delivered_count += 1

        if pending:
            logger.debug(
                f"Fan-out done: {self.delivered_count} delivered, "
                f"{self.failed_count} failed"
            )
