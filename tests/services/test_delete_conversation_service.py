import asyncio
from typing import Dict, List
from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import AuthorizationError
from app.models.api.events import ChangeTable, DeliveryEvent, user_channel
from app.models.api.messages import SendMessageRequest
from app.models.db.conversation_model import ConversationModel
from app.models.db.message_model import MessageModel
from app.realtime.memory_event_bus import InMemoryEventBus
from app.realtime.subscription_manager import (
    SessionSubscriptionManager,
    ViewInvalidator,
)
from app.repositories.participant_repository import ParticipantRepository
from app.services.create_conversation_service import CreateConversationService
from app.services.delete_conversation_service import DeleteConversationService
from app.services.send_message_service import SendMessageService


async def _count(db: AsyncSession, model: type) -> int:
    result = await db.execute(select(func.count(model.id)))
    return int(result.scalar_one())


class TestDeleteConversationService:
    """Integration tests for deleting and leaving conversations."""

    async def _conversation(
        self, db: AsyncSession, event_bus: InMemoryEventBus, *user_ids: UUID
    ) -> UUID:
        service = CreateConversationService(db, event_bus)
        conversation = await service.create_conversation(user_ids[0], list(user_ids))
        await SendMessageService(db, event_bus).send_message(
            user_ids[0],
            SendMessageRequest(conversation_id=conversation.id, content="first"),
        )
        return conversation.id

    @pytest.mark.asyncio
    async def test_subscriber_sees_own_removal_before_conversation_goes(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        conversation_id = await self._conversation(
            test_db, event_bus, users["alice"], users["bob"]
        )

        received: List[DeliveryEvent] = []
        invalidated: List[str] = []
        invalidator = ViewInvalidator()
        invalidator.on_conversation_list(lambda: invalidated.append("conversations"))
        invalidator.on_message_list(lambda cid: invalidated.append(f"messages:{cid}"))
        manager = SessionSubscriptionManager(event_bus, invalidator)
        manager.add_listener(received.append)
        await manager.start(users["bob"])
        await manager.wait_until_subscribed(timeout=1)

        await DeleteConversationService(test_db, event_bus).delete_conversation(
            users["alice"], conversation_id
        )
        for _ in range(50):
            if len(received) >= 2:
                break
            await asyncio.sleep(0.01)
        await manager.stop()

        assert [(e.table, e.operation.value) for e in received] == [
            (ChangeTable.PARTICIPANTS, "DELETE"),
            (ChangeTable.CONVERSATIONS, "DELETE"),
        ]
        assert received[0].old_record is not None
        assert received[0].old_record["user_id"] == str(users["bob"])
        assert received[1].old_record is not None
        assert received[1].old_record["id"] == str(conversation_id)
        assert f"messages:{conversation_id}" in invalidated

    @pytest.mark.asyncio
    async def test_delete_removes_rows(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        conversation_id = await self._conversation(
            test_db, event_bus, users["alice"], users["bob"], users["carol"]
        )

        await DeleteConversationService(test_db, event_bus).delete_conversation(
            users["carol"], conversation_id
        )

        assert await _count(test_db, ConversationModel) == 0
        assert await _count(test_db, MessageModel) == 0
        assert (
            await ParticipantRepository(test_db).count_by_conversation(conversation_id)
            == 0
        )

    @pytest.mark.asyncio
    async def test_non_participant_cannot_delete(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        conversation_id = await self._conversation(
            test_db, event_bus, users["alice"], users["bob"]
        )

        with pytest.raises(AuthorizationError):
            await DeleteConversationService(test_db, event_bus).delete_conversation(
                users["carol"], conversation_id
            )

        assert await _count(test_db, ConversationModel) == 1

    @pytest.mark.asyncio
    async def test_leave_removes_only_caller(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        conversation_id = await self._conversation(
            test_db, event_bus, users["alice"], users["bob"], users["carol"]
        )
        bob = await event_bus.open_subscription(user_channel(users["bob"]))
        alice = await event_bus.open_subscription(user_channel(users["alice"]))

        await DeleteConversationService(test_db, event_bus).leave_conversation(
            users["bob"], conversation_id
        )

        participants = await ParticipantRepository(test_db).get_by_conversation(
            conversation_id
        )
        assert {p.user_id for p in participants} == {users["alice"], users["carol"]}

        event = await bob.next_event()
        assert event is not None
        assert event["table"] == "participants"
        assert event["operation"] == "DELETE"
        assert alice._queue.empty()

    @pytest.mark.asyncio
    async def test_last_leaver_deletes_conversation(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        conversation_id = await self._conversation(
            test_db, event_bus, users["alice"], users["bob"]
        )
        service = DeleteConversationService(test_db, event_bus)

        await service.leave_conversation(users["alice"], conversation_id)
        assert await _count(test_db, ConversationModel) == 1

        await service.leave_conversation(users["bob"], conversation_id)
        assert await _count(test_db, ConversationModel) == 0
        assert await _count(test_db, MessageModel) == 0

    @pytest.mark.asyncio
    async def test_leave_without_row_is_noop(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        service = DeleteConversationService(test_db, event_bus)

        await service.leave_conversation(users["alice"], uuid4())

        assert service.notifier.delivered_count == 0
