from datetime import timedelta
from types import SimpleNamespace
from typing import Dict
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import as_utc, utcnow
from app.models.api.events import user_channel
from app.models.api.messages import SendMessageRequest
from app.realtime.memory_event_bus import InMemoryEventBus
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.participant_repository import ParticipantRepository
from app.services.create_conversation_service import CreateConversationService
from app.services.read_state_service import ReadStateService, is_unread
from app.services.send_message_service import SendMessageService


class TestIsUnread:
    """The unread flag is a pure comparison of two timestamps."""

    def test_activity_after_read_is_unread(self) -> None:
        now = utcnow()
        conversation = SimpleNamespace(last_activity_at=now)
        participant = SimpleNamespace(last_read_at=now - timedelta(seconds=1))

        assert is_unread(conversation, participant) is True

    def test_equal_times_are_read(self) -> None:
        now = utcnow()
        conversation = SimpleNamespace(last_activity_at=now)
        participant = SimpleNamespace(last_read_at=now)

        assert is_unread(conversation, participant) is False

    def test_naive_and_aware_times_compare(self) -> None:
        now = utcnow()
        conversation = SimpleNamespace(last_activity_at=now.replace(tzinfo=None))
        participant = SimpleNamespace(last_read_at=now - timedelta(minutes=1))

        assert is_unread(conversation, participant) is True


class TestReadStateService:
    """Integration tests for mark_read and the unread law."""

    async def _create(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        caller: UUID,
        *others: UUID,
    ) -> UUID:
        service = CreateConversationService(test_db, event_bus)
        conversation = await service.create_conversation(caller, [caller, *others])
        return conversation.id

    async def _unread(
        self, test_db: AsyncSession, conversation_id: UUID, user_id: UUID
    ) -> bool:
        conversation = await ConversationRepository(test_db).get_by_id(conversation_id)
        participant = await ParticipantRepository(test_db).get_for(
            conversation_id, user_id
        )
        assert conversation is not None and participant is not None
        return is_unread(conversation, participant)

    @pytest.mark.asyncio
    async def test_mark_read_twice_keeps_second_time(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        conversation_id = await self._create(
            test_db, event_bus, users["alice"], users["bob"]
        )
        service = ReadStateService(test_db, event_bus)
        participants = ParticipantRepository(test_db)

        await service.mark_read(conversation_id, users["alice"])
        first = await participants.get_for(conversation_id, users["alice"])
        await service.mark_read(conversation_id, users["alice"])
        second = await participants.get_for(conversation_id, users["alice"])

        assert first is not None and second is not None
        assert as_utc(second.last_read_at) >= as_utc(first.last_read_at)

    @pytest.mark.asyncio
    async def test_mark_read_missing_row_is_silent(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        service = ReadStateService(test_db, event_bus)
        subscription = await event_bus.open_subscription(user_channel(users["carol"]))

        await service.mark_read(uuid4(), users["carol"])
        await service.mark_read(uuid4(), users["carol"])

        assert service.notifier.delivered_count == 0
        assert subscription._queue.empty()

    @pytest.mark.asyncio
    async def test_mark_read_notifies_owner(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        conversation_id = await self._create(
            test_db, event_bus, users["alice"], users["bob"]
        )
        alice = await event_bus.open_subscription(user_channel(users["alice"]))
        bob = await event_bus.open_subscription(user_channel(users["bob"]))

        await ReadStateService(test_db, event_bus).mark_read(
            conversation_id, users["alice"]
        )

        event = await alice.next_event()
        assert event is not None
        assert event["table"] == "participants"
        assert event["operation"] == "UPDATE"
        assert event["old_record"]["user_id"] == str(users["alice"])
        assert bob._queue.empty()

    @pytest.mark.asyncio
    async def test_unread_law(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        conversation_id = await self._create(
            test_db, event_bus, users["alice"], users["bob"]
        )
        reads = ReadStateService(test_db, event_bus)
        messages = SendMessageService(test_db, event_bus)

        await reads.mark_read(conversation_id, users["alice"])
        assert await self._unread(test_db, conversation_id, users["alice"]) is False

        await messages.send_message(
            users["bob"],
            SendMessageRequest(conversation_id=conversation_id, content="ping"),
        )
        assert await self._unread(test_db, conversation_id, users["alice"]) is True

        await reads.mark_read(conversation_id, users["alice"])
        assert await self._unread(test_db, conversation_id, users["alice"]) is False

    @pytest.mark.asyncio
    async def test_sending_does_not_mark_sender_read(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        """Alice and Bob both see the conversation unread after Bob says hi."""
        conversation_id = await self._create(
            test_db, event_bus, users["alice"], users["bob"]
        )
        assert await self._unread(test_db, conversation_id, users["alice"]) is False
        assert await self._unread(test_db, conversation_id, users["bob"]) is False

        message = await SendMessageService(test_db, event_bus).send_message(
            users["bob"],
            SendMessageRequest(conversation_id=conversation_id, content="hi"),
        )

        conversation = await ConversationRepository(test_db).get_by_id(conversation_id)
        assert conversation is not None
        assert as_utc(conversation.last_activity_at) == as_utc(message.created_at)
        assert await self._unread(test_db, conversation_id, users["alice"]) is True
        assert await self._unread(test_db, conversation_id, users["bob"]) is True

        await ReadStateService(test_db, event_bus).mark_read(
            conversation_id, users["bob"]
        )
        assert await self._unread(test_db, conversation_id, users["bob"]) is False
        assert await self._unread(test_db, conversation_id, users["alice"]) is True
