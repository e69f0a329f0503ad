from typing import Any, Dict
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import AuthorizationError, ValidationError
from app.models.api.messages import SendMessageRequest
from app.realtime.memory_event_bus import InMemoryEventBus
from app.services.create_conversation_service import CreateConversationService
from app.services.list_conversations_service import ListConversationsService
from app.services.read_state_service import ReadStateService
from app.services.send_message_service import SendMessageService


class TestListConversationsService:
    """Tests for the caller's conversation list."""

    @pytest.mark.asyncio
    async def test_paging_bounds(self, mock_db: Any) -> None:
        service = ListConversationsService(mock_db)

        with pytest.raises(ValidationError):
            await service.list_conversations(uuid4(), limit=0)
        with pytest.raises(ValidationError):
            await service.list_conversations(uuid4(), offset=-5)

        mock_db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_summaries_carry_preview_and_unread(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        creator = CreateConversationService(test_db, event_bus)
        with_bob = await creator.create_conversation(
            users["alice"], [users["alice"], users["bob"]]
        )
        with_carol = await creator.create_conversation(
            users["alice"], [users["alice"], users["carol"]]
        )
        await SendMessageService(test_db, event_bus).send_message(
            users["bob"],
            SendMessageRequest(conversation_id=with_bob.id, content="news"),
        )

        summaries = await ListConversationsService(test_db).list_conversations(
            users["alice"]
        )

        # Most recent activity first
        assert [s.id for s in summaries] == [with_bob.id, with_carol.id]
        assert summaries[0].latest_message is not None
        assert summaries[0].latest_message.content == "news"
        assert summaries[0].is_unread is True
        assert summaries[1].latest_message is None
        assert summaries[1].is_unread is False
        assert {p.username for p in summaries[0].participants} == {"alice", "bob"}

        await ReadStateService(test_db, event_bus).mark_read(
            with_bob.id, users["alice"]
        )
        summary = await ListConversationsService(test_db).get_conversation_summary(
            users["alice"], with_bob.id
        )
        assert summary.is_unread is False

    @pytest.mark.asyncio
    async def test_summary_is_membership_gated(
        self,
        test_db: AsyncSession,
        event_bus: InMemoryEventBus,
        users: Dict[str, UUID],
    ) -> None:
        conversation = await CreateConversationService(
            test_db, event_bus
        ).create_conversation(users["alice"], [users["alice"], users["bob"]])
        service = ListConversationsService(test_db)

        with pytest.raises(AuthorizationError):
            await service.get_conversation_summary(users["carol"], conversation.id)

        assert await service.list_conversations(users["carol"]) == []
