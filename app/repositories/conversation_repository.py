from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import delete, func, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import aliased, selectinload

from app.clock import as_utc
from app.models.api.conversations import ConversationResponse
from app.models.api.participants import ParticipantProfileResponse
from app.models.db.conversation_model import ConversationModel
from app.models.db.message_model import MessageModel
from app.models.db.participant_model import ParticipantModel
from app.repositories.base_repository import BaseRepository, IdType, as_uuid


class ConversationRepository(BaseRepository[ConversationModel, ConversationResponse]):
    """Repository for conversation operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ConversationModel)

    async def get_by_id(self, id: IdType) -> Optional[ConversationResponse]:
        """Get a conversation by ID with participants loaded."""
        query = (
            select(self.model_class)
            .where(self.model_class.id == as_uuid(id))
            .options(
                selectinload(self.model_class.participants).selectinload(
                    ParticipantModel.profile
                )
            )
            .execution_options(populate_existing=True)
        )  # type: ignore
        result = await self.db.execute(query)
        db_model = result.scalar_one_or_none()
        return self._to_pydantic(db_model) if db_model else None

    async def create_empty(self, created_at: datetime) -> ConversationResponse:
        """Create a new conversation with no participants yet."""
        empty_conversation = ConversationResponse(
            id=uuid4(),
            created_at=created_at,
            last_activity_at=created_at,
            participants=[],
        )

        return await self.create(empty_conversation)

    async def list_for_user(
        self, user_id: IdType, limit: int = 50, offset: int = 0
    ) -> List[ConversationResponse]:
        """List a user's conversations, most recently active first."""
        query = (
            select(self.model_class)
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == self.model_class.id,
            )
            .where(ParticipantModel.user_id == as_uuid(user_id))
            .options(
                selectinload(self.model_class.participants).selectinload(
                    ParticipantModel.profile
                )
            )
            .order_by(self.model_class.last_activity_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )  # type: ignore
        result = await self.db.execute(query)
        db_models = result.scalars().all()
        return [self._to_pydantic(db_model) for db_model in db_models]

    async def find_direct_conversation(
        self, user_id: IdType, other_user_id: IdType
    ) -> Optional[UUID]:
        """Find the two-person conversation between two users, if any."""
        mine = aliased(ParticipantModel)
        theirs = aliased(ParticipantModel)
        query = (
            select(mine.conversation_id)
            .join(theirs, theirs.conversation_id == mine.conversation_id)
            .where(
                mine.user_id == as_uuid(user_id),
                theirs.user_id == as_uuid(other_user_id),
            )
        )
        result = await self.db.execute(query)
        shared_ids = result.scalars().all()

        # Only conversations with exactly these two members count as direct
        for conversation_id in shared_ids:
            count_query = select(func.count(ParticipantModel.id)).where(
                ParticipantModel.conversation_id == conversation_id
            )
            count_result = await self.db.execute(count_query)
            if count_result.scalar_one() == 2:
                return conversation_id

        return None

    async def advance_activity(
        self, conversation_id: IdType, activity_at: datetime
    ) -> Optional[ConversationResponse]:
        """Move last_activity_at forward to activity_at; never backwards."""
        query = (
            select(self.model_class)
            .where(self.model_class.id == as_uuid(conversation_id))
            .with_for_update()
        )  # type: ignore
        result = await self.db.execute(query)
        db_model = result.scalar_one_or_none()
        if not db_model:
            return None

        current = as_utc(db_model.last_activity_at)
        if current is None or as_utc(activity_at) > current:  # type: ignore[operator]
            db_model.last_activity_at = activity_at
            await self.db.flush()

        return self._to_pydantic(db_model)

    async def delete_with_messages(
        self, conversation_id: IdType
    ) -> Optional[ConversationResponse]:
        """Delete a conversation row and every message in it."""
        db_model = await self.get_model(conversation_id)
        if not db_model:
            return None

        old_state = self._to_pydantic(db_model)
        await self.db.execute(
            delete(MessageModel).where(
                MessageModel.conversation_id == as_uuid(conversation_id)
            )
        )
        # Participant rows are removed by the caller first, one event each
        await self.db.execute(
            delete(self.model_class).where(
                self.model_class.id == as_uuid(conversation_id)
            )
        )
        await self.db.flush()
        return old_state

    def _to_pydantic(self, db_model: Any) -> ConversationResponse:
        """Convert SQLAlchemy ConversationModel to Pydantic ConversationResponse."""
        participants: List[ParticipantProfileResponse] = []
        if "participants" not in inspect(db_model).unloaded:
            participants = [
                _participant_with_profile(p) for p in db_model.participants
            ]

        return ConversationResponse(
            id=db_model.id,
            created_at=db_model.created_at,
            last_activity_at=db_model.last_activity_at,
            participants=participants,
        )

    def _from_pydantic(self, pydantic_model: ConversationResponse) -> ConversationModel:
        """Convert Pydantic ConversationResponse to SQLAlchemy ConversationModel."""
        return ConversationModel(
            id=pydantic_model.id,
            created_at=pydantic_model.created_at,
            last_activity_at=pydantic_model.last_activity_at,
        )


def _participant_with_profile(db_model: Any) -> ParticipantProfileResponse:
    profile = None
    if "profile" not in inspect(db_model).unloaded:
        profile = db_model.profile

    return ParticipantProfileResponse(
        id=db_model.id,
        conversation_id=db_model.conversation_id,
        user_id=db_model.user_id,
        last_read_at=db_model.last_read_at,
        joined_at=db_model.joined_at,
        username=profile.username if profile else None,
        avatar_url=profile.avatar_url if profile else None,
        status=profile.status if profile else None,
    )
