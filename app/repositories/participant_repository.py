import uuid
from datetime import datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.api.participants import ParticipantResponse
from app.models.db.participant_model import ParticipantModel
from app.repositories.base_repository import BaseRepository, IdType, as_uuid


class ParticipantRepository(BaseRepository[ParticipantModel, ParticipantResponse]):
    """Repository for participant operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ParticipantModel)

    async def get_model_for(
        self, conversation_id: IdType, user_id: IdType
    ) -> Optional[ParticipantModel]:
        """Get the participant row for a (conversation, user) pair."""
        query = select(self.model_class).where(
            self.model_class.conversation_id == as_uuid(conversation_id),
            self.model_class.user_id == as_uuid(user_id),
        )  # type: ignore
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_for(
        self, conversation_id: IdType, user_id: IdType
    ) -> Optional[ParticipantResponse]:
        db_model = await self.get_model_for(conversation_id, user_id)
        return self._to_pydantic(db_model) if db_model else None

    async def get_by_conversation(
        self, conversation_id: IdType
    ) -> List[ParticipantResponse]:
        """Get all participants for a conversation, in join order."""
        query = (
            select(self.model_class)
            .where(self.model_class.conversation_id == as_uuid(conversation_id))
            .order_by(self.model_class.joined_at, self.model_class.user_id)
        )  # type: ignore
        result = await self.db.execute(query)
        db_models = result.scalars().all()
        return [self._to_pydantic(db_model) for db_model in db_models]

    async def count_by_conversation(self, conversation_id: IdType) -> int:
        query = select(func.count(self.model_class.id)).where(
            self.model_class.conversation_id == as_uuid(conversation_id)
        )
        result = await self.db.execute(query)
        return int(result.scalar_one())

    async def add_participant(
        self, conversation_id: IdType, user_id: IdType, joined_at: datetime
    ) -> ParticipantResponse:
        """Add a participant to a conversation."""
        # Check if participant already exists
        existing = await self.get_model_for(conversation_id, user_id)

        if existing:
            return self._to_pydantic(existing)

        # Create new participant; last_read_at starts at join time
        new_participant = ParticipantResponse(
            id=uuid.uuid4(),
            conversation_id=as_uuid(conversation_id),
            user_id=as_uuid(user_id),
            last_read_at=joined_at,
            joined_at=joined_at,
        )

        return await self.create(new_participant)

    async def set_last_read_at(
        self, conversation_id: IdType, user_id: IdType, read_at: datetime
    ) -> Optional[Tuple[ParticipantResponse, ParticipantResponse]]:
        """Set last_read_at for a pair; returns (old, new) or None if no row."""
        db_model = await self.get_model_for(conversation_id, user_id)
        if not db_model:
            return None

        old_state = self._to_pydantic(db_model)
        db_model.last_read_at = read_at
        await self.db.flush()
        return old_state, self._to_pydantic(db_model)

    async def remove_participant(
        self, conversation_id: IdType, user_id: IdType
    ) -> Optional[ParticipantResponse]:
        """Delete one participant row; returns its last state or None."""
        db_model = await self.get_model_for(conversation_id, user_id)
        if not db_model:
            return None

        old_state = self._to_pydantic(db_model)
        await self.db.delete(db_model)
        await self.db.flush()
        return old_state

    def _to_pydantic(self, db_model: Any) -> ParticipantResponse:
        """Convert SQLAlchemy ParticipantModel to Pydantic ParticipantResponse."""
        return ParticipantResponse(
            id=db_model.id,
            conversation_id=db_model.conversation_id,
            user_id=db_model.user_id,
            last_read_at=db_model.last_read_at,
            joined_at=db_model.joined_at,
        )

    def _from_pydantic(self, pydantic_model: ParticipantResponse) -> ParticipantModel:
        """Convert Pydantic ParticipantResponse to SQLAlchemy ParticipantModel."""
        return ParticipantModel(
            id=pydantic_model.id,
            conversation_id=pydantic_model.conversation_id,
            user_id=pydantic_model.user_id,
            last_read_at=pydantic_model.last_read_at,
            joined_at=pydantic_model.joined_at,
        )
