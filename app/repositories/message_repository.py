from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.api.messages import MessageResponse
from app.models.db.message_model import MessageModel
from app.repositories.base_repository import BaseRepository, IdType, as_uuid


class MessageRepository(BaseRepository[MessageModel, MessageResponse]):
    """Repository for message operations.

    Soft-deleted messages are kept in the table but never listed.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(db, MessageModel)

    async def get_by_conversation(
        self, conversation_id: IdType, limit: int = 100, offset: int = 0
    ) -> List[MessageResponse]:
        """Get non-deleted messages for a conversation, oldest first."""
        query = (
            select(self.model_class)
            .where(
                self.model_class.conversation_id == as_uuid(conversation_id),
                self.model_class.deleted_at.is_(None),
            )
            .order_by(self.model_class.created_at, self.model_class.id)
            .limit(limit)
            .offset(offset)
        )  # type: ignore
        result = await self.db.execute(query)
        db_models = result.scalars().all()
        return [self._to_pydantic(db_model) for db_model in db_models]

    async def get_latest(self, conversation_id: IdType) -> Optional[MessageResponse]:
        """Get the newest non-deleted message of a conversation."""
        query = (
            select(self.model_class)
            .where(
                self.model_class.conversation_id == as_uuid(conversation_id),
                self.model_class.deleted_at.is_(None),
            )
            .order_by(self.model_class.created_at.desc())
            .limit(1)
        )  # type: ignore
        result = await self.db.execute(query)
        db_model = result.scalar_one_or_none()
        return self._to_pydantic(db_model) if db_model else None

    async def get_many(self, ids: Iterable[UUID]) -> Dict[UUID, MessageResponse]:
        """Get messages by ID, including soft-deleted ones."""
        wanted = list(set(ids))
        if not wanted:
            return {}
        query = select(self.model_class).where(self.model_class.id.in_(wanted))
        result = await self.db.execute(query)
        return {
            db_model.id: self._to_pydantic(db_model)
            for db_model in result.scalars().all()
        }

    async def create_message(
        self,
        conversation_id: IdType,
        sender_id: IdType,
        content: str,
        created_at: datetime,
        reply_to_id: Optional[UUID] = None,
    ) -> MessageResponse:
        """Insert a new message."""
        db_model = MessageModel(
            conversation_id=as_uuid(conversation_id),
            sender_id=as_uuid(sender_id),
            content=content,
            created_at=created_at,
            updated_at=created_at,
            edited=False,
            reply_to_id=reply_to_id,
        )
        self.db.add(db_model)
        await self.db.flush()
        await self.db.refresh(db_model)
        return self._to_pydantic(db_model)

    async def update_content(
        self, message_id: IdType, content: str, updated_at: datetime
    ) -> Optional[Tuple[MessageResponse, MessageResponse]]:
        """Replace a message's content and flag it edited; returns (old, new)."""
        db_model = await self.get_model(message_id)
        if not db_model:
            return None

        old_state = self._to_pydantic(db_model)
        db_model.content = content
        db_model.edited = True
        db_model.updated_at = updated_at
        await self.db.flush()
        return old_state, self._to_pydantic(db_model)

    async def soft_delete(
        self, message_id: IdType, deleted_at: datetime
    ) -> Optional[Tuple[MessageResponse, MessageResponse]]:
        """Mark a message deleted without removing the row; returns (old, new)."""
        db_model = await self.get_model(message_id)
        if not db_model:
            return None

        old_state = self._to_pydantic(db_model)
        db_model.deleted_at = deleted_at
        db_model.updated_at = deleted_at
        await self.db.flush()
        return old_state, self._to_pydantic(db_model)

    def _to_pydantic(self, db_model: Any) -> MessageResponse:
        """Convert SQLAlchemy MessageModel to Pydantic MessageResponse."""
        return MessageResponse(
            id=db_model.id,
            conversation_id=db_model.conversation_id,
            sender_id=db_model.sender_id,
            content=db_model.content,
            created_at=db_model.created_at,
            updated_at=db_model.updated_at,
            deleted_at=db_model.deleted_at,
            edited=bool(db_model.edited),
            reply_to_id=db_model.reply_to_id,
        )

    def _from_pydantic(self, pydantic_model: MessageResponse) -> MessageModel:
        """Convert Pydantic MessageResponse to SQLAlchemy MessageModel."""
        return MessageModel(
            id=pydantic_model.id,
            conversation_id=pydantic_model.conversation_id,
            sender_id=pydantic_model.sender_id,
            content=pydantic_model.content,
            created_at=pydantic_model.created_at,
            updated_at=pydantic_model.updated_at,
            deleted_at=pydantic_model.deleted_at,
            edited=pydantic_model.edited,
            reply_to_id=pydantic_model.reply_to_id,
        )
