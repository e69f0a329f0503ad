from datetime import datetime
from typing import Any, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.api.users import ProfileResponse
from app.models.db.user_model import UserModel
from app.repositories.base_repository import BaseRepository, IdType, as_uuid


class UserRepository(BaseRepository[UserModel, ProfileResponse]):
    """Repository for profile reads and presence updates."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, UserModel)

    async def get_existing_ids(self, ids: Iterable[UUID]) -> Set[UUID]:
        """Return the subset of ids that have a profile."""
        wanted = list(set(ids))
        if not wanted:
            return set()
        query = select(self.model_class.id).where(self.model_class.id.in_(wanted))
        result = await self.db.execute(query)
        return set(result.scalars().all())

    async def search(
        self, query_text: str, exclude_user_id: Optional[IdType] = None, limit: int = 20
    ) -> List[ProfileResponse]:
        """Case-insensitive username search, alphabetical."""
        query = select(self.model_class).where(
            self.model_class.username.ilike(f"%{query_text}%")
        )
        if exclude_user_id is not None:
            query = query.where(self.model_class.id != as_uuid(exclude_user_id))
        query = query.order_by(self.model_class.username).limit(limit)

        result = await self.db.execute(query)
        db_models = result.scalars().all()
        return [self._to_pydantic(db_model) for db_model in db_models]

    async def update_status(
        self, user_id: IdType, status: str, seen_at: datetime
    ) -> Optional[ProfileResponse]:
        """Set presence status and bump last_seen_at."""
        db_model = await self.get_model(user_id)
        if not db_model:
            return None

        db_model.status = status
        db_model.last_seen_at = seen_at
        await self.db.flush()
        return self._to_pydantic(db_model)

    def _to_pydantic(self, db_model: Any) -> ProfileResponse:
        """Convert SQLAlchemy UserModel to Pydantic ProfileResponse."""
        return ProfileResponse(
            id=db_model.id,
            username=db_model.username,
            avatar_url=db_model.avatar_url,
            status=db_model.status,
            last_seen_at=db_model.last_seen_at,
            created_at=db_model.created_at,
        )

    def _from_pydantic(self, pydantic_model: ProfileResponse) -> UserModel:
        """Convert Pydantic ProfileResponse to SQLAlchemy UserModel."""
        return UserModel(
            id=pydantic_model.id,
            username=pydantic_model.username,
            avatar_url=pydantic_model.avatar_url,
            status=pydantic_model.status,
            last_seen_at=pydantic_model.last_seen_at,
            created_at=pydantic_model.created_at,
        )
