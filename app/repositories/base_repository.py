from typing import Any, Generic, Optional, TypeVar, Union
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.database import Base

ModelType = TypeVar("ModelType", bound=Base)
PydanticType = TypeVar("PydanticType", bound=BaseModel)

IdType = Union[str, UUID]


def as_uuid(value: IdType) -> UUID:
    """Accept either a UUID or its string form."""
    return value if isinstance(value, UUID) else UUID(str(value))


class BaseRepository(Generic[ModelType, PydanticType]):
    """Generic base repository with the shared lookup and insert.

    Repositories only flush. Committing belongs to the caller's unit of
    work so that a mutation and the events it produces share one
    transaction.
    """

    def __init__(self, db: AsyncSession, model_class: Any):
        self.db = db
        self.model_class = model_class

    async def get_model(self, id: IdType) -> Optional[ModelType]:
        """Get the SQLAlchemy row for an ID."""
        query = select(self.model_class).where(
            self.model_class.id == as_uuid(id)
        )  # type: ignore
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_id(self, id: IdType) -> Optional[PydanticType]:
        """Get a single record by ID."""
        db_model = await self.get_model(id)
        return self._to_pydantic(db_model) if db_model else None

    async def create(self, pydantic_model: PydanticType) -> PydanticType:
        """Create a new record."""
        db_model = self._from_pydantic(pydantic_model)
        self.db.add(db_model)
        await self.db.flush()
        await self.db.refresh(db_model)
        return self._to_pydantic(db_model)

    def _to_pydantic(self, db_model: ModelType) -> PydanticType:
        """Convert SQLAlchemy model to Pydantic model.

        This should be overridden in subclasses for specific conversion logic.
        """
        raise NotImplementedError

    def _from_pydantic(self, pydantic_model: PydanticType) -> ModelType:
        """Convert Pydantic model to SQLAlchemy model.

        This should be overridden in subclasses for specific conversion logic.
        """
        raise NotImplementedError
