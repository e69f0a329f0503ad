import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import utcnow
from app.errors import NotFoundError, ValidationError
from app.models.api.users import PresenceStatus, ProfileResponse
from app.repositories.base_repository import IdType
from app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 1


class UserService:
    """Service for profile lookups and presence."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_repo = UserRepository(db)

    async def get_profile(self, user_id: IdType) -> ProfileResponse:
        profile = await self.user_repo.get_by_id(user_id)
        if profile is None:
            raise NotFoundError(f"User {user_id} not found")
        return profile

    async def search_profiles(
        self, caller_id: IdType, query_text: str, limit: int = 20
    ) -> List[ProfileResponse]:
        """Find other users by username, case-insensitively."""
        query_text = (query_text or "").strip()
        if len(query_text) < MIN_QUERY_LENGTH:
            raise ValidationError("Search query cannot be empty")

        return await self.user_repo.search(
            query_text, exclude_user_id=caller_id, limit=limit
        )

    async def update_status(
        self, user_id: IdType, status: PresenceStatus
    ) -> ProfileResponse:
        """Set the caller's presence flag and bump last_seen_at."""
        profile = await self.user_repo.update_status(user_id, status, utcnow())
        if profile is None:
            raise NotFoundError(f"User {user_id} not found")

        await self.db.commit()
        logger.info(f"User {user_id} is now {status}")
        return profile
