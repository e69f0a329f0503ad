from typing import Dict
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import as_utc
from app.errors import NotFoundError, ValidationError
from app.services.user_service import UserService


class TestUserService:
    """Tests for profile lookups and presence."""

    @pytest.mark.asyncio
    async def test_get_profile(
        self, test_db: AsyncSession, users: Dict[str, UUID]
    ) -> None:
        profile = await UserService(test_db).get_profile(users["bob"])

        assert profile.username == "bob"
        assert profile.status == "offline"

    @pytest.mark.asyncio
    async def test_get_unknown_profile(self, test_db: AsyncSession) -> None:
        with pytest.raises(NotFoundError):
            await UserService(test_db).get_profile(uuid4())

    @pytest.mark.asyncio
    async def test_search_excludes_caller(
        self, test_db: AsyncSession, users: Dict[str, UUID]
    ) -> None:
        service = UserService(test_db)

        results = await service.search_profiles(users["bob"], "o")

        assert [p.username for p in results] == ["carol"]

    @pytest.mark.asyncio
    async def test_blank_search_rejected(
        self, test_db: AsyncSession, users: Dict[str, UUID]
    ) -> None:
        with pytest.raises(ValidationError):
            await UserService(test_db).search_profiles(users["alice"], "   ")

    @pytest.mark.asyncio
    async def test_update_status_bumps_last_seen(
        self, test_db: AsyncSession, users: Dict[str, UUID]
    ) -> None:
        service = UserService(test_db)
        before = await service.get_profile(users["alice"])

        updated = await service.update_status(users["alice"], "away")

        assert updated.status == "away"
        assert as_utc(updated.last_seen_at) >= as_utc(before.last_seen_at)
        assert (await service.get_profile(users["alice"])).status == "away"
