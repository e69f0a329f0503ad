from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user_id
from app.models.api.users import ProfileResponse, UpdateStatusRequest
from app.services.user_service import UserService

router = APIRouter()


@router.get("", response_model=List[ProfileResponse])
async def search_users(
    q: str = Query(..., description="Username fragment to search for", min_length=1),
    limit: int = Query(20, description="Maximum number of users to return", ge=1, le=50),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[ProfileResponse]:
    """Search other users by username."""
    service = UserService(db)
    return await service.search_profiles(user_id, q, limit=limit)


@router.put("/me/status", response_model=ProfileResponse)
async def update_my_status(
    request: UpdateStatusRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """Set the caller's presence status."""
    service = UserService(db)
    return await service.update_status(user_id, request.status)


@router.get("/{profile_id}", response_model=ProfileResponse)
async def get_user(
    profile_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """Get a user's public profile."""
    service = UserService(db)
    return await service.get_profile(profile_id)
