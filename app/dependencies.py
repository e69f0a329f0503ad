"""Request-scoped dependencies shared by the routers."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)


async def get_current_user_id(
    x_user_id: Optional[str] = Header(
        None, alias="X-User-Id", description="Authenticated user id"
    ),
) -> UUID:
    """
    Get the caller's user id.

    Authentication happens upstream; the gateway forwards the verified
    identity in the X-User-Id header.

    Raises:
        HTTPException: 401 when the header is missing or not a UUID
    """
    if not x_user_id:
        logger.warning("Missing X-User-Id header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    try:
        return UUID(x_user_id)
    except ValueError:
        logger.warning(f"Invalid X-User-Id header: {x_user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )
