"""
User endpoints.

Profile and permissions of the authenticated user.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import require_active_user
from api.services import users as user_service
from database.engine import get_db
from database.models.identity import User

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "/me",
    summary="Get Current User",
    description="Get the current user's profile, memberships and effective permissions.",
)
async def get_current_user_profile(
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_current_user_profile(db, current_user)
