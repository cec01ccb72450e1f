"""User service functions."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.middleware.authorization import get_user_permissions
from core.utils.datetime import isoformat
from database.models.identity import User
from database.models.network import Recruiter


async def get_current_user_profile(db: AsyncSession, user: User) -> dict[str, Any]:
    """Profile of the authenticated user with memberships and permissions."""
    recruiter = (
        await db.execute(select(Recruiter).where(Recruiter.user_id == user.id))
    ).scalar_one_or_none()

    return {
        "id": str(user.id),
        "clerk_user_id": user.clerk_user_id,
        "email": user.email,
        "name": user.name,
        "is_active": user.is_active,
        "memberships": [
            {
                "organization_id": str(m.organization_id),
                "role": m.role.value,
            }
            for m in user.memberships
        ],
        "permissions": sorted(p.value for p in get_user_permissions(user)),
        "recruiter_id": str(recruiter.id) if recruiter else None,
        "created_at": isoformat(user.created_at),
    }
