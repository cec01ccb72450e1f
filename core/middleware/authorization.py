"""
Role-based authorization.

Membership roles map to a fixed set of permissions; routes declare the
permissions they need with ``require_permission``. A user's effective
permissions are the union over all of their memberships.
"""

import logging
from typing import Callable, Optional
from enum import Enum
from fastapi import Depends

from database.models.identity import User, MembershipRole
from core.exceptions import UserNotFoundError, UserInactiveError
from core.middleware.authentication import get_current_user

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    """System-wide permissions."""

    # Proposals
    PROPOSAL_CREATE = "proposal:create"
    PROPOSAL_READ = "proposal:read"
    PROPOSAL_RESPOND = "proposal:respond"
    PROPOSAL_CLOSE = "proposal:close"

    # Placements
    PLACEMENT_CREATE = "placement:create"
    PLACEMENT_READ = "placement:read"
    PLACEMENT_UPDATE = "placement:update"

    # Payouts
    PAYOUT_CREATE = "payout:create"
    PAYOUT_READ = "payout:read"
    PAYOUT_PROCESS = "payout:process"

    # Network
    RECRUITER_CREATE = "recruiter:create"
    RECRUITER_READ = "recruiter:read"
    RECRUITER_MANAGE = "recruiter:manage"
    RECRUITER_ASSIGN = "recruiter:assign"

    # ATS
    JOB_CREATE = "job:create"
    JOB_READ = "job:read"
    JOB_UPDATE = "job:update"
    CANDIDATE_CREATE = "candidate:create"
    CANDIDATE_READ = "candidate:read"
    APPLICATION_CREATE = "application:create"
    APPLICATION_READ = "application:read"
    APPLICATION_UPDATE = "application:update"

    # Documents
    DOCUMENT_UPLOAD = "document:upload"
    DOCUMENT_READ = "document:read"
    DOCUMENT_MANAGE = "document:manage"

    # Billing
    SUBSCRIPTION_READ = "subscription:read"
    SUBSCRIPTION_MANAGE = "subscription:manage"
    BILLING_MANAGE = "billing:manage"

    # Sourcing
    CANDIDATE_SOURCE = "candidate:source"


# Role to permission mapping
ROLE_PERMISSIONS: dict[MembershipRole, frozenset[Permission]] = {
    MembershipRole.PLATFORM_ADMIN: frozenset(Permission),
    MembershipRole.COMPANY_ADMIN: frozenset({
        Permission.PROPOSAL_CREATE, Permission.PROPOSAL_READ, Permission.PROPOSAL_CLOSE,
        Permission.PLACEMENT_CREATE, Permission.PLACEMENT_READ, Permission.PLACEMENT_UPDATE,
        Permission.PAYOUT_READ,
        Permission.RECRUITER_READ, Permission.RECRUITER_ASSIGN,
        Permission.JOB_CREATE, Permission.JOB_READ, Permission.JOB_UPDATE,
        Permission.CANDIDATE_CREATE, Permission.CANDIDATE_READ,
        Permission.APPLICATION_CREATE, Permission.APPLICATION_READ, Permission.APPLICATION_UPDATE,
        Permission.DOCUMENT_UPLOAD, Permission.DOCUMENT_READ, Permission.DOCUMENT_MANAGE,
        Permission.CANDIDATE_SOURCE,
    }),
    MembershipRole.HIRING_MANAGER: frozenset({
        Permission.PROPOSAL_READ,
        Permission.PLACEMENT_READ,
        Permission.RECRUITER_READ,
        Permission.JOB_READ, Permission.JOB_UPDATE,
        Permission.CANDIDATE_READ,
        Permission.APPLICATION_READ, Permission.APPLICATION_UPDATE,
        Permission.DOCUMENT_READ,
    }),
    MembershipRole.RECRUITER: frozenset({
        Permission.PROPOSAL_CREATE, Permission.PROPOSAL_READ, Permission.PROPOSAL_RESPOND,
        Permission.PLACEMENT_READ,
        Permission.PAYOUT_READ,
        Permission.RECRUITER_CREATE, Permission.RECRUITER_READ,
        Permission.JOB_READ,
        Permission.CANDIDATE_CREATE, Permission.CANDIDATE_READ,
        Permission.APPLICATION_CREATE, Permission.APPLICATION_READ,
        Permission.DOCUMENT_UPLOAD, Permission.DOCUMENT_READ,
        Permission.SUBSCRIPTION_READ, Permission.SUBSCRIPTION_MANAGE,
        Permission.CANDIDATE_SOURCE,
    }),
}


class AuthorizationError(Exception):
    """Raised when user doesn't have required permissions."""
    pass


class InsufficientPermissions(AuthorizationError):
    """Raised when user lacks required permission."""
    pass


def get_user_permissions(user: User) -> set[Permission]:
    """Union of the permissions granted by every membership role."""
    permissions: set[Permission] = set()
    for role in user.roles:
        permissions |= ROLE_PERMISSIONS.get(role, frozenset())
    return permissions


def check_permission(user: User, *required_permissions: Permission) -> None:
    """
    Check that the user holds every required permission.

    Raises:
        InsufficientPermissions: If any permission is missing
    """
    granted = get_user_permissions(user)
    missing = [perm.value for perm in required_permissions if perm not in granted]
    if missing:
        logger.warning(
            f"User {user.id} with roles {sorted(role.value for role in user.roles)} "
            f"lacks permission(s) {missing}"
        )
        raise InsufficientPermissions(
            f"Missing required permission(s): {', '.join(missing)}"
        )


def require_permission(*required_permissions: Permission) -> Callable:
    """
    Dependency to require specific permissions.

    Args:
        required_permissions: Permissions the caller must hold

    Returns:
        FastAPI dependency resolving to the authorized user
    """
    async def dependency(
        user: Optional[User] = Depends(get_current_user),
    ) -> User:
        if user is None:
            raise UserNotFoundError("No user matches the authentication token")
        if not user.is_active:
            raise UserInactiveError("Inactive user account")
        check_permission(user, *required_permissions)
        return user

    return dependency


def is_platform_admin(user: User) -> bool:
    return MembershipRole.PLATFORM_ADMIN in user.roles
