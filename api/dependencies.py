"""FastAPI dependencies for dependency injection."""

from typing import Optional
from fastapi import Depends, HTTPException, status

from database.models.identity import User
from core.exceptions import UserNotFoundError, UserInactiveError
from core.middleware.authentication import get_current_user
from core.integrations.stripe_billing import StripeBillingClient
from core.integrations.stripe_connect import StripeTransferClient
from core.storage import LocalStorage, S3Storage, get_storage


async def require_authenticated_user(
    current_user: Optional[User] = Depends(get_current_user),
) -> User:
    """Require the token subject to resolve to a user."""
    if not current_user:
        raise UserNotFoundError("No user matches the authentication token")

    return current_user


async def require_active_user(
    current_user: User = Depends(require_authenticated_user),
) -> User:
    """Require user to be active."""
    if not current_user.is_active:
        raise UserInactiveError("Inactive user account")
    return current_user


def get_pagination_params(
    page: int = 1,
    page_size: int = 20,
) -> dict:
    """
    Get pagination parameters.

    Args:
        page: Page number (1-indexed)
        page_size: Items per page, capped at 100

    Returns:
        Dictionary with offset and limit
    """
    if page < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Page must be >= 1"
        )

    if page_size < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Page size must be >= 1"
        )

    page_size = min(page_size, 100)

    return {
        "offset": (page - 1) * page_size,
        "limit": page_size,
        "page": page,
        "page_size": page_size,
    }


def get_transfer_client() -> StripeTransferClient:
    """Stripe Connect client used to settle payouts."""
    return StripeTransferClient()


def get_document_storage() -> LocalStorage | S3Storage:
    """Storage backend selected by STORAGE_BACKEND."""
    return get_storage()


def get_billing_client() -> StripeBillingClient:
    """Stripe client for recruiter subscriptions and webhooks."""
    return StripeBillingClient()
