"""
Billing endpoints.

Subscription plans, recruiter subscriptions and the Stripe webhook that keeps
subscriptions in sync.
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Path, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import require_active_user, get_billing_client
from api.services import subscriptions as subscription_service
from api.services.recruiters import get_recruiter_for_user
from core.exceptions import ValidationError
from core.integrations.stripe_billing import StripeBillingClient
from core.middleware.authorization import Permission, check_permission, require_permission
from database.engine import get_db
from database.models.identity import User
from workers.tasks.events import dispatch_outbox_relay

router = APIRouter(tags=["billing"])


class CreatePlanRequest(BaseModel):
    """Request model for creating a plan."""
    name: str = Field(..., min_length=1, max_length=255)
    price_monthly: int = Field(..., ge=0, description="Monthly price in cents")
    stripe_price_id: Optional[str] = Field(None, pattern=r"^price_[A-Za-z0-9]+$")
    features: dict[str, Any] = Field(default_factory=dict)


class CreateSubscriptionRequest(BaseModel):
    """Request model for subscribing a recruiter to a plan."""
    plan_id: UUID
    recruiter_id: Optional[UUID] = Field(
        None, description="Recruiter to subscribe; defaults to the caller's recruiter profile"
    )
    stripe_customer_id: Optional[str] = Field(
        None, pattern=r"^cus_[A-Za-z0-9]+$", description="Stripe customer to bill"
    )


async def _resolve_recruiter(
    db: AsyncSession, current_user: User, recruiter_id: Optional[UUID]
) -> UUID:
    """Own recruiter profile, or any recruiter for billing admins."""
    own = await get_recruiter_for_user(db, current_user.id)
    if recruiter_id is None:
        if own is None:
            raise ValidationError("recruiter_id is required without a recruiter profile")
        return own.id
    if own is None or own.id != recruiter_id:
        check_permission(current_user, Permission.BILLING_MANAGE)
    return recruiter_id


# ==================== Plans ===================== #
@router.get(
    "/plans",
    summary="List Plans",
    description="Subscription plans, cheapest first. Requires subscription:read permission.",
    dependencies=[Depends(require_permission(Permission.SUBSCRIPTION_READ))],
)
async def list_plans(db: AsyncSession = Depends(get_db)):
    return {"plans": await subscription_service.list_plans(db)}


@router.post(
    "/plans",
    status_code=status.HTTP_201_CREATED,
    summary="Create Plan",
    description="Create a subscription plan. Requires billing:manage permission.",
    dependencies=[Depends(require_permission(Permission.BILLING_MANAGE))],
)
async def create_plan(
    request: CreatePlanRequest,
    db: AsyncSession = Depends(get_db),
):
    return await subscription_service.create_plan(
        db,
        name=request.name,
        price_monthly=request.price_monthly,
        stripe_price_id=request.stripe_price_id,
        features=request.features,
    )


@router.get(
    "/plans/{plan_id}",
    summary="Get Plan",
    dependencies=[Depends(require_permission(Permission.SUBSCRIPTION_READ))],
)
async def get_plan(
    plan_id: UUID = Path(..., description="Plan ID"),
    db: AsyncSession = Depends(get_db),
):
    return await subscription_service.get_plan(db, plan_id)


# ==================== Subscriptions ===================== #
@router.post(
    "/subscriptions",
    status_code=status.HTTP_201_CREATED,
    summary="Create Subscription",
    description="Subscribe a recruiter to a plan. Requires subscription:manage permission; "
                "subscribing another recruiter also requires billing:manage.",
    dependencies=[Depends(require_permission(Permission.SUBSCRIPTION_MANAGE))],
)
async def create_subscription(
    request: CreateSubscriptionRequest,
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
    billing_client: StripeBillingClient = Depends(get_billing_client),
):
    recruiter_id = await _resolve_recruiter(db, current_user, request.recruiter_id)
    result = await subscription_service.create_subscription(
        db,
        recruiter_id=recruiter_id,
        plan_id=request.plan_id,
        stripe_customer_id=request.stripe_customer_id,
        billing_client=billing_client,
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "/subscriptions/recruiter/{recruiter_id}",
    summary="Get Recruiter Subscription",
    dependencies=[Depends(require_permission(Permission.SUBSCRIPTION_READ))],
)
async def get_recruiter_subscription(
    recruiter_id: UUID = Path(..., description="Recruiter ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    await _resolve_recruiter(db, current_user, recruiter_id)
    return await subscription_service.get_subscription_for_recruiter(db, recruiter_id)


@router.get(
    "/subscriptions/recruiter/{recruiter_id}/status",
    summary="Subscription Status",
    description="Whether the recruiter's subscription is active or trialing.",
    dependencies=[Depends(require_permission(Permission.SUBSCRIPTION_READ))],
)
async def get_subscription_status(
    recruiter_id: UUID = Path(..., description="Recruiter ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    await _resolve_recruiter(db, current_user, recruiter_id)
    return {
        "recruiter_id": str(recruiter_id),
        "is_active": await subscription_service.is_subscription_active(db, recruiter_id),
    }


@router.post(
    "/subscriptions/recruiter/{recruiter_id}/cancel",
    summary="Cancel Subscription",
    dependencies=[Depends(require_permission(Permission.SUBSCRIPTION_MANAGE))],
)
async def cancel_subscription(
    recruiter_id: UUID = Path(..., description="Recruiter ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
    billing_client: StripeBillingClient = Depends(get_billing_client),
):
    await _resolve_recruiter(db, current_user, recruiter_id)
    result = await subscription_service.cancel_subscription(
        db, recruiter_id, billing_client=billing_client
    )
    dispatch_outbox_relay()
    return result


# ==================== Webhooks ===================== #
@router.post(
    "/webhooks/stripe",
    summary="Stripe Webhook",
    description="Subscription lifecycle events from Stripe. Authenticated by the "
                "stripe-signature header instead of a bearer token.",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    db: AsyncSession = Depends(get_db),
    billing_client: StripeBillingClient = Depends(get_billing_client),
):
    payload = await request.body()
    event = billing_client.construct_event(payload, stripe_signature)
    result = await subscription_service.handle_stripe_event(db, event)
    dispatch_outbox_relay()
    return result
