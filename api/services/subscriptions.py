"""
Recruiter subscription service functions.

Plans are created by platform admins. A subscription is created through
Stripe when the plan has a Stripe price and the caller supplies a Stripe
customer; otherwise it starts as a local trial. Stripe webhooks keep status
and billing period in sync afterwards.
"""

from typing import Any, Optional
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.events import record_event
from core.exceptions import ValidationError, NotFoundError, InvalidStateError
from core.integrations.stripe_billing import StripeBillingClient, subscription_snapshot
from core.utils.datetime import now, isoformat
from database.models.billing import (
    Plan,
    Subscription,
    SubscriptionStatus,
    ACTIVE_SUBSCRIPTION_STATUSES,
)
from database.models.network import Recruiter

logger = logging.getLogger(__name__)

SUBSCRIPTION_UPDATE_EVENTS = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
})
SUBSCRIPTION_DELETED_EVENT = "customer.subscription.deleted"


def plan_to_dict(plan: Plan) -> dict[str, Any]:
    return {
        "id": str(plan.id),
        "name": plan.name,
        "price_monthly": plan.price_monthly,
        "stripe_price_id": plan.stripe_price_id,
        "features": plan.features or {},
        "created_at": isoformat(plan.created_at),
    }


def subscription_to_dict(subscription: Subscription) -> dict[str, Any]:
    return {
        "id": str(subscription.id),
        "recruiter_id": str(subscription.recruiter_id),
        "plan_id": str(subscription.plan_id),
        "stripe_subscription_id": subscription.stripe_subscription_id,
        "status": subscription.status.value,
        "is_active": subscription.status in ACTIVE_SUBSCRIPTION_STATUSES,
        "current_period_start": isoformat(subscription.current_period_start),
        "current_period_end": isoformat(subscription.current_period_end),
        "cancel_at": isoformat(subscription.cancel_at),
        "created_at": isoformat(subscription.created_at),
    }


def _event_payload(subscription: Subscription) -> dict[str, Any]:
    return {
        "subscription_id": subscription.id,
        "recruiter_id": subscription.recruiter_id,
        "plan_id": subscription.plan_id,
        "status": subscription.status.value,
    }


def _set_status(
    db: AsyncSession, subscription: Subscription, new_status: SubscriptionStatus
) -> None:
    """Apply a status and record activated/canceled when the subscription crosses over."""
    was_active = subscription.status in ACTIVE_SUBSCRIPTION_STATUSES
    was_canceled = subscription.status == SubscriptionStatus.CANCELED
    subscription.status = new_status

    if new_status in ACTIVE_SUBSCRIPTION_STATUSES and not was_active:
        record_event(db, "subscription.activated", _event_payload(subscription))
    elif new_status == SubscriptionStatus.CANCELED and not was_canceled:
        record_event(db, "subscription.canceled", _event_payload(subscription))


def _parse_status(value: str) -> SubscriptionStatus:
    try:
        return SubscriptionStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown subscription status '{value}'")


# ==================== Plans ===================== #
async def list_plans(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(select(Plan).order_by(Plan.price_monthly, Plan.name))
    return [plan_to_dict(plan) for plan in result.scalars().all()]


async def get_plan(db: AsyncSession, plan_id: UUID) -> dict[str, Any]:
    plan = await db.get(Plan, plan_id)
    if not plan:
        raise NotFoundError(f"Plan {plan_id} not found")
    return plan_to_dict(plan)


async def create_plan(
    db: AsyncSession,
    name: str,
    price_monthly: int,
    stripe_price_id: Optional[str] = None,
    features: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Create a subscription plan. Prices are in cents."""
    if price_monthly < 0:
        raise ValidationError("price_monthly must not be negative")

    existing = await db.execute(select(Plan.id).where(Plan.name == name))
    if existing.first():
        raise ValidationError(f"A plan named '{name}' already exists")

    plan = Plan(
        name=name,
        price_monthly=price_monthly,
        stripe_price_id=stripe_price_id,
        features=features or {},
    )
    db.add(plan)
    await db.commit()

    logger.info(f"Created plan {plan.id} ({name})")
    return plan_to_dict(plan)


# ==================== Subscriptions ===================== #
async def _current_subscription(
    db: AsyncSession, recruiter_id: UUID
) -> Optional[Subscription]:
    result = await db.execute(
        select(Subscription)
        .where(Subscription.recruiter_id == recruiter_id)
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_subscription_for_recruiter(
    db: AsyncSession, recruiter_id: UUID
) -> dict[str, Any]:
    """Most recent subscription of a recruiter."""
    subscription = await _current_subscription(db, recruiter_id)
    if not subscription:
        raise NotFoundError(f"No subscription found for recruiter {recruiter_id}")
    return subscription_to_dict(subscription)


async def is_subscription_active(db: AsyncSession, recruiter_id: UUID) -> bool:
    """True when the recruiter's current subscription is active or trialing."""
    subscription = await _current_subscription(db, recruiter_id)
    return subscription is not None and subscription.status in ACTIVE_SUBSCRIPTION_STATUSES


async def create_subscription(
    db: AsyncSession,
    recruiter_id: UUID,
    plan_id: UUID,
    stripe_customer_id: Optional[str] = None,
    billing_client: Optional[StripeBillingClient] = None,
) -> dict[str, Any]:
    """
    Subscribe a recruiter to a plan.

    Raises:
        ValidationError: If the plan or recruiter does not exist, or the
            recruiter already has a subscription that is not canceled
        BillingProviderError: If Stripe rejects the subscription
    """
    plan = await db.get(Plan, plan_id)
    if not plan:
        raise ValidationError(f"Plan {plan_id} does not exist")
    if not await db.get(Recruiter, recruiter_id):
        raise ValidationError(f"Recruiter {recruiter_id} does not exist")

    current = await _current_subscription(db, recruiter_id)
    if current and current.status != SubscriptionStatus.CANCELED:
        raise ValidationError(
            "Recruiter already has a subscription",
            details={"subscription_id": str(current.id), "status": current.status.value},
        )

    subscription = Subscription(
        recruiter_id=recruiter_id,
        plan_id=plan.id,
        status=SubscriptionStatus.INCOMPLETE,
        created_at=now(),
    )

    if stripe_customer_id and plan.stripe_price_id:
        billing_client = billing_client or StripeBillingClient()
        snapshot = await billing_client.create_subscription(
            customer_id=stripe_customer_id,
            price_id=plan.stripe_price_id,
            metadata={"recruiter_id": recruiter_id, "plan_id": plan.id},
        )
        subscription.stripe_subscription_id = snapshot["stripe_subscription_id"]
        subscription.current_period_start = snapshot["current_period_start"]
        subscription.current_period_end = snapshot["current_period_end"]
        subscription.cancel_at = snapshot["cancel_at"]
        new_status = _parse_status(snapshot["status"])
    else:
        new_status = SubscriptionStatus.TRIALING

    db.add(subscription)
    await db.flush()
    _set_status(db, subscription, new_status)
    await db.commit()

    logger.info(
        f"Created subscription {subscription.id} for recruiter {recruiter_id} "
        f"on plan {plan.name} ({subscription.status.value})"
    )
    return subscription_to_dict(subscription)


async def cancel_subscription(
    db: AsyncSession,
    recruiter_id: UUID,
    billing_client: Optional[StripeBillingClient] = None,
) -> dict[str, Any]:
    """Cancel the recruiter's current subscription, in Stripe first when linked."""
    subscription = await _current_subscription(db, recruiter_id)
    if not subscription:
        raise NotFoundError(f"No subscription found for recruiter {recruiter_id}")
    if subscription.status == SubscriptionStatus.CANCELED:
        raise InvalidStateError("subscription", subscription.status.value, "cancel")

    if subscription.stripe_subscription_id:
        billing_client = billing_client or StripeBillingClient()
        await billing_client.cancel_subscription(subscription.stripe_subscription_id)

    subscription.cancel_at = now()
    _set_status(db, subscription, SubscriptionStatus.CANCELED)
    await db.commit()

    logger.info(f"Cancelled subscription {subscription.id} for recruiter {recruiter_id}")
    return subscription_to_dict(subscription)


async def handle_stripe_event(db: AsyncSession, event: Any) -> dict[str, Any]:
    """
    Apply a verified Stripe webhook event.

    Unknown event types and subscriptions that are not tracked locally are
    acknowledged without changes so Stripe does not redeliver them.
    """
    event_type = event["type"]
    if event_type not in SUBSCRIPTION_UPDATE_EVENTS and event_type != SUBSCRIPTION_DELETED_EVENT:
        logger.debug(f"Ignoring Stripe webhook {event_type}")
        return {"event_type": event_type, "handled": False}

    snapshot = subscription_snapshot(event["data"]["object"])
    result = await db.execute(
        select(Subscription).where(
            Subscription.stripe_subscription_id == snapshot["stripe_subscription_id"]
        )
    )
    subscription = result.scalar_one_or_none()
    if not subscription:
        logger.warning(
            f"Stripe webhook {event_type} for unknown subscription "
            f"{snapshot['stripe_subscription_id']}"
        )
        return {"event_type": event_type, "handled": False}

    if event_type == SUBSCRIPTION_DELETED_EVENT:
        _set_status(db, subscription, SubscriptionStatus.CANCELED)
    else:
        subscription.current_period_start = snapshot["current_period_start"]
        subscription.current_period_end = snapshot["current_period_end"]
        subscription.cancel_at = snapshot["cancel_at"]
        _set_status(db, subscription, _parse_status(snapshot["status"]))
    await db.commit()

    logger.info(
        f"Subscription {subscription.id} is {subscription.status.value} after {event_type}"
    )
    return {
        "event_type": event_type,
        "handled": True,
        "subscription_id": str(subscription.id),
        "status": subscription.status.value,
    }
