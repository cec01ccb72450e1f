"""Stripe subscriptions and webhook verification for recruiter billing."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe

from core.config import settings
from core.exceptions import BillingProviderError, WebhookSignatureError

logger = logging.getLogger(__name__)


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def subscription_snapshot(stripe_subscription: Any) -> dict[str, Any]:
    """
    Extract the fields mirrored locally from a Stripe subscription object.

    Newer API versions report the billing period on the subscription items
    rather than on the subscription itself.
    """
    period_start = stripe_subscription.get("current_period_start")
    period_end = stripe_subscription.get("current_period_end")
    if period_start is None:
        items = (stripe_subscription.get("items") or {}).get("data") or []
        if items:
            period_start = items[0].get("current_period_start")
            period_end = items[0].get("current_period_end")

    return {
        "stripe_subscription_id": stripe_subscription["id"],
        "status": stripe_subscription["status"],
        "current_period_start": _from_timestamp(period_start),
        "current_period_end": _from_timestamp(period_end),
        "cancel_at": _from_timestamp(stripe_subscription.get("cancel_at")),
    }


class StripeBillingClient:
    """Wrapper around the Stripe subscription and webhook APIs."""

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Create a subscription that stays incomplete until the first invoice is paid.

        Returns:
            Subscription snapshot (see ``subscription_snapshot``)

        Raises:
            BillingProviderError: If Stripe is not configured or rejects the request
        """
        if not self.api_key:
            raise BillingProviderError("Stripe is not configured")

        try:
            subscription = await asyncio.to_thread(
                stripe.Subscription.create,
                api_key=self.api_key,
                customer=customer_id,
                items=[{"price": price_id}],
                payment_behavior="default_incomplete",
                metadata={key: str(value) for key, value in metadata.items()},
            )
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            logger.error(f"Stripe subscription for customer {customer_id} failed: {message}")
            raise BillingProviderError(f"Stripe subscription failed: {message}") from e

        logger.info(f"Created Stripe subscription {subscription['id']}")
        return subscription_snapshot(subscription)

    async def cancel_subscription(self, stripe_subscription_id: str) -> None:
        if not self.api_key:
            raise BillingProviderError("Stripe is not configured")

        try:
            await asyncio.to_thread(
                stripe.Subscription.cancel, stripe_subscription_id, api_key=self.api_key
            )
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            logger.error(f"Cancelling Stripe subscription {stripe_subscription_id} failed: {message}")
            raise BillingProviderError(f"Stripe cancellation failed: {message}") from e

        logger.info(f"Cancelled Stripe subscription {stripe_subscription_id}")

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Any:
        """
        Verify a webhook payload against the endpoint secret.

        Raises:
            WebhookSignatureError: If the header is missing or the signature is wrong
        """
        if not signature:
            raise WebhookSignatureError("Missing stripe-signature header")
        if not self.webhook_secret:
            raise WebhookSignatureError("Stripe webhook secret is not configured")

        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Rejected Stripe webhook: {e}")
            raise WebhookSignatureError("Invalid webhook signature") from e
