"""Stripe Connect transfers for recruiter payouts."""

import asyncio
import logging
from typing import Any, Optional

import stripe

from core.config import settings
from core.exceptions import PayoutTransferError

logger = logging.getLogger(__name__)


class StripeTransferClient:
    """Thin wrapper around ``stripe.Transfer.create``."""

    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None):
        self.api_key = api_key or settings.stripe_secret_key
        self.currency = currency or settings.payout_currency

    async def create_transfer(
        self,
        amount: int,
        destination: str,
        metadata: dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> str:
        """
        Transfer funds to a connected account.

        Args:
            amount: Amount in cents
            destination: Stripe Connect account id
            metadata: Metadata stored on the transfer
            idempotency_key: Key that makes retries of the same attempt safe

        Returns:
            Stripe transfer id

        Raises:
            PayoutTransferError: If Stripe is not configured or rejects the transfer
        """
        if not self.api_key:
            raise PayoutTransferError("Stripe is not configured")
        if amount <= 0:
            raise PayoutTransferError("Transfer amount must be positive")

        try:
            transfer = await asyncio.to_thread(
                stripe.Transfer.create,
                api_key=self.api_key,
                amount=amount,
                currency=self.currency,
                destination=destination,
                metadata={key: str(value) for key, value in metadata.items()},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            logger.error(f"Stripe transfer to {destination} failed: {message}")
            raise PayoutTransferError(
                f"Stripe transfer failed: {message}",
                details={"stripe_code": getattr(e, "code", None)},
            ) from e

        logger.info(f"Created Stripe transfer {transfer['id']} for {amount} cents")
        return transfer["id"]
