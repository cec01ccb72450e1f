"""Payout processing tasks.

Transfer failures leave the payout in ``failed`` and are not retried here;
a failed payout is retried manually through the API.
"""

import logging
from uuid import UUID

from workers.celery_app import celery_app
from workers.runtime import run_with_session
from api.services import payouts as payout_service
from core.exceptions import InvalidStateError, NotFoundError, PayoutTransferError

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.tasks.payouts.process_payout")
def process_payout(payout_id: str) -> dict:
    """Process a single payout.

    Args:
        payout_id: UUID of the payout

    Returns:
        Dictionary with the resulting status
    """
    try:
        payout = run_with_session(payout_service.process_payout, UUID(payout_id))
    except PayoutTransferError as e:
        return {"status": "failed", "payout_id": payout_id, "error": e.message}
    except (InvalidStateError, NotFoundError) as e:
        logger.warning(f"Skipping payout {payout_id}: {e.message}")
        return {"status": "skipped", "payout_id": payout_id, "error": e.message}

    return {
        "status": payout["status"],
        "payout_id": payout_id,
        "stripe_transfer_id": payout["stripe_transfer_id"],
    }


@celery_app.task(name="workers.tasks.payouts.process_due_payouts")
def process_due_payouts(limit: int | None = None) -> dict:
    """Process pending payouts that are due, skipping those scheduled later."""
    return run_with_session(payout_service.process_due_payouts, limit=limit)
