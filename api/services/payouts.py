"""
Payout service functions.

Payouts settle a recruiter's share of a placement fee through a Stripe
Connect transfer. Every status change is written to the payout audit log and
the event outbox in the same transaction.
"""

from typing import Any, Optional
from datetime import datetime
from uuid import UUID
import logging

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.events import record_event
from core.exceptions import (
    DomainError,
    ValidationError,
    NotFoundError,
    InvalidStateError,
    PayoutTransferError,
)
from core.fees import compute_share, validate_percentage, validate_split_total
from core.integrations.stripe_connect import StripeTransferClient
from core.utils.datetime import now, as_utc, isoformat
from database.models.network import Recruiter
from database.models.payouts import Payout, PayoutAuditLog, PayoutStatus, PAYOUT_TRANSITIONS
from database.models.placements import Placement, PlacementCollaborator, PlacementState

logger = logging.getLogger(__name__)


def payout_to_dict(payout: Payout) -> dict[str, Any]:
    return {
        "id": str(payout.id),
        "placement_id": str(payout.placement_id),
        "recruiter_id": str(payout.recruiter_id),
        "placement_fee": payout.placement_fee,
        "recruiter_share_percentage": payout.recruiter_share_percentage,
        "payout_amount": payout.payout_amount,
        "status": payout.status.value,
        "attempts": payout.attempts,
        "stripe_transfer_id": payout.stripe_transfer_id,
        "hold_reason": payout.hold_reason,
        "failure_reason": payout.failure_reason,
        "scheduled_for": isoformat(payout.scheduled_for),
        "trigger_event": payout.trigger_event,
        "processing_started_at": isoformat(payout.processing_started_at),
        "completed_at": isoformat(payout.completed_at),
        "failed_at": isoformat(payout.failed_at),
        "created_at": isoformat(payout.created_at),
    }


def _audit(
    db: AsyncSession,
    payout: Payout,
    event_type: str,
    old_status: Optional[PayoutStatus],
    details: Optional[dict[str, Any]] = None,
    actor: Optional[UUID] = None,
) -> None:
    db.add(PayoutAuditLog(
        payout_id=payout.id,
        event_type=event_type,
        old_status=old_status.value if old_status else None,
        new_status=payout.status.value,
        details=details,
        created_by=actor,
        created_at=now(),
    ))


def _event_payload(payout: Payout, **extra: Any) -> dict[str, Any]:
    payload = {
        "payout_id": payout.id,
        "placement_id": payout.placement_id,
        "recruiter_id": payout.recruiter_id,
        "payout_amount": payout.payout_amount,
        "status": payout.status.value,
    }
    payload.update(extra)
    return payload


def _transition(
    db: AsyncSession,
    payout: Payout,
    new_status: PayoutStatus,
    action: str,
    event_type: str,
    details: Optional[dict[str, Any]] = None,
    actor: Optional[UUID] = None,
) -> None:
    """Apply a status change, rejecting anything outside PAYOUT_TRANSITIONS."""
    if new_status not in PAYOUT_TRANSITIONS[payout.status]:
        raise InvalidStateError("payout", payout.status.value, action)

    old_status = payout.status
    payout.status = new_status
    _audit(db, payout, event_type, old_status, details, actor)
    record_event(db, event_type, _event_payload(payout, **(details or {})))


def _future(scheduled_for: datetime) -> datetime:
    scheduled_for = as_utc(scheduled_for)
    if scheduled_for <= now():
        raise ValidationError(
            "scheduled_for must be in the future",
            details={"scheduled_for": isoformat(scheduled_for)},
        )
    return scheduled_for


async def _load_for_update(db: AsyncSession, payout_id: UUID) -> Payout:
    result = await db.execute(
        select(Payout).where(Payout.id == payout_id).with_for_update()
    )
    payout = result.scalar_one_or_none()
    if not payout:
        raise NotFoundError(f"Payout {payout_id} not found")
    return payout


async def _default_share_percentage(
    db: AsyncSession, placement: Placement, recruiter: Recruiter
) -> float:
    collaborator = (
        await db.execute(
            select(PlacementCollaborator).where(
                PlacementCollaborator.placement_id == placement.id,
                PlacementCollaborator.recruiter_user_id == recruiter.user_id,
            )
        )
    ).scalar_one_or_none()
    if collaborator:
        return collaborator.split_percentage
    if recruiter.id == placement.recruiter_id:
        return placement.recruiter_share_percentage
    raise ValidationError(
        "share_percentage is required for a recruiter who is neither the "
        "placement recruiter nor a collaborator"
    )


async def create_payout(
    db: AsyncSession,
    placement_id: UUID,
    recruiter_id: UUID,
    share_percentage: Optional[float] = None,
    created_by: Optional[UUID] = None,
    scheduled_for: Optional[datetime] = None,
    trigger_event: Optional[str] = None,
) -> dict[str, Any]:
    """
    Create a pending payout for a recruiter's share of a placement fee.

    The amount is round(placement.fee_amount * share_percentage / 100). The
    share percentages of all payouts on one placement never exceed 100.
    Without scheduled_for the payout is due immediately.
    """
    if scheduled_for is not None:
        scheduled_for = _future(scheduled_for)

    placement = (
        await db.execute(
            select(Placement).where(Placement.id == placement_id).with_for_update()
        )
    ).scalar_one_or_none()
    if not placement:
        raise ValidationError(f"Placement {placement_id} does not exist")
    if placement.state == PlacementState.FAILED:
        raise InvalidStateError("placement", placement.state.value, "create payout for")

    recruiter = await db.get(Recruiter, recruiter_id)
    if not recruiter:
        raise ValidationError(f"Recruiter {recruiter_id} does not exist")

    if share_percentage is None:
        share_percentage = await _default_share_percentage(db, placement, recruiter)
    validate_percentage(share_percentage, "share_percentage")

    existing = await db.execute(
        select(Payout.recruiter_id, Payout.recruiter_share_percentage).where(
            Payout.placement_id == placement_id
        )
    )
    existing_rows = existing.all()
    if any(row.recruiter_id == recruiter_id for row in existing_rows):
        raise ValidationError("Recruiter already has a payout for this placement")
    validate_split_total(
        [row.recruiter_share_percentage for row in existing_rows] + [share_percentage]
    )

    payout = Payout(
        placement_id=placement.id,
        recruiter_id=recruiter.id,
        placement_fee=placement.fee_amount,
        recruiter_share_percentage=share_percentage,
        payout_amount=compute_share(placement.fee_amount, share_percentage),
        status=PayoutStatus.PENDING,
        attempts=0,
        scheduled_for=scheduled_for,
        trigger_event=trigger_event,
        created_by=created_by,
    )
    db.add(payout)
    await db.flush()

    _audit(db, payout, "payout.created", None, {"payout_amount": payout.payout_amount}, created_by)
    record_event(db, "payout.created", _event_payload(payout))
    await db.commit()

    logger.info(
        f"Created payout {payout.id} of {payout.payout_amount} cents "
        f"for recruiter {recruiter_id}"
    )
    return payout_to_dict(payout)


async def get_payout(db: AsyncSession, payout_id: UUID) -> dict[str, Any]:
    """Get payout details."""
    payout = await db.get(Payout, payout_id)
    if not payout:
        raise NotFoundError(f"Payout {payout_id} not found")
    return payout_to_dict(payout)


async def list_payouts(
    db: AsyncSession,
    placement_id: Optional[UUID] = None,
    recruiter_id: Optional[UUID] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """List payouts with filtering."""
    query = select(Payout)

    if placement_id:
        query = query.where(Payout.placement_id == placement_id)
    if recruiter_id:
        query = query.where(Payout.recruiter_id == recruiter_id)
    if status:
        try:
            query = query.where(Payout.status == PayoutStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown payout status '{status}'")

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0

    result = await db.execute(
        query.order_by(Payout.created_at.desc()).limit(limit).offset(offset)
    )

    return {
        "payouts": [payout_to_dict(p) for p in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def process_payout(
    db: AsyncSession,
    payout_id: UUID,
    transfer_client: Optional[StripeTransferClient] = None,
    processed_by: Optional[UUID] = None,
) -> dict[str, Any]:
    """
    Transfer a payout to the recruiter's Stripe Connect account.

    The payout is committed as processing before Stripe is called, so a
    concurrent attempt sees processing and is rejected. Failures are not
    retried automatically.

    Raises:
        InvalidStateError: If the payout is not pending or failed
        PayoutTransferError: If the transfer fails; the payout is left failed
    """
    transfer_client = transfer_client or StripeTransferClient()
    payout = await _load_for_update(db, payout_id)

    _transition(
        db, payout, PayoutStatus.PROCESSING, "process", "payout.processing",
        {"attempt": payout.attempts + 1}, processed_by,
    )
    payout.attempts += 1
    payout.processing_started_at = now()
    payout.failure_reason = None
    await db.commit()

    try:
        recruiter = await db.get(Recruiter, payout.recruiter_id)
        if not recruiter or not recruiter.stripe_connect_account_id:
            raise PayoutTransferError("Recruiter has no Stripe Connect account")

        transfer_id = await transfer_client.create_transfer(
            amount=payout.payout_amount,
            destination=recruiter.stripe_connect_account_id,
            metadata={
                "payout_id": payout.id,
                "placement_id": payout.placement_id,
                "recruiter_id": payout.recruiter_id,
            },
            idempotency_key=f"payout-{payout.id}-{payout.attempts}",
        )
    except Exception as e:
        reason = e.message if isinstance(e, DomainError) else str(e)
        payout.failure_reason = reason or type(e).__name__
        payout.failed_at = now()
        _transition(
            db, payout, PayoutStatus.FAILED, "fail", "payout.failed",
            {"failure_reason": payout.failure_reason, "attempt": payout.attempts},
            processed_by,
        )
        await db.commit()

        logger.error(f"Payout {payout_id} failed on attempt {payout.attempts}: {reason}")
        if isinstance(e, PayoutTransferError):
            raise
        raise PayoutTransferError(f"Payout transfer failed: {reason}") from e

    payout.stripe_transfer_id = transfer_id
    payout.completed_at = now()
    _transition(
        db, payout, PayoutStatus.COMPLETED, "complete", "payout.completed",
        {"stripe_transfer_id": transfer_id}, processed_by,
    )
    await db.commit()

    logger.info(f"Payout {payout_id} completed with transfer {transfer_id}")
    return payout_to_dict(payout)


async def hold_payout(
    db: AsyncSession,
    payout_id: UUID,
    reason: str,
    held_by: Optional[UUID] = None,
) -> dict[str, Any]:
    """Put a pending payout on hold."""
    payout = await _load_for_update(db, payout_id)
    _transition(
        db, payout, PayoutStatus.ON_HOLD, "hold", "payout.on_hold",
        {"hold_reason": reason}, held_by,
    )
    payout.hold_reason = reason
    await db.commit()
    return payout_to_dict(payout)


async def release_payout(
    db: AsyncSession,
    payout_id: UUID,
    released_by: Optional[UUID] = None,
) -> dict[str, Any]:
    """Release a held payout back to pending."""
    payout = await _load_for_update(db, payout_id)
    _transition(
        db, payout, PayoutStatus.PENDING, "release", "payout.released",
        {"previous_hold_reason": payout.hold_reason}, released_by,
    )
    payout.hold_reason = None
    await db.commit()
    return payout_to_dict(payout)


async def schedule_payout(
    db: AsyncSession,
    payout_id: UUID,
    scheduled_for: datetime,
    trigger_event: Optional[str] = None,
    scheduled_by: Optional[UUID] = None,
) -> dict[str, Any]:
    """
    Defer a pending or held payout until ``scheduled_for``.

    Batch processing skips the payout until then; processing it directly
    through the API is still allowed.
    """
    scheduled_for = _future(scheduled_for)
    payout = await _load_for_update(db, payout_id)
    if payout.status not in (PayoutStatus.PENDING, PayoutStatus.ON_HOLD):
        raise InvalidStateError("payout", payout.status.value, "schedule")

    payout.scheduled_for = scheduled_for
    payout.trigger_event = trigger_event
    details = {"scheduled_for": isoformat(scheduled_for), "trigger_event": trigger_event}
    _audit(db, payout, "payout.scheduled", payout.status, details, scheduled_by)
    record_event(db, "payout.scheduled", _event_payload(payout, **details))
    await db.commit()

    logger.info(f"Scheduled payout {payout_id} for {isoformat(scheduled_for)}")
    return payout_to_dict(payout)


async def retry_payout(
    db: AsyncSession,
    payout_id: UUID,
    transfer_client: Optional[StripeTransferClient] = None,
    retried_by: Optional[UUID] = None,
) -> dict[str, Any]:
    """Manually retry a failed payout."""
    payout = await db.get(Payout, payout_id)
    if not payout:
        raise NotFoundError(f"Payout {payout_id} not found")
    if payout.status != PayoutStatus.FAILED:
        raise InvalidStateError("payout", payout.status.value, "retry")
    return await process_payout(db, payout_id, transfer_client, retried_by)


async def process_due_payouts(
    db: AsyncSession,
    transfer_client: Optional[StripeTransferClient] = None,
    limit: Optional[int] = None,
    reference: Optional[datetime] = None,
) -> dict[str, int]:
    """
    Process due pending payouts oldest first.

    A payout is due when it has no schedule or its scheduled time has
    passed. Individual failures are logged and do not stop the batch.
    """
    transfer_client = transfer_client or StripeTransferClient()
    reference = as_utc(reference) if reference else now()
    result = await db.execute(
        select(Payout.id)
        .where(
            Payout.status == PayoutStatus.PENDING,
            or_(Payout.scheduled_for.is_(None), Payout.scheduled_for <= reference),
        )
        .order_by(Payout.created_at)
        .limit(limit or settings.payout_batch_size)
    )
    payout_ids = list(result.scalars().all())

    summary = {"processed": 0, "completed": 0, "failed": 0}
    for payout_id in payout_ids:
        summary["processed"] += 1
        try:
            await process_payout(db, payout_id, transfer_client)
            summary["completed"] += 1
        except (PayoutTransferError, InvalidStateError) as e:
            summary["failed"] += 1
            logger.warning(f"Skipping payout {payout_id}: {e}")

    if payout_ids:
        logger.info(
            f"Processed {summary['processed']} due payout(s): "
            f"{summary['completed']} completed, {summary['failed']} failed"
        )
    return summary


async def get_audit_log(db: AsyncSession, payout_id: UUID) -> list[dict[str, Any]]:
    """Audit trail for a payout, oldest first."""
    if not await db.get(Payout, payout_id):
        raise NotFoundError(f"Payout {payout_id} not found")

    result = await db.execute(
        select(PayoutAuditLog)
        .where(PayoutAuditLog.payout_id == payout_id)
        .order_by(PayoutAuditLog.created_at, PayoutAuditLog.id)
    )
    return [
        {
            "id": str(entry.id),
            "payout_id": str(entry.payout_id),
            "event_type": entry.event_type,
            "old_status": entry.old_status,
            "new_status": entry.new_status,
            "details": entry.details,
            "created_by": str(entry.created_by) if entry.created_by else None,
            "created_at": isoformat(entry.created_at),
        }
        for entry in result.scalars().all()
    ]
