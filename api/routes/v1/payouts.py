"""
Payout endpoints.

Create recruiter payouts and settle them through Stripe Connect.
"""

from typing import Optional
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import require_active_user, get_transfer_client
from api.services import payouts as payout_service
from core.integrations.stripe_connect import StripeTransferClient
from core.middleware.authorization import Permission, require_permission
from database.engine import get_db
from database.models.identity import User
from workers.tasks.events import dispatch_outbox_relay

router = APIRouter(prefix="/payouts", tags=["payouts"])


class CreatePayoutRequest(BaseModel):
    """Request model for creating a payout."""
    placement_id: UUID = Field(..., description="Placement the payout belongs to")
    recruiter_id: UUID = Field(..., description="Recruiter being paid")
    share_percentage: Optional[float] = Field(
        None, gt=0, le=100,
        description="Percentage of the placement fee; defaults to the recruiter's agreed share",
    )
    scheduled_for: Optional[datetime] = Field(
        None, description="Earliest time batch processing may pay this out"
    )
    trigger_event: Optional[str] = Field(
        None, max_length=100, description="What the schedule waits for, e.g. guarantee_completed"
    )


class HoldPayoutRequest(BaseModel):
    """Request model for putting a payout on hold."""
    reason: str = Field(..., min_length=3, max_length=2000, description="Reason for the hold")


class SchedulePayoutRequest(BaseModel):
    """Request model for deferring a payout."""
    scheduled_for: datetime = Field(..., description="Earliest time batch processing may pay this out")
    trigger_event: Optional[str] = Field(None, max_length=100)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Payout",
    description="Create a pending payout for a placement. Requires payout:create permission.",
    dependencies=[Depends(require_permission(Permission.PAYOUT_CREATE))],
)
async def create_payout(
    request: CreatePayoutRequest,
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await payout_service.create_payout(
        db,
        placement_id=request.placement_id,
        recruiter_id=request.recruiter_id,
        share_percentage=request.share_percentage,
        created_by=current_user.id,
        scheduled_for=request.scheduled_for,
        trigger_event=request.trigger_event,
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "",
    summary="List Payouts",
    description="List payouts with optional filters. Requires payout:read permission.",
    dependencies=[Depends(require_permission(Permission.PAYOUT_READ))],
)
async def list_payouts(
    placement_id: Optional[UUID] = Query(None, description="Filter by placement"),
    recruiter_id: Optional[UUID] = Query(None, description="Filter by recruiter"),
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await payout_service.list_payouts(
        db,
        placement_id=placement_id,
        recruiter_id=recruiter_id,
        status=status,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{payout_id}",
    summary="Get Payout",
    description="Get payout details. Requires payout:read permission.",
    dependencies=[Depends(require_permission(Permission.PAYOUT_READ))],
)
async def get_payout(
    payout_id: UUID = Path(..., description="Payout ID"),
    db: AsyncSession = Depends(get_db),
):
    return await payout_service.get_payout(db, payout_id)


@router.post(
    "/{payout_id}/process",
    summary="Process Payout",
    description="Transfer a pending payout via Stripe. Requires payout:process permission.",
    dependencies=[Depends(require_permission(Permission.PAYOUT_PROCESS))],
)
async def process_payout(
    payout_id: UUID = Path(..., description="Payout ID"),
    current_user: User = Depends(require_active_user),
    transfer_client: StripeTransferClient = Depends(get_transfer_client),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await payout_service.process_payout(
            db, payout_id, transfer_client, processed_by=current_user.id
        )
    finally:
        dispatch_outbox_relay()


@router.post(
    "/{payout_id}/hold",
    summary="Hold Payout",
    description="Put a pending payout on hold. Requires payout:process permission.",
    dependencies=[Depends(require_permission(Permission.PAYOUT_PROCESS))],
)
async def hold_payout(
    request: HoldPayoutRequest,
    payout_id: UUID = Path(..., description="Payout ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await payout_service.hold_payout(
        db, payout_id, request.reason, held_by=current_user.id
    )
    dispatch_outbox_relay()
    return result


@router.post(
    "/{payout_id}/release",
    summary="Release Payout",
    description="Release a held payout back to pending. Requires payout:process permission.",
    dependencies=[Depends(require_permission(Permission.PAYOUT_PROCESS))],
)
async def release_payout(
    payout_id: UUID = Path(..., description="Payout ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await payout_service.release_payout(db, payout_id, released_by=current_user.id)
    dispatch_outbox_relay()
    return result


@router.post(
    "/{payout_id}/schedule",
    summary="Schedule Payout",
    description="Defer a pending or held payout until a given time. Requires payout:process permission.",
    dependencies=[Depends(require_permission(Permission.PAYOUT_PROCESS))],
)
async def schedule_payout(
    request: SchedulePayoutRequest,
    payout_id: UUID = Path(..., description="Payout ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await payout_service.schedule_payout(
        db,
        payout_id,
        request.scheduled_for,
        trigger_event=request.trigger_event,
        scheduled_by=current_user.id,
    )
    dispatch_outbox_relay()
    return result


@router.post(
    "/{payout_id}/retry",
    summary="Retry Payout",
    description="Retry a failed payout. Requires payout:process permission.",
    dependencies=[Depends(require_permission(Permission.PAYOUT_PROCESS))],
)
async def retry_payout(
    payout_id: UUID = Path(..., description="Payout ID"),
    current_user: User = Depends(require_active_user),
    transfer_client: StripeTransferClient = Depends(get_transfer_client),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await payout_service.retry_payout(
            db, payout_id, transfer_client, retried_by=current_user.id
        )
    finally:
        dispatch_outbox_relay()


@router.get(
    "/{payout_id}/audit",
    summary="Get Payout Audit Log",
    description="Every status change of a payout. Requires payout:read permission.",
    dependencies=[Depends(require_permission(Permission.PAYOUT_READ))],
)
async def get_payout_audit_log(
    payout_id: UUID = Path(..., description="Payout ID"),
    db: AsyncSession = Depends(get_db),
):
    entries = await payout_service.get_audit_log(db, payout_id)
    return {"payout_id": str(payout_id), "entries": entries}
