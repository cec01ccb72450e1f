"""
Candidate sourcing endpoints.

Sourcing claims, the protection they give the sourcer, and outreach emails
with their engagement.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import require_active_user
from api.services import sourcing as sourcing_service
from core.middleware.authorization import Permission, check_permission, require_permission
from database.engine import get_db
from database.models.candidates import SourcerType
from database.models.identity import User
from workers.tasks.events import dispatch_outbox_relay

router = APIRouter(prefix="/sourcing", tags=["sourcing"])


class SourceCandidateRequest(BaseModel):
    """Request model for claiming a candidate."""
    sourcer_user_id: Optional[UUID] = Field(
        None, description="User who sourced the candidate; defaults to the caller"
    )
    sourcer_type: SourcerType = SourcerType.RECRUITER
    protection_window_days: Optional[int] = Field(None, ge=1, le=3650)
    notes: Optional[str] = Field(None, max_length=5000)


class RecordOutreachRequest(BaseModel):
    """Request model for recording an outreach email."""
    candidate_id: UUID
    job_id: Optional[UUID] = None
    email_subject: str = Field(..., min_length=1, max_length=500)
    email_body: str = Field(..., min_length=1)


class OutreachEngagementRequest(BaseModel):
    """Request model for outreach engagement updates."""
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    replied_at: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None
    bounced: Optional[bool] = None


@router.post(
    "/candidates/{candidate_id}",
    status_code=status.HTTP_201_CREATED,
    summary="Source Candidate",
    description="Claim a candidate for the protection window. Requires candidate:source "
                "permission; sourcing on behalf of another user also requires recruiter:manage.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_SOURCE))],
)
async def source_candidate(
    request: SourceCandidateRequest,
    candidate_id: UUID = Path(..., description="Candidate ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    sourcer_user_id = request.sourcer_user_id or current_user.id
    if sourcer_user_id != current_user.id:
        check_permission(current_user, Permission.RECRUITER_MANAGE)

    result = await sourcing_service.source_candidate(
        db,
        candidate_id,
        sourcer_user_id,
        sourcer_type=request.sourcer_type.value,
        protection_window_days=request.protection_window_days,
        notes=request.notes,
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "/candidates/{candidate_id}",
    summary="Get Candidate Sourcer",
    description="Current sourcing record of a candidate, or null when never sourced.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def get_candidate_sourcer(
    candidate_id: UUID = Path(..., description="Candidate ID"),
    db: AsyncSession = Depends(get_db),
):
    sourcer = await sourcing_service.get_candidate_sourcer(db, candidate_id)
    return {"candidate_id": str(candidate_id), "sourcer": sourcer}


@router.get(
    "/candidates/{candidate_id}/access",
    summary="Check Candidate Access",
    description="Whether a user may work with a candidate under the current protection.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def check_candidate_access(
    candidate_id: UUID = Path(..., description="Candidate ID"),
    user_id: Optional[UUID] = Query(None, description="User to check; defaults to the caller"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user_id or current_user.id
    can_work = await sourcing_service.can_user_work_with_candidate(db, candidate_id, user_id)
    return {"candidate_id": str(candidate_id), "user_id": str(user_id), "can_work": can_work}


@router.post(
    "/outreach",
    status_code=status.HTTP_201_CREATED,
    summary="Record Outreach",
    description="Record an outreach email sent by the caller. Requires candidate:source permission.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_SOURCE))],
)
async def record_outreach(
    request: RecordOutreachRequest,
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await sourcing_service.record_outreach(
        db,
        request.candidate_id,
        current_user.id,
        email_subject=request.email_subject,
        email_body=request.email_body,
        job_id=request.job_id,
    )
    dispatch_outbox_relay()
    return result


@router.patch(
    "/outreach/{outreach_id}",
    summary="Update Outreach Engagement",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_SOURCE))],
)
async def update_outreach_engagement(
    request: OutreachEngagementRequest,
    outreach_id: UUID = Path(..., description="Outreach ID"),
    db: AsyncSession = Depends(get_db),
):
    return await sourcing_service.update_outreach_engagement(
        db, outreach_id, request.model_dump(exclude_none=True)
    )


@router.get(
    "/outreach",
    summary="List Outreach",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def list_outreach(
    candidate_id: Optional[UUID] = Query(None, description="Filter by candidate"),
    recruiter_user_id: Optional[UUID] = Query(None, description="Filter by sender"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await sourcing_service.list_outreach(
        db,
        candidate_id=candidate_id,
        recruiter_user_id=recruiter_user_id,
        limit=limit,
        offset=offset,
    )
