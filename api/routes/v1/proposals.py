"""
Proposal endpoints.

Propose recruiters for candidate/job pairings and record their responses.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import require_active_user
from api.services import proposals as proposal_service
from core.middleware.authorization import Permission, require_permission
from database.engine import get_db
from database.models.identity import User
from workers.tasks.events import dispatch_outbox_relay

router = APIRouter(prefix="/proposals", tags=["proposals"])


class CreateProposalRequest(BaseModel):
    """Request model for proposing a recruiter."""
    job_id: UUID = Field(..., description="Job the candidate is proposed for")
    candidate_id: UUID = Field(..., description="Candidate being proposed")
    recruiter_id: UUID = Field(..., description="Recruiter asked to represent the candidate")
    notes: Optional[str] = Field(None, max_length=5000, description="Notes for the recruiter")
    due_days: Optional[int] = Field(None, ge=1, le=90, description="Days allowed to respond")


class ProposalResponseRequest(BaseModel):
    """Request model for accepting or declining a proposal."""
    notes: Optional[str] = Field(None, max_length=5000)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Proposal",
    description="Propose a recruiter for a candidate and job. Requires proposal:create permission.",
    dependencies=[Depends(require_permission(Permission.PROPOSAL_CREATE))],
)
async def create_proposal(
    request: CreateProposalRequest,
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await proposal_service.create_proposal(
        db,
        job_id=request.job_id,
        candidate_id=request.candidate_id,
        recruiter_id=request.recruiter_id,
        notes=request.notes,
        due_days=request.due_days,
        proposed_by=current_user.id,
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "",
    summary="List Proposals",
    description="List proposals with optional filters. Requires proposal:read permission.",
    dependencies=[Depends(require_permission(Permission.PROPOSAL_READ))],
)
async def list_proposals(
    recruiter_id: Optional[UUID] = Query(None, description="Filter by recruiter"),
    job_id: Optional[UUID] = Query(None, description="Filter by job"),
    candidate_id: Optional[UUID] = Query(None, description="Filter by candidate"),
    state: Optional[str] = Query(None, description="Filter by state"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await proposal_service.list_proposals(
        db,
        recruiter_id=recruiter_id,
        job_id=job_id,
        candidate_id=candidate_id,
        state=state,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{proposal_id}",
    summary="Get Proposal",
    description="Get a proposal with its response deadline status. Requires proposal:read permission.",
    dependencies=[Depends(require_permission(Permission.PROPOSAL_READ))],
)
async def get_proposal(
    proposal_id: UUID = Path(..., description="Proposal ID"),
    db: AsyncSession = Depends(get_db),
):
    return await proposal_service.get_proposal(db, proposal_id)


@router.post(
    "/{proposal_id}/accept",
    summary="Accept Proposal",
    description="Accept a proposal awaiting response. Requires proposal:respond permission.",
    dependencies=[Depends(require_permission(Permission.PROPOSAL_RESPOND))],
)
async def accept_proposal(
    proposal_id: UUID = Path(..., description="Proposal ID"),
    request: Optional[ProposalResponseRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    notes = request.notes if request else None
    result = await proposal_service.accept_proposal(db, proposal_id, notes=notes)
    dispatch_outbox_relay()
    return result


@router.post(
    "/{proposal_id}/decline",
    summary="Decline Proposal",
    description="Decline a proposal awaiting response. Requires proposal:respond permission.",
    dependencies=[Depends(require_permission(Permission.PROPOSAL_RESPOND))],
)
async def decline_proposal(
    proposal_id: UUID = Path(..., description="Proposal ID"),
    request: Optional[ProposalResponseRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    notes = request.notes if request else None
    result = await proposal_service.decline_proposal(db, proposal_id, notes=notes)
    dispatch_outbox_relay()
    return result


@router.post(
    "/{proposal_id}/submit",
    summary="Mark Proposal Submitted",
    description="Record that the candidate was submitted. Requires proposal:respond permission.",
    dependencies=[Depends(require_permission(Permission.PROPOSAL_RESPOND))],
)
async def submit_proposal(
    proposal_id: UUID = Path(..., description="Proposal ID"),
    db: AsyncSession = Depends(get_db),
):
    result = await proposal_service.mark_submitted(db, proposal_id)
    dispatch_outbox_relay()
    return result


@router.post(
    "/{proposal_id}/close",
    summary="Close Proposal",
    description="Close an open proposal. Requires proposal:close permission.",
    dependencies=[Depends(require_permission(Permission.PROPOSAL_CLOSE))],
)
async def close_proposal(
    proposal_id: UUID = Path(..., description="Proposal ID"),
    db: AsyncSession = Depends(get_db),
):
    result = await proposal_service.close_proposal(db, proposal_id)
    dispatch_outbox_relay()
    return result
