"""
Recruiter network endpoints.

Recruiter profiles, job assignments and reputation.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import require_active_user
from api.services import recruiters as recruiter_service
from core.middleware.authorization import Permission, check_permission, require_permission
from database.engine import get_db
from database.models.identity import User
from database.models.network import RecruiterStatus
from workers.tasks.events import dispatch_outbox_relay

router = APIRouter(prefix="/recruiters", tags=["recruiters"])


class CreateRecruiterRequest(BaseModel):
    """Request model for creating a recruiter profile."""
    user_id: Optional[UUID] = Field(None, description="User to create the profile for; defaults to the caller")
    bio: Optional[str] = Field(None, max_length=5000)
    stripe_connect_account_id: Optional[str] = Field(
        None, pattern=r"^acct_[A-Za-z0-9]+$", description="Stripe Connect account for payouts"
    )


class UpdateRecruiterStatusRequest(BaseModel):
    """Request model for changing a recruiter's status."""
    status: RecruiterStatus


class AssignRecruiterRequest(BaseModel):
    """Request model for assigning a recruiter to a job."""
    job_id: UUID
    recruiter_id: UUID


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Recruiter",
    description="Create a recruiter profile. Requires recruiter:create permission; "
                "creating a profile for another user also requires recruiter:manage.",
    dependencies=[Depends(require_permission(Permission.RECRUITER_CREATE))],
)
async def create_recruiter(
    request: CreateRecruiterRequest,
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = request.user_id or current_user.id
    if user_id != current_user.id:
        check_permission(current_user, Permission.RECRUITER_MANAGE)

    result = await recruiter_service.create_recruiter(
        db,
        user_id=user_id,
        bio=request.bio,
        stripe_connect_account_id=request.stripe_connect_account_id,
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "",
    summary="List Recruiters",
    description="List recruiters. Requires recruiter:read permission.",
    dependencies=[Depends(require_permission(Permission.RECRUITER_READ))],
)
async def list_recruiters(
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await recruiter_service.list_recruiters(db, status=status, limit=limit, offset=offset)


@router.post(
    "/assignments",
    status_code=status.HTTP_201_CREATED,
    summary="Assign Recruiter",
    description="Assign a recruiter to a job. Requires recruiter:assign permission.",
    dependencies=[Depends(require_permission(Permission.RECRUITER_ASSIGN))],
)
async def assign_recruiter(
    request: AssignRecruiterRequest,
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await recruiter_service.assign_recruiter_to_job(
        db, request.job_id, request.recruiter_id, assigned_by=current_user.id
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "/assignments",
    summary="List Job Assignments",
    description="Recruiters assigned to a job. Requires recruiter:read permission.",
    dependencies=[Depends(require_permission(Permission.RECRUITER_READ))],
)
async def list_assignments(
    job_id: UUID = Query(..., description="Job ID"),
    db: AsyncSession = Depends(get_db),
):
    assignments = await recruiter_service.list_recruiters_for_job(db, job_id)
    return {"job_id": str(job_id), "assignments": assignments}


@router.delete(
    "/assignments/{assignment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unassign Recruiter",
    description="Remove a recruiter from a job. Requires recruiter:assign permission.",
    dependencies=[Depends(require_permission(Permission.RECRUITER_ASSIGN))],
)
async def unassign_recruiter(
    assignment_id: UUID = Path(..., description="Assignment ID"),
    db: AsyncSession = Depends(get_db),
):
    await recruiter_service.unassign_recruiter(db, assignment_id)
    dispatch_outbox_relay()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{recruiter_id}",
    summary="Get Recruiter",
    description="Get a recruiter profile. Requires recruiter:read permission.",
    dependencies=[Depends(require_permission(Permission.RECRUITER_READ))],
)
async def get_recruiter(
    recruiter_id: UUID = Path(..., description="Recruiter ID"),
    db: AsyncSession = Depends(get_db),
):
    return await recruiter_service.get_recruiter(db, recruiter_id)


@router.patch(
    "/{recruiter_id}/status",
    summary="Update Recruiter Status",
    description="Activate or suspend a recruiter. Requires recruiter:manage permission.",
    dependencies=[Depends(require_permission(Permission.RECRUITER_MANAGE))],
)
async def update_recruiter_status(
    request: UpdateRecruiterStatusRequest,
    recruiter_id: UUID = Path(..., description="Recruiter ID"),
    db: AsyncSession = Depends(get_db),
):
    result = await recruiter_service.update_recruiter_status(
        db, recruiter_id, request.status.value
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "/{recruiter_id}/reputation",
    summary="Get Reputation",
    description="Latest reputation snapshot. Requires recruiter:read permission.",
    dependencies=[Depends(require_permission(Permission.RECRUITER_READ))],
)
async def get_reputation(
    recruiter_id: UUID = Path(..., description="Recruiter ID"),
    db: AsyncSession = Depends(get_db),
):
    return await recruiter_service.get_reputation(db, recruiter_id)


@router.post(
    "/{recruiter_id}/reputation/recalculate",
    summary="Recalculate Reputation",
    description="Rebuild reputation metrics from activity. Requires recruiter:manage permission.",
    dependencies=[Depends(require_permission(Permission.RECRUITER_MANAGE))],
)
async def recalculate_reputation(
    recruiter_id: UUID = Path(..., description="Recruiter ID"),
    db: AsyncSession = Depends(get_db),
):
    return await recruiter_service.recalculate_reputation(db, recruiter_id)
