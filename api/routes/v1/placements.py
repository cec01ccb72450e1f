"""
Placement endpoints.

Record hires, manage collaborator fee splits and follow placements through
their guarantee period.
"""

from typing import Optional
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import require_active_user
from api.services import placements as placement_service
from core.middleware.authorization import Permission, require_permission
from database.engine import get_db
from database.models.identity import User
from database.models.placements import CollaboratorRole, PlacementState
from workers.tasks.events import dispatch_outbox_relay

router = APIRouter(prefix="/placements", tags=["placements"])


class CreatePlacementRequest(BaseModel):
    """Request model for recording a hire."""
    application_id: UUID = Field(..., description="Application that resulted in the hire")
    salary: int = Field(..., gt=0, description="Annual salary in cents")
    fee_percentage: Optional[float] = Field(
        None, ge=0, le=100, description="Fee percentage; defaults to the job's"
    )
    recruiter_share_percentage: Optional[float] = Field(
        None, ge=0, le=100, description="Placement recruiter's share of the fee"
    )
    start_date: Optional[date] = Field(None, description="Start date (YYYY-MM-DD)")
    guarantee_days: Optional[int] = Field(None, ge=0, le=365, description="Guarantee period")


class AddCollaboratorRequest(BaseModel):
    """Request model for adding a fee-split collaborator."""
    recruiter_user_id: UUID = Field(..., description="User ID of the collaborating recruiter")
    role: CollaboratorRole = Field(..., description="Role on the placement")
    split_percentage: float = Field(..., gt=0, le=100, description="Percentage of the fee")
    notes: Optional[str] = Field(None, max_length=1000)


class TransitionRequest(BaseModel):
    """Request model for a placement state change."""
    state: PlacementState = Field(..., description="Target state")
    reason: Optional[str] = Field(None, max_length=5000, description="Failure reason")


class LinkReplacementRequest(BaseModel):
    """Request model for linking a replacement placement."""
    replacement_placement_id: UUID


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Placement",
    description="Record a hire and compute its fee. Requires placement:create permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_CREATE))],
)
async def create_placement(
    request: CreatePlacementRequest,
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await placement_service.create_placement(
        db,
        application_id=request.application_id,
        salary=request.salary,
        fee_percentage=request.fee_percentage,
        recruiter_share_percentage=request.recruiter_share_percentage,
        start_date=request.start_date,
        guarantee_days=request.guarantee_days,
        created_by=current_user.id,
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "",
    summary="List Placements",
    description="List placements with optional filters. Requires placement:read permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_READ))],
)
async def list_placements(
    recruiter_id: Optional[UUID] = Query(None, description="Filter by recruiter"),
    job_id: Optional[UUID] = Query(None, description="Filter by job"),
    company_id: Optional[UUID] = Query(None, description="Filter by company"),
    state: Optional[str] = Query(None, description="Filter by state"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await placement_service.list_placements(
        db,
        recruiter_id=recruiter_id,
        job_id=job_id,
        company_id=company_id,
        state=state,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/expiring-guarantees",
    summary="List Expiring Guarantees",
    description="Live placements whose guarantee ends soon. Requires placement:read permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_READ))],
)
async def list_expiring_guarantees(
    days: int = Query(30, ge=0, le=365, description="Look-ahead window in days"),
    db: AsyncSession = Depends(get_db),
):
    placements = await placement_service.list_expiring_guarantees(db, days=days)
    return {"placements": placements, "days": days}


@router.get(
    "/split-suggestions",
    summary="Suggest Collaborator Splits",
    description="Role-weighted split percentages, with amounts when a placement is given. "
                "Requires placement:read permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_READ))],
)
async def suggest_collaborator_splits(
    roles: list[CollaboratorRole] = Query(..., description="One entry per collaborator"),
    placement_id: Optional[UUID] = Query(None, description="Placement whose fee is split"),
    db: AsyncSession = Depends(get_db),
):
    return await placement_service.suggest_collaborator_splits(
        db, [role.value for role in roles], placement_id=placement_id
    )


@router.get(
    "/{placement_id}",
    summary="Get Placement",
    description="Get a placement with its collaborators. Requires placement:read permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_READ))],
)
async def get_placement(
    placement_id: UUID = Path(..., description="Placement ID"),
    db: AsyncSession = Depends(get_db),
):
    return await placement_service.get_placement(db, placement_id)


@router.post(
    "/{placement_id}/collaborators",
    status_code=status.HTTP_201_CREATED,
    summary="Add Collaborator",
    description="Add a recruiter to the fee split. Requires placement:update permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_UPDATE))],
)
async def add_collaborator(
    request: AddCollaboratorRequest,
    placement_id: UUID = Path(..., description="Placement ID"),
    db: AsyncSession = Depends(get_db),
):
    result = await placement_service.add_collaborator(
        db,
        placement_id,
        recruiter_user_id=request.recruiter_user_id,
        role=request.role.value,
        split_percentage=request.split_percentage,
        notes=request.notes,
    )
    dispatch_outbox_relay()
    return result


@router.delete(
    "/{placement_id}/collaborators/{collaborator_id}",
    summary="Remove Collaborator",
    description="Remove a recruiter from the fee split. Requires placement:update permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_UPDATE))],
)
async def remove_collaborator(
    placement_id: UUID = Path(..., description="Placement ID"),
    collaborator_id: UUID = Path(..., description="Collaborator ID"),
    db: AsyncSession = Depends(get_db),
):
    result = await placement_service.remove_collaborator(db, placement_id, collaborator_id)
    dispatch_outbox_relay()
    return result


@router.get(
    "/{placement_id}/fee-split",
    summary="Get Fee Split",
    description="Fee distribution across collaborators. Requires placement:read permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_READ))],
)
async def get_fee_split(
    placement_id: UUID = Path(..., description="Placement ID"),
    db: AsyncSession = Depends(get_db),
):
    return await placement_service.get_fee_split(db, placement_id)


@router.post(
    "/{placement_id}/transition",
    summary="Transition Placement",
    description="Move a placement to active, completed or failed. Requires placement:update permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_UPDATE))],
)
async def transition_placement(
    request: TransitionRequest,
    placement_id: UUID = Path(..., description="Placement ID"),
    db: AsyncSession = Depends(get_db),
):
    result = await placement_service.transition_placement(
        db, placement_id, request.state.value, reason=request.reason
    )
    dispatch_outbox_relay()
    return result


@router.post(
    "/{placement_id}/replacement",
    summary="Request Replacement",
    description="Request a replacement for a placement that failed within its guarantee. "
                "Requires placement:update permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_UPDATE))],
)
async def request_replacement(
    placement_id: UUID = Path(..., description="Placement ID"),
    db: AsyncSession = Depends(get_db),
):
    result = await placement_service.request_replacement(db, placement_id)
    dispatch_outbox_relay()
    return result


@router.post(
    "/{placement_id}/replacement/link",
    summary="Link Replacement",
    description="Link the placement that replaces a failed one. Requires placement:update permission.",
    dependencies=[Depends(require_permission(Permission.PLACEMENT_UPDATE))],
)
async def link_replacement(
    request: LinkReplacementRequest,
    placement_id: UUID = Path(..., description="Placement ID"),
    db: AsyncSession = Depends(get_db),
):
    result = await placement_service.link_replacement(
        db, placement_id, request.replacement_placement_id
    )
    dispatch_outbox_relay()
    return result
