"""
Application endpoints.

Submit candidates to jobs and move them through the hiring pipeline.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import require_active_user
from api.services import applications as application_service
from core.middleware.authorization import Permission, require_permission
from database.engine import get_db
from database.models.applications import ApplicationStage
from database.models.identity import User
from workers.tasks.events import dispatch_outbox_relay

router = APIRouter(prefix="/applications", tags=["applications"])


class CreateApplicationRequest(BaseModel):
    """Request model for submitting a candidate."""
    job_id: UUID
    candidate_id: UUID
    recruiter_id: Optional[UUID] = Field(None, description="Recruiter representing the candidate")
    notes: Optional[str] = Field(None, max_length=5000)


class ChangeStageRequest(BaseModel):
    """Request model for moving an application."""
    stage: ApplicationStage
    notes: Optional[str] = Field(None, max_length=5000)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Application",
    description="Submit a candidate to a job. Requires application:create permission.",
    dependencies=[Depends(require_permission(Permission.APPLICATION_CREATE))],
)
async def create_application(
    request: CreateApplicationRequest,
    db: AsyncSession = Depends(get_db),
):
    result = await application_service.create_application(
        db,
        job_id=request.job_id,
        candidate_id=request.candidate_id,
        recruiter_id=request.recruiter_id,
        notes=request.notes,
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "",
    summary="List Applications",
    description="List applications with optional filters. Requires application:read permission.",
    dependencies=[Depends(require_permission(Permission.APPLICATION_READ))],
)
async def list_applications(
    job_id: Optional[UUID] = Query(None, description="Filter by job"),
    candidate_id: Optional[UUID] = Query(None, description="Filter by candidate"),
    recruiter_id: Optional[UUID] = Query(None, description="Filter by recruiter"),
    stage: Optional[str] = Query(None, description="Filter by stage"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await application_service.list_applications(
        db,
        job_id=job_id,
        candidate_id=candidate_id,
        recruiter_id=recruiter_id,
        stage=stage,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{application_id}",
    summary="Get Application",
    description="Get an application. Requires application:read permission.",
    dependencies=[Depends(require_permission(Permission.APPLICATION_READ))],
)
async def get_application(
    application_id: UUID = Path(..., description="Application ID"),
    db: AsyncSession = Depends(get_db),
):
    return await application_service.get_application(db, application_id)


@router.patch(
    "/{application_id}/stage",
    summary="Change Application Stage",
    description="Move an application to another stage. Hiring happens by creating a placement. "
                "Requires application:update permission.",
    dependencies=[Depends(require_permission(Permission.APPLICATION_UPDATE))],
)
async def change_application_stage(
    request: ChangeStageRequest,
    application_id: UUID = Path(..., description="Application ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await application_service.change_stage(
        db,
        application_id,
        request.stage.value,
        notes=request.notes,
        changed_by=current_user.id,
    )
    dispatch_outbox_relay()
    return result
