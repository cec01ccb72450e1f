"""
Job endpoints.

Companies, the jobs they open and the candidates placed into them.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, EmailStr, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_pagination_params
from api.services import jobs as job_service
from core.middleware.authorization import Permission, require_permission
from database.engine import get_db
from database.models.jobs import JobStatus
from workers.tasks.events import dispatch_outbox_relay

router = APIRouter(prefix="/jobs", tags=["jobs"])


class CreateCompanyRequest(BaseModel):
    """Request model for creating a company."""
    name: str = Field(..., min_length=1, max_length=255)
    identity_organization_id: Optional[UUID] = None


class CreateJobRequest(BaseModel):
    """Request model for opening a job."""
    company_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    fee_percentage: float = Field(..., gt=0, le=100, description="Placement fee as % of salary")
    department: Optional[str] = Field(None, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    salary_min: Optional[int] = Field(None, ge=0, description="In cents")
    salary_max: Optional[int] = Field(None, ge=0, description="In cents")
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_salary_range(self) -> "CreateJobRequest":
        if self.salary_min is not None and self.salary_max is not None:
            if self.salary_min > self.salary_max:
                raise ValueError("salary_min must not exceed salary_max")
        return self


class UpdateJobStatusRequest(BaseModel):
    """Request model for changing a job's status."""
    status: JobStatus


class CreateCandidateRequest(BaseModel):
    """Request model for creating a candidate."""
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    linkedin_url: Optional[str] = Field(None, max_length=500)


@router.post(
    "/companies",
    status_code=status.HTTP_201_CREATED,
    summary="Create Company",
    description="Create a hiring company. Requires job:create permission.",
    dependencies=[Depends(require_permission(Permission.JOB_CREATE))],
)
async def create_company(
    request: CreateCompanyRequest,
    db: AsyncSession = Depends(get_db),
):
    return await job_service.create_company(
        db, name=request.name, identity_organization_id=request.identity_organization_id
    )


@router.post(
    "/candidates",
    status_code=status.HTTP_201_CREATED,
    summary="Create Candidate",
    description="Create a candidate. Requires candidate:create permission.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_CREATE))],
)
async def create_candidate(
    request: CreateCandidateRequest,
    db: AsyncSession = Depends(get_db),
):
    return await job_service.create_candidate(
        db,
        email=str(request.email),
        full_name=request.full_name,
        linkedin_url=request.linkedin_url,
    )


@router.get(
    "/candidates",
    summary="List Candidates",
    description="List candidates. Requires candidate:read permission.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def list_candidates(
    email: Optional[str] = Query(None, description="Filter by email"),
    pagination: dict = Depends(get_pagination_params),
    db: AsyncSession = Depends(get_db),
):
    return await job_service.list_candidates(
        db, email=email, limit=pagination["limit"], offset=pagination["offset"]
    )


@router.get(
    "/candidates/{candidate_id}",
    summary="Get Candidate",
    description="Get a candidate. Requires candidate:read permission.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def get_candidate(
    candidate_id: UUID = Path(..., description="Candidate ID"),
    db: AsyncSession = Depends(get_db),
):
    return await job_service.get_candidate(db, candidate_id)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Job",
    description="Open a job for a company. Requires job:create permission.",
    dependencies=[Depends(require_permission(Permission.JOB_CREATE))],
)
async def create_job(
    request: CreateJobRequest,
    db: AsyncSession = Depends(get_db),
):
    result = await job_service.create_job(
        db,
        company_id=request.company_id,
        title=request.title,
        fee_percentage=request.fee_percentage,
        department=request.department,
        location=request.location,
        salary_min=request.salary_min,
        salary_max=request.salary_max,
        description=request.description,
    )
    dispatch_outbox_relay()
    return result


@router.get(
    "",
    summary="List Jobs",
    description="List jobs with optional filters. Requires job:read permission.",
    dependencies=[Depends(require_permission(Permission.JOB_READ))],
)
async def list_jobs(
    company_id: Optional[UUID] = Query(None, description="Filter by company"),
    status: Optional[str] = Query(None, description="Filter by status"),
    pagination: dict = Depends(get_pagination_params),
    db: AsyncSession = Depends(get_db),
):
    result = await job_service.list_jobs(
        db,
        company_id=company_id,
        status=status,
        limit=pagination["limit"],
        offset=pagination["offset"],
    )
    result["page"] = pagination["page"]
    return result


@router.get(
    "/{job_id}",
    summary="Get Job",
    description="Get a job. Requires job:read permission.",
    dependencies=[Depends(require_permission(Permission.JOB_READ))],
)
async def get_job(
    job_id: UUID = Path(..., description="Job ID"),
    db: AsyncSession = Depends(get_db),
):
    return await job_service.get_job(db, job_id)


@router.patch(
    "/{job_id}/status",
    summary="Update Job Status",
    description="Pause, close or reopen a job. Requires job:update permission.",
    dependencies=[Depends(require_permission(Permission.JOB_UPDATE))],
)
async def update_job_status(
    request: UpdateJobStatusRequest,
    job_id: UUID = Path(..., description="Job ID"),
    db: AsyncSession = Depends(get_db),
):
    result = await job_service.update_job_status(db, job_id, request.status.value)
    dispatch_outbox_relay()
    return result
