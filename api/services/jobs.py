"""Company, job and candidate service functions."""

from typing import Any, Optional
from uuid import UUID
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.events import record_event
from core.exceptions import ValidationError, NotFoundError
from core.fees import validate_percentage
from core.utils.datetime import isoformat
from database.models.candidates import Candidate
from database.models.identity import Organization
from database.models.jobs import Company, Job, JobStatus

logger = logging.getLogger(__name__)


def job_to_dict(job: Job) -> dict[str, Any]:
    return {
        "id": str(job.id),
        "company_id": str(job.company_id),
        "title": job.title,
        "department": job.department,
        "location": job.location,
        "salary_min": job.salary_min,
        "salary_max": job.salary_max,
        "fee_percentage": job.fee_percentage,
        "description": job.description,
        "status": job.status.value,
        "created_at": isoformat(job.created_at),
    }


def candidate_to_dict(candidate: Candidate) -> dict[str, Any]:
    return {
        "id": str(candidate.id),
        "email": candidate.email,
        "full_name": candidate.full_name,
        "linkedin_url": candidate.linkedin_url,
        "created_at": isoformat(candidate.created_at),
    }


async def create_company(
    db: AsyncSession,
    name: str,
    identity_organization_id: Optional[UUID] = None,
) -> dict[str, Any]:
    """Create a hiring company."""
    if identity_organization_id and not await db.get(Organization, identity_organization_id):
        raise ValidationError(f"Organization {identity_organization_id} does not exist")

    company = Company(name=name, identity_organization_id=identity_organization_id)
    db.add(company)
    await db.commit()

    return {
        "id": str(company.id),
        "name": company.name,
        "identity_organization_id": (
            str(company.identity_organization_id) if company.identity_organization_id else None
        ),
        "created_at": isoformat(company.created_at),
    }


async def create_job(
    db: AsyncSession,
    company_id: UUID,
    title: str,
    fee_percentage: float,
    department: Optional[str] = None,
    location: Optional[str] = None,
    salary_min: Optional[int] = None,
    salary_max: Optional[int] = None,
    description: Optional[str] = None,
) -> dict[str, Any]:
    """Open a job for a company."""
    if not await db.get(Company, company_id):
        raise ValidationError(f"Company {company_id} does not exist")
    validate_percentage(fee_percentage, "fee_percentage")
    if salary_min is not None and salary_max is not None and salary_min > salary_max:
        raise ValidationError("salary_min must not exceed salary_max")

    job = Job(
        company_id=company_id,
        title=title,
        department=department,
        location=location,
        salary_min=salary_min,
        salary_max=salary_max,
        fee_percentage=fee_percentage,
        description=description,
        status=JobStatus.ACTIVE,
    )
    db.add(job)
    await db.flush()

    record_event(db, "job.created", {
        "job_id": job.id,
        "company_id": company_id,
        "title": title,
        "fee_percentage": fee_percentage,
    })
    await db.commit()

    logger.info(f"Created job {job.id} for company {company_id}")
    return job_to_dict(job)


async def get_job(db: AsyncSession, job_id: UUID) -> dict[str, Any]:
    job = await db.get(Job, job_id)
    if not job:
        raise NotFoundError(f"Job {job_id} not found")
    return job_to_dict(job)


async def list_jobs(
    db: AsyncSession,
    company_id: Optional[UUID] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """List jobs with filtering."""
    query = select(Job)
    if company_id:
        query = query.where(Job.company_id == company_id)
    if status:
        try:
            query = query.where(Job.status == JobStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown job status '{status}'")

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0
    result = await db.execute(query.order_by(Job.created_at.desc()).limit(limit).offset(offset))

    return {
        "jobs": [job_to_dict(j) for j in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def update_job_status(db: AsyncSession, job_id: UUID, status: str) -> dict[str, Any]:
    """Change a job's status."""
    job = await db.get(Job, job_id)
    if not job:
        raise NotFoundError(f"Job {job_id} not found")
    try:
        new_status = JobStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown job status '{status}'")

    old_status = job.status
    if new_status != old_status:
        job.status = new_status
        record_event(db, "job.status_changed", {
            "job_id": job.id,
            "old_status": old_status.value,
            "new_status": new_status.value,
        })
        await db.commit()

    return job_to_dict(job)


async def create_candidate(
    db: AsyncSession,
    email: str,
    full_name: str,
    linkedin_url: Optional[str] = None,
) -> dict[str, Any]:
    candidate = Candidate(email=email.strip().lower(), full_name=full_name, linkedin_url=linkedin_url)
    db.add(candidate)
    await db.commit()
    return candidate_to_dict(candidate)


async def get_candidate(db: AsyncSession, candidate_id: UUID) -> dict[str, Any]:
    candidate = await db.get(Candidate, candidate_id)
    if not candidate:
        raise NotFoundError(f"Candidate {candidate_id} not found")
    return candidate_to_dict(candidate)


async def list_candidates(
    db: AsyncSession,
    email: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    query = select(Candidate)
    if email:
        query = query.where(Candidate.email == email.strip().lower())

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0
    result = await db.execute(
        query.order_by(Candidate.created_at.desc()).limit(limit).offset(offset)
    )

    return {
        "candidates": [candidate_to_dict(c) for c in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
