"""Application service functions."""

from typing import Any, Optional
from uuid import UUID
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.sourcing import ensure_can_work_with_candidate
from core.events import record_event
from core.exceptions import ValidationError, NotFoundError, InvalidStateError
from core.utils.datetime import isoformat
from database.models.applications import Application, ApplicationStage
from database.models.candidates import Candidate
from database.models.jobs import Job, JobStatus
from database.models.network import Recruiter

logger = logging.getLogger(__name__)

# Stages an application can be moved to directly; hired is reached by creating a placement
MOVABLE_STAGES = frozenset({
    ApplicationStage.SUBMITTED,
    ApplicationStage.SCREEN,
    ApplicationStage.INTERVIEW,
    ApplicationStage.OFFER,
    ApplicationStage.REJECTED,
})


def application_to_dict(application: Application) -> dict[str, Any]:
    return {
        "id": str(application.id),
        "job_id": str(application.job_id),
        "candidate_id": str(application.candidate_id),
        "recruiter_id": str(application.recruiter_id) if application.recruiter_id else None,
        "stage": application.stage.value,
        "notes": application.notes,
        "created_at": isoformat(application.created_at),
    }


async def create_application(
    db: AsyncSession,
    job_id: UUID,
    candidate_id: UUID,
    recruiter_id: Optional[UUID] = None,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    """Submit a candidate to an active job."""
    job = await db.get(Job, job_id)
    if not job:
        raise ValidationError(f"Job {job_id} does not exist")
    if job.status != JobStatus.ACTIVE:
        raise ValidationError(f"Job is {job.status.value} and not accepting applications")
    if not await db.get(Candidate, candidate_id):
        raise ValidationError(f"Candidate {candidate_id} does not exist")
    if recruiter_id:
        recruiter = await db.get(Recruiter, recruiter_id)
        if not recruiter:
            raise ValidationError(f"Recruiter {recruiter_id} does not exist")
        await ensure_can_work_with_candidate(db, candidate_id, recruiter.user_id)

    existing = await db.execute(
        select(Application.id).where(
            Application.job_id == job_id,
            Application.candidate_id == candidate_id,
            Application.stage != ApplicationStage.REJECTED,
        )
    )
    if existing.first():
        raise ValidationError("Candidate already has an active application for this job")

    application = Application(
        job_id=job_id,
        candidate_id=candidate_id,
        recruiter_id=recruiter_id,
        stage=ApplicationStage.SUBMITTED,
        notes=notes,
    )
    db.add(application)
    await db.flush()

    record_event(db, "application.created", {
        "application_id": application.id,
        "job_id": job_id,
        "candidate_id": candidate_id,
        "recruiter_id": recruiter_id,
        "stage": application.stage.value,
    })
    await db.commit()

    logger.info(f"Created application {application.id} for job {job_id}")
    return application_to_dict(application)


async def get_application(db: AsyncSession, application_id: UUID) -> dict[str, Any]:
    application = await db.get(Application, application_id)
    if not application:
        raise NotFoundError(f"Application {application_id} not found")
    return application_to_dict(application)


async def list_applications(
    db: AsyncSession,
    job_id: Optional[UUID] = None,
    candidate_id: Optional[UUID] = None,
    recruiter_id: Optional[UUID] = None,
    stage: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """List applications with filtering."""
    query = select(Application)

    if job_id:
        query = query.where(Application.job_id == job_id)
    if candidate_id:
        query = query.where(Application.candidate_id == candidate_id)
    if recruiter_id:
        query = query.where(Application.recruiter_id == recruiter_id)
    if stage:
        try:
            query = query.where(Application.stage == ApplicationStage(stage))
        except ValueError:
            raise ValidationError(f"Unknown application stage '{stage}'")

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0
    result = await db.execute(
        query.order_by(Application.created_at.desc()).limit(limit).offset(offset)
    )

    return {
        "applications": [application_to_dict(a) for a in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def change_stage(
    db: AsyncSession,
    application_id: UUID,
    stage: str,
    notes: Optional[str] = None,
    changed_by: Optional[UUID] = None,
) -> dict[str, Any]:
    """Move an application to a new pipeline stage."""
    result = await db.execute(
        select(Application).where(Application.id == application_id).with_for_update()
    )
    application = result.scalar_one_or_none()
    if not application:
        raise NotFoundError(f"Application {application_id} not found")

    try:
        new_stage = ApplicationStage(stage)
    except ValueError:
        raise ValidationError(f"Unknown application stage '{stage}'")

    if new_stage == ApplicationStage.HIRED:
        raise ValidationError("Applications move to hired by creating a placement")
    if application.stage in (ApplicationStage.HIRED, ApplicationStage.REJECTED):
        raise InvalidStateError("application", application.stage.value, "change stage of")
    if new_stage not in MOVABLE_STAGES or new_stage == application.stage:
        raise ValidationError(f"Application is already in stage '{new_stage.value}'")

    old_stage = application.stage
    application.stage = new_stage
    if notes is not None:
        application.notes = notes

    record_event(db, "application.stage_changed", {
        "application_id": application.id,
        "job_id": application.job_id,
        "candidate_id": application.candidate_id,
        "recruiter_id": application.recruiter_id,
        "old_stage": old_stage.value,
        "new_stage": new_stage.value,
        "changed_by": changed_by,
    })
    await db.commit()

    logger.info(f"Application {application_id} moved {old_stage.value} -> {new_stage.value}")
    return application_to_dict(application)
