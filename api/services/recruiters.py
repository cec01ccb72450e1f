"""Recruiter network service functions: profiles, job assignments, reputation."""

from typing import Any, Optional
from uuid import UUID
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.events import record_event
from core.exceptions import ValidationError, NotFoundError
from core.utils.datetime import now, isoformat
from database.models.applications import Application, ApplicationStage
from database.models.identity import User
from database.models.jobs import Job
from database.models.network import (
    Recruiter,
    RecruiterStatus,
    RoleAssignment,
    RecruiterReputation,
)
from database.models.placements import Placement, PlacementCollaborator, PlacementState
from database.models.proposals import CandidateRoleAssignment, ProposalState

logger = logging.getLogger(__name__)

NEUTRAL_RATE = 50.0
HIRE_WEIGHT = 0.4
COMPLETION_WEIGHT = 0.4
ACCEPTANCE_WEIGHT = 0.2


def rate(numerator: int, denominator: int) -> Optional[float]:
    """Percentage, or None when there is nothing to measure."""
    if denominator <= 0:
        return None
    return round(numerator / denominator * 100, 2)


def compute_reputation_score(
    hire_rate: Optional[float],
    completion_rate: Optional[float],
    acceptance_rate: Optional[float],
) -> float:
    """
    Weighted reputation score on a 0-100 scale.

    Missing rates count as neutral (50).
    """
    score = (
        HIRE_WEIGHT * (NEUTRAL_RATE if hire_rate is None else hire_rate)
        + COMPLETION_WEIGHT * (NEUTRAL_RATE if completion_rate is None else completion_rate)
        + ACCEPTANCE_WEIGHT * (NEUTRAL_RATE if acceptance_rate is None else acceptance_rate)
    )
    return round(min(max(score, 0.0), 100.0), 2)


def recruiter_to_dict(recruiter: Recruiter) -> dict[str, Any]:
    return {
        "id": str(recruiter.id),
        "user_id": str(recruiter.user_id),
        "status": recruiter.status.value,
        "bio": recruiter.bio,
        "has_payout_account": bool(recruiter.stripe_connect_account_id),
        "created_at": isoformat(recruiter.created_at),
    }


def reputation_to_dict(reputation: RecruiterReputation) -> dict[str, Any]:
    decided = (
        reputation.proposals_accepted
        + reputation.proposals_declined
        + reputation.proposals_timed_out
    )
    return {
        "recruiter_id": str(reputation.recruiter_id),
        "total_submissions": reputation.total_submissions,
        "total_hires": reputation.total_hires,
        "hire_rate": reputation.hire_rate,
        "total_placements": reputation.total_placements,
        "completed_placements": reputation.completed_placements,
        "failed_placements": reputation.failed_placements,
        "completion_rate": reputation.completion_rate,
        "total_collaborations": reputation.total_collaborations,
        "proposals_accepted": reputation.proposals_accepted,
        "proposals_declined": reputation.proposals_declined,
        "proposals_timed_out": reputation.proposals_timed_out,
        "acceptance_rate": rate(reputation.proposals_accepted, decided),
        "reputation_score": reputation.reputation_score,
        "last_calculated_at": isoformat(reputation.last_calculated_at),
    }


async def _get_recruiter(db: AsyncSession, recruiter_id: UUID) -> Recruiter:
    recruiter = await db.get(Recruiter, recruiter_id)
    if not recruiter:
        raise NotFoundError(f"Recruiter {recruiter_id} not found")
    return recruiter


async def create_recruiter(
    db: AsyncSession,
    user_id: UUID,
    bio: Optional[str] = None,
    stripe_connect_account_id: Optional[str] = None,
) -> dict[str, Any]:
    """Create a recruiter profile for a user, starting in pending status."""
    if not await db.get(User, user_id):
        raise ValidationError(f"User {user_id} does not exist")

    existing = await db.execute(select(Recruiter.id).where(Recruiter.user_id == user_id))
    if existing.first():
        raise ValidationError("User already has a recruiter profile")

    recruiter = Recruiter(
        user_id=user_id,
        status=RecruiterStatus.PENDING,
        bio=bio,
        stripe_connect_account_id=stripe_connect_account_id,
    )
    db.add(recruiter)
    await db.flush()
    db.add(RecruiterReputation(recruiter_id=recruiter.id))

    record_event(db, "recruiter.created", {"recruiter_id": recruiter.id, "user_id": user_id})
    await db.commit()

    logger.info(f"Created recruiter {recruiter.id} for user {user_id}")
    return recruiter_to_dict(recruiter)


async def get_recruiter(db: AsyncSession, recruiter_id: UUID) -> dict[str, Any]:
    return recruiter_to_dict(await _get_recruiter(db, recruiter_id))


async def get_recruiter_for_user(db: AsyncSession, user_id: UUID) -> Optional[Recruiter]:
    result = await db.execute(select(Recruiter).where(Recruiter.user_id == user_id))
    return result.scalar_one_or_none()


async def list_recruiters(
    db: AsyncSession,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """List recruiters, optionally by status."""
    query = select(Recruiter)
    if status:
        try:
            query = query.where(Recruiter.status == RecruiterStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown recruiter status '{status}'")

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0
    result = await db.execute(
        query.order_by(Recruiter.created_at.desc()).limit(limit).offset(offset)
    )

    return {
        "recruiters": [recruiter_to_dict(r) for r in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def update_recruiter_status(
    db: AsyncSession, recruiter_id: UUID, status: str
) -> dict[str, Any]:
    """Activate or suspend a recruiter."""
    recruiter = await _get_recruiter(db, recruiter_id)
    try:
        new_status = RecruiterStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown recruiter status '{status}'")

    old_status = recruiter.status
    if new_status != old_status:
        recruiter.status = new_status
        record_event(db, "recruiter.status_changed", {
            "recruiter_id": recruiter.id,
            "old_status": old_status.value,
            "new_status": new_status.value,
        })
        await db.commit()

    return recruiter_to_dict(recruiter)


async def assign_recruiter_to_job(
    db: AsyncSession,
    job_id: UUID,
    recruiter_id: UUID,
    assigned_by: Optional[UUID] = None,
) -> dict[str, Any]:
    """Assign an active recruiter to work a job."""
    if not await db.get(Job, job_id):
        raise ValidationError(f"Job {job_id} does not exist")
    recruiter = await db.get(Recruiter, recruiter_id)
    if not recruiter:
        raise ValidationError(f"Recruiter {recruiter_id} does not exist")
    if recruiter.status != RecruiterStatus.ACTIVE:
        raise ValidationError(
            f"Recruiter is {recruiter.status.value} and cannot be assigned to jobs"
        )

    existing = await db.execute(
        select(RoleAssignment.id).where(
            RoleAssignment.job_id == job_id,
            RoleAssignment.recruiter_id == recruiter_id,
        )
    )
    if existing.first():
        raise ValidationError("Recruiter is already assigned to this job")

    assignment = RoleAssignment(
        job_id=job_id,
        recruiter_id=recruiter_id,
        assigned_by=assigned_by,
        assigned_at=now(),
    )
    db.add(assignment)
    await db.flush()

    record_event(db, "recruiter.assigned", {
        "assignment_id": assignment.id,
        "job_id": job_id,
        "recruiter_id": recruiter_id,
    })
    await db.commit()

    return {
        "id": str(assignment.id),
        "job_id": str(job_id),
        "recruiter_id": str(recruiter_id),
        "assigned_at": isoformat(assignment.assigned_at),
        "assigned_by": str(assigned_by) if assigned_by else None,
    }


async def unassign_recruiter(db: AsyncSession, assignment_id: UUID) -> None:
    assignment = await db.get(RoleAssignment, assignment_id)
    if not assignment:
        raise NotFoundError(f"Role assignment {assignment_id} not found")

    await db.delete(assignment)
    record_event(db, "recruiter.unassigned", {
        "assignment_id": assignment_id,
        "job_id": assignment.job_id,
        "recruiter_id": assignment.recruiter_id,
    })
    await db.commit()


async def list_recruiters_for_job(db: AsyncSession, job_id: UUID) -> list[dict[str, Any]]:
    result = await db.execute(
        select(RoleAssignment, Recruiter)
        .join(Recruiter, Recruiter.id == RoleAssignment.recruiter_id)
        .where(RoleAssignment.job_id == job_id)
        .order_by(RoleAssignment.assigned_at)
    )
    return [
        {
            "assignment_id": str(assignment.id),
            "assigned_at": isoformat(assignment.assigned_at),
            "recruiter": recruiter_to_dict(recruiter),
        }
        for assignment, recruiter in result.all()
    ]


async def _count(db: AsyncSession, query) -> int:
    return (await db.execute(query)).scalar() or 0


async def recalculate_reputation(db: AsyncSession, recruiter_id: UUID) -> dict[str, Any]:
    """
    Rebuild a recruiter's reputation from applications, placements and proposals.

    hire_rate = hires / submissions, completion_rate = completed / (completed
    + failed), acceptance_rate = accepted / (accepted + declined + timed_out).
    """
    recruiter = await _get_recruiter(db, recruiter_id)

    submissions = await _count(
        db, select(func.count(Application.id)).where(Application.recruiter_id == recruiter_id)
    )
    hires = await _count(
        db,
        select(func.count(Application.id)).where(
            Application.recruiter_id == recruiter_id,
            Application.stage == ApplicationStage.HIRED,
        ),
    )

    placement_counts = dict(
        (
            await db.execute(
                select(Placement.state, func.count(Placement.id))
                .where(Placement.recruiter_id == recruiter_id)
                .group_by(Placement.state)
            )
        ).all()
    )
    completed = placement_counts.get(PlacementState.COMPLETED, 0)
    failed = placement_counts.get(PlacementState.FAILED, 0)

    collaborations = await _count(
        db,
        select(func.count(PlacementCollaborator.id)).where(
            PlacementCollaborator.recruiter_user_id == recruiter.user_id
        ),
    )

    accepted = await _count(
        db,
        select(func.count(CandidateRoleAssignment.id)).where(
            CandidateRoleAssignment.recruiter_id == recruiter_id,
            CandidateRoleAssignment.accepted_at.is_not(None),
        ),
    )
    proposal_counts = dict(
        (
            await db.execute(
                select(CandidateRoleAssignment.state, func.count(CandidateRoleAssignment.id))
                .where(CandidateRoleAssignment.recruiter_id == recruiter_id)
                .group_by(CandidateRoleAssignment.state)
            )
        ).all()
    )
    declined = proposal_counts.get(ProposalState.DECLINED, 0)
    timed_out = proposal_counts.get(ProposalState.TIMED_OUT, 0)

    hire_rate = rate(hires, submissions)
    completion_rate = rate(completed, completed + failed)
    acceptance_rate = rate(accepted, accepted + declined + timed_out)

    reputation = await db.get(RecruiterReputation, recruiter_id)
    if reputation is None:
        reputation = RecruiterReputation(recruiter_id=recruiter_id)
        db.add(reputation)

    reputation.total_submissions = submissions
    reputation.total_hires = hires
    reputation.hire_rate = hire_rate
    reputation.total_placements = sum(placement_counts.values())
    reputation.completed_placements = completed
    reputation.failed_placements = failed
    reputation.completion_rate = completion_rate
    reputation.total_collaborations = collaborations
    reputation.proposals_accepted = accepted
    reputation.proposals_declined = declined
    reputation.proposals_timed_out = timed_out
    reputation.reputation_score = compute_reputation_score(
        hire_rate, completion_rate, acceptance_rate
    )
    reputation.last_calculated_at = now()

    await db.commit()
    logger.info(
        f"Recalculated reputation for recruiter {recruiter_id}: "
        f"{reputation.reputation_score}"
    )
    return reputation_to_dict(reputation)


async def get_reputation(db: AsyncSession, recruiter_id: UUID) -> dict[str, Any]:
    await _get_recruiter(db, recruiter_id)
    reputation = await db.get(RecruiterReputation, recruiter_id)
    if reputation is None:
        return await recalculate_reputation(db, recruiter_id)
    return reputation_to_dict(reputation)
