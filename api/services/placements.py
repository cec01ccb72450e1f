"""Placement service functions: hires, collaborator splits and guarantees."""

from typing import Any, Optional
from datetime import date
from uuid import UUID
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.sourcing import current_sourcer, is_protected
from core.config import settings
from core.events import record_event
from core.exceptions import (
    ValidationError,
    NotFoundError,
    InvalidStateError,
    CandidateProtectedError,
)
from core.fees import (
    compute_fee_amount,
    compute_fee_split,
    compute_share,
    suggest_split_percentages,
    validate_percentage,
    validate_split_total,
)
from core.utils.datetime import now, add_days, as_utc, isoformat
from database.models.applications import Application, ApplicationStage
from database.models.identity import User
from database.models.jobs import Job, JobStatus
from database.models.placements import (
    Placement,
    PlacementCollaborator,
    PlacementState,
    CollaboratorRole,
)

logger = logging.getLogger(__name__)

PLACEMENT_TRANSITIONS: dict[PlacementState, frozenset[PlacementState]] = {
    PlacementState.HIRED: frozenset({PlacementState.ACTIVE, PlacementState.FAILED}),
    PlacementState.ACTIVE: frozenset({PlacementState.COMPLETED, PlacementState.FAILED}),
    PlacementState.COMPLETED: frozenset(),
    PlacementState.FAILED: frozenset(),
}

TRANSITION_EVENTS = {
    PlacementState.ACTIVE: "placement.activated",
    PlacementState.COMPLETED: "placement.completed",
    PlacementState.FAILED: "placement.failed",
}


def collaborator_to_dict(collaborator: PlacementCollaborator) -> dict[str, Any]:
    return {
        "id": str(collaborator.id),
        "placement_id": str(collaborator.placement_id),
        "recruiter_user_id": str(collaborator.recruiter_user_id),
        "role": collaborator.role.value,
        "split_percentage": collaborator.split_percentage,
        "split_amount": collaborator.split_amount,
        "notes": collaborator.notes,
        "created_at": isoformat(collaborator.created_at),
    }


def placement_to_dict(
    placement: Placement,
    collaborators: Optional[list[PlacementCollaborator]] = None,
) -> dict[str, Any]:
    data = {
        "id": str(placement.id),
        "job_id": str(placement.job_id),
        "candidate_id": str(placement.candidate_id),
        "company_id": str(placement.company_id),
        "recruiter_id": str(placement.recruiter_id),
        "application_id": str(placement.application_id) if placement.application_id else None,
        "salary": placement.salary,
        "fee_percentage": placement.fee_percentage,
        "fee_amount": placement.fee_amount,
        "recruiter_share_percentage": placement.recruiter_share_percentage,
        "recruiter_share_amount": placement.recruiter_share_amount,
        "platform_share_amount": placement.platform_share_amount,
        "state": placement.state.value,
        "hired_at": isoformat(placement.hired_at),
        "start_date": isoformat(placement.start_date),
        "end_date": isoformat(placement.end_date),
        "guarantee_days": placement.guarantee_days,
        "guarantee_expires_at": isoformat(placement.guarantee_expires_at),
        "failure_reason": placement.failure_reason,
        "failed_at": isoformat(placement.failed_at),
        "replacement_requested_at": isoformat(placement.replacement_requested_at),
        "replacement_placement_id": (
            str(placement.replacement_placement_id)
            if placement.replacement_placement_id else None
        ),
        "created_at": isoformat(placement.created_at),
    }
    if collaborators is not None:
        data["collaborators"] = [collaborator_to_dict(c) for c in collaborators]
    return data


def _within_guarantee(placement: Placement) -> bool:
    reference = as_utc(placement.failed_at) if placement.failed_at else now()
    return reference <= as_utc(placement.guarantee_expires_at)


async def _load_placement(
    db: AsyncSession, placement_id: UUID, for_update: bool = False
) -> Placement:
    query = select(Placement).where(Placement.id == placement_id)
    if for_update:
        query = query.with_for_update()
    placement = (await db.execute(query)).scalar_one_or_none()
    if not placement:
        raise NotFoundError(f"Placement {placement_id} not found")
    return placement


async def _load_collaborators(
    db: AsyncSession, placement_id: UUID
) -> list[PlacementCollaborator]:
    result = await db.execute(
        select(PlacementCollaborator)
        .where(PlacementCollaborator.placement_id == placement_id)
        .order_by(PlacementCollaborator.created_at, PlacementCollaborator.id)
    )
    return list(result.scalars().all())


def _recompute_split_amounts(
    placement: Placement, collaborators: list[PlacementCollaborator]
) -> None:
    split = compute_fee_split(
        placement.salary,
        placement.fee_percentage,
        [c.split_percentage for c in collaborators],
    )
    for collaborator, share in zip(collaborators, split.shares):
        collaborator.split_amount = share


async def create_placement(
    db: AsyncSession,
    application_id: UUID,
    salary: int,
    fee_percentage: Optional[float] = None,
    recruiter_share_percentage: Optional[float] = None,
    start_date: Optional[date] = None,
    guarantee_days: Optional[int] = None,
    created_by: Optional[UUID] = None,
) -> dict[str, Any]:
    """
    Record a hire for an application.

    The application moves to hired and its job to filled. Fee columns are
    computed here once and never change afterwards.
    """
    application = (
        await db.execute(
            select(Application).where(Application.id == application_id).with_for_update()
        )
    ).scalar_one_or_none()
    if not application:
        raise ValidationError(f"Application {application_id} does not exist")
    if application.recruiter_id is None:
        raise ValidationError("Application has no recruiter to credit with the placement")
    if application.stage in (ApplicationStage.HIRED, ApplicationStage.REJECTED):
        raise InvalidStateError("application", application.stage.value, "place")

    existing = await db.execute(
        select(Placement.id).where(Placement.application_id == application_id)
    )
    if existing.first():
        raise ValidationError("A placement already exists for this application")

    if salary <= 0:
        raise ValidationError("salary must be positive", details={"salary": salary})

    job = await db.get(Job, application.job_id)
    fee_percentage = job.fee_percentage if fee_percentage is None else fee_percentage
    if recruiter_share_percentage is None:
        recruiter_share_percentage = settings.default_recruiter_share_percentage
    validate_percentage(recruiter_share_percentage, "recruiter_share_percentage")
    guarantee_days = settings.guarantee_days if guarantee_days is None else guarantee_days
    if guarantee_days < 0:
        raise ValidationError("guarantee_days must not be negative")

    fee_amount = compute_fee_amount(salary, fee_percentage)
    recruiter_share_amount = min(
        compute_share(fee_amount, recruiter_share_percentage), fee_amount
    )

    hired_at = now()
    placement = Placement(
        job_id=job.id,
        candidate_id=application.candidate_id,
        company_id=job.company_id,
        recruiter_id=application.recruiter_id,
        application_id=application.id,
        salary=salary,
        fee_percentage=fee_percentage,
        fee_amount=fee_amount,
        recruiter_share_percentage=recruiter_share_percentage,
        recruiter_share_amount=recruiter_share_amount,
        platform_share_amount=fee_amount - recruiter_share_amount,
        state=PlacementState.HIRED,
        hired_at=hired_at,
        start_date=start_date,
        guarantee_days=guarantee_days,
        guarantee_expires_at=add_days(hired_at, guarantee_days),
    )
    db.add(placement)

    old_stage = application.stage
    application.stage = ApplicationStage.HIRED
    job.status = JobStatus.FILLED
    await db.flush()

    record_event(db, "application.stage_changed", {
        "application_id": application.id,
        "job_id": application.job_id,
        "candidate_id": application.candidate_id,
        "recruiter_id": application.recruiter_id,
        "old_stage": old_stage.value,
        "new_stage": ApplicationStage.HIRED.value,
        "changed_by": created_by,
    })
    record_event(db, "placement.created", {
        "placement_id": placement.id,
        "application_id": application.id,
        "job_id": job.id,
        "candidate_id": placement.candidate_id,
        "company_id": placement.company_id,
        "recruiter_id": placement.recruiter_id,
        "salary": salary,
        "fee_amount": fee_amount,
        "recruiter_share_amount": recruiter_share_amount,
        "guarantee_expires_at": placement.guarantee_expires_at,
    })
    await db.commit()

    logger.info(f"Created placement {placement.id} with fee {fee_amount} cents")
    return placement_to_dict(placement, [])


async def get_placement(db: AsyncSession, placement_id: UUID) -> dict[str, Any]:
    """Get placement details with collaborators."""
    placement = await _load_placement(db, placement_id)
    collaborators = await _load_collaborators(db, placement_id)
    return placement_to_dict(placement, collaborators)


async def list_placements(
    db: AsyncSession,
    recruiter_id: Optional[UUID] = None,
    job_id: Optional[UUID] = None,
    company_id: Optional[UUID] = None,
    state: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """List placements with filtering."""
    query = select(Placement)

    if recruiter_id:
        query = query.where(Placement.recruiter_id == recruiter_id)
    if job_id:
        query = query.where(Placement.job_id == job_id)
    if company_id:
        query = query.where(Placement.company_id == company_id)
    if state:
        try:
            query = query.where(Placement.state == PlacementState(state))
        except ValueError:
            raise ValidationError(f"Unknown placement state '{state}'")

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0

    result = await db.execute(
        query.order_by(Placement.hired_at.desc()).limit(limit).offset(offset)
    )

    return {
        "placements": [placement_to_dict(p) for p in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def add_collaborator(
    db: AsyncSession,
    placement_id: UUID,
    recruiter_user_id: UUID,
    role: str,
    split_percentage: float,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    """
    Add a recruiter to a placement's fee split.

    All split amounts are recomputed so they stay consistent with the fee.
    While the candidate is under sourcing protection, only the protected
    sourcer can take the sourcer role.
    """
    placement = await _load_placement(db, placement_id, for_update=True)

    try:
        collaborator_role = CollaboratorRole(role)
    except ValueError:
        raise ValidationError(
            f"Unknown collaborator role '{role}'",
            details={"allowed_roles": [r.value for r in CollaboratorRole]},
        )

    if not await db.get(User, recruiter_user_id):
        raise ValidationError(f"User {recruiter_user_id} does not exist")
    if collaborator_role == CollaboratorRole.SOURCER:
        sourcer = await current_sourcer(db, placement.candidate_id)
        if sourcer and is_protected(sourcer) and sourcer.sourcer_user_id != recruiter_user_id:
            raise CandidateProtectedError(
                "Only the candidate's protected sourcer can take the sourcer role",
                details={"sourcer_user_id": str(sourcer.sourcer_user_id)},
            )

    collaborators = await _load_collaborators(db, placement_id)
    if any(c.recruiter_user_id == recruiter_user_id for c in collaborators):
        raise ValidationError("Recruiter is already a collaborator on this placement")

    validate_split_total([c.split_percentage for c in collaborators] + [split_percentage])

    collaborator = PlacementCollaborator(
        placement_id=placement.id,
        recruiter_user_id=recruiter_user_id,
        role=collaborator_role,
        split_percentage=split_percentage,
        split_amount=0,
        notes=notes,
        created_at=now(),
    )
    db.add(collaborator)
    collaborators.append(collaborator)
    _recompute_split_amounts(placement, collaborators)
    await db.flush()

    record_event(db, "collaboration.added", {
        "placement_id": placement.id,
        "collaborator_id": collaborator.id,
        "recruiter_user_id": recruiter_user_id,
        "role": collaborator_role.value,
        "split_percentage": split_percentage,
        "split_amount": collaborator.split_amount,
    })
    await db.commit()

    logger.info(
        f"Added collaborator {recruiter_user_id} to placement {placement_id} "
        f"at {split_percentage}%"
    )
    return placement_to_dict(placement, collaborators)


async def remove_collaborator(
    db: AsyncSession, placement_id: UUID, collaborator_id: UUID
) -> dict[str, Any]:
    """Remove a collaborator and recompute the remaining split amounts."""
    placement = await _load_placement(db, placement_id, for_update=True)
    collaborators = await _load_collaborators(db, placement_id)

    collaborator = next((c for c in collaborators if c.id == collaborator_id), None)
    if not collaborator:
        raise NotFoundError(f"Collaborator {collaborator_id} not found on placement")

    await db.delete(collaborator)
    collaborators.remove(collaborator)
    _recompute_split_amounts(placement, collaborators)

    record_event(db, "collaboration.removed", {
        "placement_id": placement.id,
        "collaborator_id": collaborator_id,
        "recruiter_user_id": collaborator.recruiter_user_id,
    })
    await db.commit()
    return placement_to_dict(placement, collaborators)


async def get_fee_split(db: AsyncSession, placement_id: UUID) -> dict[str, Any]:
    """Fee distribution across collaborators; the platform keeps the remainder."""
    placement = await _load_placement(db, placement_id)
    collaborators = await _load_collaborators(db, placement_id)

    split = compute_fee_split(
        placement.salary,
        placement.fee_percentage,
        [c.split_percentage for c in collaborators],
    )

    return {
        "placement_id": str(placement.id),
        "salary": placement.salary,
        "fee_percentage": placement.fee_percentage,
        "fee_amount": split.fee_amount,
        "collaborators": [
            {
                "collaborator_id": str(c.id),
                "recruiter_user_id": str(c.recruiter_user_id),
                "role": c.role.value,
                "split_percentage": c.split_percentage,
                "split_amount": share,
            }
            for c, share in zip(collaborators, split.shares)
        ],
        "total_split_percentage": sum(c.split_percentage for c in collaborators),
        "distributed_amount": split.distributed,
        "platform_share": split.platform_share,
    }


async def transition_placement(
    db: AsyncSession,
    placement_id: UUID,
    new_state: str,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    """Move a placement along hired -> active -> completed, or to failed."""
    placement = await _load_placement(db, placement_id, for_update=True)

    try:
        target = PlacementState(new_state)
    except ValueError:
        raise ValidationError(f"Unknown placement state '{new_state}'")

    if target not in PLACEMENT_TRANSITIONS[placement.state]:
        raise InvalidStateError("placement", placement.state.value, f"move to {target.value}")

    previous = placement.state
    placement.state = target
    payload: dict[str, Any] = {
        "placement_id": placement.id,
        "job_id": placement.job_id,
        "recruiter_id": placement.recruiter_id,
        "previous_state": previous.value,
        "state": target.value,
    }

    if target == PlacementState.ACTIVE and placement.start_date is None:
        placement.start_date = now().date()
    elif target == PlacementState.COMPLETED:
        placement.end_date = now().date()
    elif target == PlacementState.FAILED:
        placement.failed_at = now()
        placement.failure_reason = reason
        placement.end_date = placement.failed_at.date()
        payload["reason"] = reason
        payload["within_guarantee"] = _within_guarantee(placement)

    record_event(db, TRANSITION_EVENTS[target], payload)
    await db.commit()

    logger.info(f"Placement {placement_id} moved {previous.value} -> {target.value}")
    return placement_to_dict(placement)


async def request_replacement(db: AsyncSession, placement_id: UUID) -> dict[str, Any]:
    """Request a replacement hire for a placement that failed within its guarantee."""
    placement = await _load_placement(db, placement_id, for_update=True)

    if placement.state != PlacementState.FAILED:
        raise InvalidStateError("placement", placement.state.value, "request replacement for")
    if not _within_guarantee(placement):
        raise ValidationError(
            "Placement failed outside its guarantee window",
            details={"guarantee_expires_at": isoformat(placement.guarantee_expires_at)},
        )
    if placement.replacement_requested_at is not None:
        raise ValidationError("A replacement has already been requested")

    placement.replacement_requested_at = now()

    record_event(db, "placement.replacement_requested", {
        "placement_id": placement.id,
        "job_id": placement.job_id,
        "company_id": placement.company_id,
        "recruiter_id": placement.recruiter_id,
    })
    await db.commit()
    return placement_to_dict(placement)


async def link_replacement(
    db: AsyncSession, placement_id: UUID, replacement_placement_id: UUID
) -> dict[str, Any]:
    """Link the placement that replaces a failed one."""
    placement = await _load_placement(db, placement_id, for_update=True)

    if placement.replacement_requested_at is None:
        raise ValidationError("No replacement was requested for this placement")
    if placement.replacement_placement_id is not None:
        raise ValidationError("A replacement is already linked")
    if replacement_placement_id == placement_id:
        raise ValidationError("A placement cannot replace itself")

    replacement = await db.get(Placement, replacement_placement_id)
    if not replacement:
        raise ValidationError(f"Placement {replacement_placement_id} does not exist")
    if replacement.job_id != placement.job_id:
        raise ValidationError("Replacement must be for the same job")

    placement.replacement_placement_id = replacement.id

    record_event(db, "placement.replacement_linked", {
        "placement_id": placement.id,
        "replacement_placement_id": replacement.id,
    })
    await db.commit()
    return placement_to_dict(placement)


async def list_expiring_guarantees(db: AsyncSession, days: int = 30) -> list[dict[str, Any]]:
    """Live placements whose guarantee window ends within the next ``days`` days."""
    if days < 0:
        raise ValidationError("days must not be negative")

    current = now()
    result = await db.execute(
        select(Placement)
        .where(
            Placement.state.in_([PlacementState.HIRED, PlacementState.ACTIVE]),
            Placement.guarantee_expires_at >= current,
            Placement.guarantee_expires_at <= add_days(current, days),
        )
        .order_by(Placement.guarantee_expires_at)
    )

    placements = []
    for placement in result.scalars().all():
        data = placement_to_dict(placement)
        data["days_remaining"] = (as_utc(placement.guarantee_expires_at) - current).days
        placements.append(data)
    return placements


async def suggest_collaborator_splits(
    db: AsyncSession,
    roles: list[str],
    placement_id: Optional[UUID] = None,
) -> dict[str, Any]:
    """
    Role-weighted split percentages for a prospective set of collaborators.

    With a placement, the amounts each role would receive from its fee are
    included as well.
    """
    if not roles:
        raise ValidationError("At least one role is required")

    percentages = suggest_split_percentages(roles)
    suggestions = [
        {"role": role, "split_percentage": pct}
        for role, pct in zip(roles, percentages)
    ]

    result: dict[str, Any] = {"suggestions": suggestions}
    if placement_id:
        placement = await _load_placement(db, placement_id)
        split = compute_fee_split(placement.salary, placement.fee_percentage, percentages)
        for suggestion, amount in zip(suggestions, split.shares):
            suggestion["split_amount"] = amount
        result["placement_id"] = str(placement.id)
        result["fee_amount"] = split.fee_amount
    return result
