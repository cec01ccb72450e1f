"""Proposal (candidate-role assignment) service functions."""

from typing import Any, Optional
from datetime import datetime
from uuid import UUID
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.sourcing import ensure_can_work_with_candidate
from core.config import settings
from core.events import record_event
from core.exceptions import ValidationError, NotFoundError, InvalidStateError
from core.utils.datetime import now, add_days, as_utc, hours_between, isoformat
from database.models.jobs import Job
from database.models.candidates import Candidate
from database.models.network import Recruiter
from database.models.proposals import (
    CandidateRoleAssignment,
    ProposalState,
    OPEN_PROPOSAL_STATES,
    TERMINAL_PROPOSAL_STATES,
)

logger = logging.getLogger(__name__)

URGENT_HOURS = 24


def proposal_to_dict(proposal: CandidateRoleAssignment) -> dict[str, Any]:
    return {
        "id": str(proposal.id),
        "job_id": str(proposal.job_id),
        "candidate_id": str(proposal.candidate_id),
        "recruiter_id": str(proposal.recruiter_id),
        "state": proposal.state.value,
        "proposed_by": str(proposal.proposed_by) if proposal.proposed_by else None,
        "proposal_notes": proposal.proposal_notes,
        "response_notes": proposal.response_notes,
        "proposed_at": isoformat(proposal.proposed_at),
        "response_due_at": isoformat(proposal.response_due_at),
        "accepted_at": isoformat(proposal.accepted_at),
        "declined_at": isoformat(proposal.declined_at),
        "timed_out_at": isoformat(proposal.timed_out_at),
        "submitted_at": isoformat(proposal.submitted_at),
        "closed_at": isoformat(proposal.closed_at),
        "created_at": isoformat(proposal.created_at),
    }


def proposal_summary(
    proposal: CandidateRoleAssignment,
    reference: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Proposal view with deadline indicators.

    hours_remaining is only reported while the proposal awaits a response.
    """
    summary = proposal_to_dict(proposal)
    reference = reference or now()

    if proposal.state == ProposalState.PROPOSED:
        remaining = hours_between(reference, proposal.response_due_at)
        summary["hours_remaining"] = round(max(remaining, 0.0), 2)
        summary["is_overdue"] = remaining < 0
        summary["is_urgent"] = 0 <= remaining < URGENT_HOURS
    else:
        summary["hours_remaining"] = None
        summary["is_overdue"] = False
        summary["is_urgent"] = False
    return summary


def _event_payload(proposal: CandidateRoleAssignment, **extra: Any) -> dict[str, Any]:
    payload = {
        "proposal_id": proposal.id,
        "job_id": proposal.job_id,
        "candidate_id": proposal.candidate_id,
        "recruiter_id": proposal.recruiter_id,
        "state": proposal.state.value,
    }
    payload.update(extra)
    return payload


async def _load_for_update(db: AsyncSession, proposal_id: UUID) -> CandidateRoleAssignment:
    result = await db.execute(
        select(CandidateRoleAssignment)
        .where(CandidateRoleAssignment.id == proposal_id)
        .with_for_update()
    )
    proposal = result.scalar_one_or_none()
    if not proposal:
        raise NotFoundError(f"Proposal {proposal_id} not found")
    return proposal


async def create_proposal(
    db: AsyncSession,
    job_id: UUID,
    candidate_id: UUID,
    recruiter_id: UUID,
    notes: Optional[str] = None,
    due_days: Optional[int] = None,
    proposed_by: Optional[UUID] = None,
) -> dict[str, Any]:
    """
    Propose a recruiter for a candidate/job pairing.

    Rejected with CandidateProtectedError while another recruiter holds
    sourcing protection on the candidate.
    """
    due_days = settings.proposal_response_days if due_days is None else due_days
    if due_days < 1:
        raise ValidationError("due_days must be at least 1", details={"due_days": due_days})

    if not await db.get(Job, job_id):
        raise ValidationError(f"Job {job_id} does not exist")
    if not await db.get(Candidate, candidate_id):
        raise ValidationError(f"Candidate {candidate_id} does not exist")
    recruiter = await db.get(Recruiter, recruiter_id)
    if not recruiter:
        raise ValidationError(f"Recruiter {recruiter_id} does not exist")
    await ensure_can_work_with_candidate(db, candidate_id, recruiter.user_id)

    existing = await db.execute(
        select(CandidateRoleAssignment.id).where(
            CandidateRoleAssignment.job_id == job_id,
            CandidateRoleAssignment.candidate_id == candidate_id,
            CandidateRoleAssignment.recruiter_id == recruiter_id,
            CandidateRoleAssignment.state.in_(OPEN_PROPOSAL_STATES),
        )
    )
    if existing.first():
        raise ValidationError(
            "An open proposal already exists for this job, candidate and recruiter"
        )

    proposed_at = now()
    proposal = CandidateRoleAssignment(
        job_id=job_id,
        candidate_id=candidate_id,
        recruiter_id=recruiter_id,
        state=ProposalState.PROPOSED,
        proposed_by=proposed_by,
        proposal_notes=notes,
        proposed_at=proposed_at,
        response_due_at=add_days(proposed_at, due_days),
    )
    db.add(proposal)
    await db.flush()

    record_event(
        db,
        "proposal.created",
        _event_payload(proposal, response_due_at=proposal.response_due_at),
    )
    await db.commit()

    logger.info(f"Created proposal {proposal.id} for recruiter {recruiter_id}")
    return proposal_summary(proposal)


async def get_proposal(db: AsyncSession, proposal_id: UUID) -> dict[str, Any]:
    """Get proposal details."""
    proposal = await db.get(CandidateRoleAssignment, proposal_id)
    if not proposal:
        raise NotFoundError(f"Proposal {proposal_id} not found")
    return proposal_summary(proposal)


async def list_proposals(
    db: AsyncSession,
    recruiter_id: Optional[UUID] = None,
    job_id: Optional[UUID] = None,
    candidate_id: Optional[UUID] = None,
    state: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """List proposals with filtering."""
    query = select(CandidateRoleAssignment)

    if recruiter_id:
        query = query.where(CandidateRoleAssignment.recruiter_id == recruiter_id)
    if job_id:
        query = query.where(CandidateRoleAssignment.job_id == job_id)
    if candidate_id:
        query = query.where(CandidateRoleAssignment.candidate_id == candidate_id)
    if state:
        try:
            query = query.where(CandidateRoleAssignment.state == ProposalState(state))
        except ValueError:
            raise ValidationError(f"Unknown proposal state '{state}'")

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0

    query = query.order_by(CandidateRoleAssignment.proposed_at.desc())
    result = await db.execute(query.limit(limit).offset(offset))
    reference = now()

    return {
        "proposals": [proposal_summary(p, reference) for p in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def _respond(
    db: AsyncSession,
    proposal_id: UUID,
    new_state: ProposalState,
    action: str,
    notes: Optional[str],
) -> dict[str, Any]:
    proposal = await _load_for_update(db, proposal_id)
    if proposal.state != ProposalState.PROPOSED:
        raise InvalidStateError("proposal", proposal.state.value, action)

    timestamp = now()
    proposal.state = new_state
    proposal.response_notes = notes
    if new_state == ProposalState.ACCEPTED:
        proposal.accepted_at = timestamp
    else:
        proposal.declined_at = timestamp

    record_event(db, f"proposal.{new_state.value}", _event_payload(proposal, notes=notes))
    await db.commit()

    logger.info(f"Proposal {proposal_id} {new_state.value}")
    return proposal_summary(proposal)


async def accept_proposal(
    db: AsyncSession, proposal_id: UUID, notes: Optional[str] = None
) -> dict[str, Any]:
    """Accept a proposal awaiting response."""
    return await _respond(db, proposal_id, ProposalState.ACCEPTED, "accept", notes)


async def decline_proposal(
    db: AsyncSession, proposal_id: UUID, notes: Optional[str] = None
) -> dict[str, Any]:
    """Decline a proposal awaiting response."""
    return await _respond(db, proposal_id, ProposalState.DECLINED, "decline", notes)


async def mark_submitted(db: AsyncSession, proposal_id: UUID) -> dict[str, Any]:
    """Record that the recruiter submitted the candidate for an accepted proposal."""
    proposal = await _load_for_update(db, proposal_id)
    if proposal.state != ProposalState.ACCEPTED:
        raise InvalidStateError("proposal", proposal.state.value, "submit")

    proposal.state = ProposalState.SUBMITTED
    proposal.submitted_at = now()

    record_event(db, "proposal.submitted", _event_payload(proposal))
    await db.commit()
    return proposal_summary(proposal)


async def close_proposal(db: AsyncSession, proposal_id: UUID) -> dict[str, Any]:
    """Close an open proposal."""
    proposal = await _load_for_update(db, proposal_id)
    if proposal.state in TERMINAL_PROPOSAL_STATES:
        raise InvalidStateError("proposal", proposal.state.value, "close")

    previous = proposal.state
    proposal.state = ProposalState.CLOSED
    proposal.closed_at = now()

    record_event(
        db, "proposal.closed", _event_payload(proposal, previous_state=previous.value)
    )
    await db.commit()
    return proposal_summary(proposal)


async def expire_overdue_proposals(
    db: AsyncSession, reference: Optional[datetime] = None
) -> int:
    """
    Time out every proposal still awaiting a response past its deadline.

    Returns:
        Number of proposals moved to timed_out
    """
    reference = as_utc(reference) if reference else now()
    result = await db.execute(
        select(CandidateRoleAssignment)
        .where(
            CandidateRoleAssignment.state == ProposalState.PROPOSED,
            CandidateRoleAssignment.response_due_at < reference,
        )
        .with_for_update(skip_locked=True)
    )
    proposals = result.scalars().all()

    for proposal in proposals:
        proposal.state = ProposalState.TIMED_OUT
        proposal.timed_out_at = reference
        record_event(
            db,
            "proposal.timed_out",
            _event_payload(proposal, response_due_at=proposal.response_due_at),
        )

    await db.commit()
    if proposals:
        logger.info(f"Timed out {len(proposals)} overdue proposal(s)")
    return len(proposals)
