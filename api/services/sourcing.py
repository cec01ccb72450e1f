"""
Candidate sourcing and outreach service functions.

The first recruiter to source a candidate owns the relationship for a
protection window. While it lasts, other recruiters cannot be proposed for,
submit, or take the sourcer role on that candidate.
"""

from typing import Any, Optional
from datetime import datetime
from uuid import UUID
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.events import record_event
from core.exceptions import ValidationError, NotFoundError, CandidateProtectedError
from core.utils.datetime import now, add_days, as_utc, isoformat
from database.models.candidates import (
    Candidate,
    CandidateSourcer,
    CandidateOutreach,
    SourcerType,
)
from database.models.identity import User
from database.models.jobs import Job

logger = logging.getLogger(__name__)

ENGAGEMENT_FIELDS = ("opened_at", "clicked_at", "replied_at", "unsubscribed_at")


def is_protected(sourcer: CandidateSourcer, reference: Optional[datetime] = None) -> bool:
    return as_utc(sourcer.protection_expires_at) > (reference or now())


def sourcer_to_dict(sourcer: CandidateSourcer) -> dict[str, Any]:
    return {
        "id": str(sourcer.id),
        "candidate_id": str(sourcer.candidate_id),
        "sourcer_user_id": str(sourcer.sourcer_user_id),
        "sourcer_type": sourcer.sourcer_type.value,
        "sourced_at": isoformat(sourcer.sourced_at),
        "protection_window_days": sourcer.protection_window_days,
        "protection_expires_at": isoformat(sourcer.protection_expires_at),
        "is_protected": is_protected(sourcer),
        "notes": sourcer.notes,
    }


def outreach_to_dict(outreach: CandidateOutreach) -> dict[str, Any]:
    return {
        "id": str(outreach.id),
        "candidate_id": str(outreach.candidate_id),
        "recruiter_user_id": str(outreach.recruiter_user_id),
        "job_id": str(outreach.job_id) if outreach.job_id else None,
        "sent_at": isoformat(outreach.sent_at),
        "email_subject": outreach.email_subject,
        "email_body": outreach.email_body,
        "opened_at": isoformat(outreach.opened_at),
        "clicked_at": isoformat(outreach.clicked_at),
        "replied_at": isoformat(outreach.replied_at),
        "unsubscribed_at": isoformat(outreach.unsubscribed_at),
        "bounced": outreach.bounced,
    }


async def current_sourcer(db: AsyncSession, candidate_id: UUID) -> Optional[CandidateSourcer]:
    """Latest sourcing record for a candidate, expired or not."""
    result = await db.execute(
        select(CandidateSourcer)
        .where(CandidateSourcer.candidate_id == candidate_id)
        .order_by(CandidateSourcer.sourced_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def _protected_error(sourcer: CandidateSourcer) -> CandidateProtectedError:
    return CandidateProtectedError(
        "Candidate is protected by another recruiter's sourcing",
        details={
            "candidate_id": str(sourcer.candidate_id),
            "sourcer_user_id": str(sourcer.sourcer_user_id),
            "protection_expires_at": isoformat(sourcer.protection_expires_at),
        },
    )


async def _add_sourcer(
    db: AsyncSession,
    candidate_id: UUID,
    sourcer_user_id: UUID,
    sourcer_type: SourcerType,
    protection_window_days: int,
    notes: Optional[str],
) -> CandidateSourcer:
    existing = await current_sourcer(db, candidate_id)
    if existing and is_protected(existing):
        raise _protected_error(existing)

    sourced_at = now()
    sourcer = CandidateSourcer(
        candidate_id=candidate_id,
        sourcer_user_id=sourcer_user_id,
        sourcer_type=sourcer_type,
        sourced_at=sourced_at,
        protection_window_days=protection_window_days,
        protection_expires_at=add_days(sourced_at, protection_window_days),
        notes=notes,
    )
    db.add(sourcer)
    await db.flush()

    record_event(db, "candidate.sourced", {
        "candidate_id": candidate_id,
        "sourcer_user_id": sourcer_user_id,
        "sourcer_type": sourcer_type.value,
        "protection_expires_at": sourcer.protection_expires_at,
    })
    return sourcer


async def source_candidate(
    db: AsyncSession,
    candidate_id: UUID,
    sourcer_user_id: UUID,
    sourcer_type: str = SourcerType.RECRUITER.value,
    protection_window_days: Optional[int] = None,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    """
    Claim a candidate. The first sourcer wins until protection expires.

    Raises:
        ValidationError: If the candidate or user does not exist
        CandidateProtectedError: If an unexpired sourcing record exists
    """
    if protection_window_days is None:
        protection_window_days = settings.sourcing_protection_days
    if protection_window_days < 1:
        raise ValidationError("protection_window_days must be at least 1")
    try:
        parsed_type = SourcerType(sourcer_type)
    except ValueError:
        raise ValidationError(f"Unknown sourcer type '{sourcer_type}'")

    if not await db.get(Candidate, candidate_id):
        raise ValidationError(f"Candidate {candidate_id} does not exist")
    if not await db.get(User, sourcer_user_id):
        raise ValidationError(f"User {sourcer_user_id} does not exist")

    sourcer = await _add_sourcer(
        db, candidate_id, sourcer_user_id, parsed_type, protection_window_days, notes
    )
    await db.commit()

    logger.info(f"User {sourcer_user_id} sourced candidate {candidate_id}")
    return sourcer_to_dict(sourcer)


async def get_candidate_sourcer(db: AsyncSession, candidate_id: UUID) -> Optional[dict[str, Any]]:
    if not await db.get(Candidate, candidate_id):
        raise NotFoundError(f"Candidate {candidate_id} not found")
    sourcer = await current_sourcer(db, candidate_id)
    return sourcer_to_dict(sourcer) if sourcer else None


async def can_user_work_with_candidate(
    db: AsyncSession, candidate_id: UUID, user_id: UUID
) -> bool:
    """True when nobody holds protection on the candidate, or the user does."""
    sourcer = await current_sourcer(db, candidate_id)
    if sourcer is None or not is_protected(sourcer):
        return True
    return sourcer.sourcer_user_id == user_id


async def ensure_can_work_with_candidate(
    db: AsyncSession, candidate_id: UUID, user_id: UUID
) -> None:
    """Raise CandidateProtectedError when another user's protection is active."""
    sourcer = await current_sourcer(db, candidate_id)
    if sourcer and is_protected(sourcer) and sourcer.sourcer_user_id != user_id:
        logger.warning(
            f"User {user_id} blocked from candidate {candidate_id} "
            f"protected by {sourcer.sourcer_user_id}"
        )
        raise _protected_error(sourcer)


async def record_outreach(
    db: AsyncSession,
    candidate_id: UUID,
    recruiter_user_id: UUID,
    email_subject: str,
    email_body: str,
    job_id: Optional[UUID] = None,
) -> dict[str, Any]:
    """
    Record an outreach email. Outreach to an unprotected candidate also
    makes the sender the candidate's sourcer.
    """
    if not await db.get(Candidate, candidate_id):
        raise ValidationError(f"Candidate {candidate_id} does not exist")
    if not await db.get(User, recruiter_user_id):
        raise ValidationError(f"User {recruiter_user_id} does not exist")
    if job_id and not await db.get(Job, job_id):
        raise ValidationError(f"Job {job_id} does not exist")

    sourcer = await current_sourcer(db, candidate_id)
    if sourcer and is_protected(sourcer):
        if sourcer.sourcer_user_id != recruiter_user_id:
            raise _protected_error(sourcer)
    else:
        await _add_sourcer(
            db,
            candidate_id,
            recruiter_user_id,
            SourcerType.RECRUITER,
            settings.sourcing_protection_days,
            "First outreach",
        )

    outreach = CandidateOutreach(
        candidate_id=candidate_id,
        recruiter_user_id=recruiter_user_id,
        job_id=job_id,
        sent_at=now(),
        email_subject=email_subject,
        email_body=email_body,
        bounced=False,
    )
    db.add(outreach)
    await db.flush()

    record_event(db, "candidate.outreach_sent", {
        "outreach_id": outreach.id,
        "candidate_id": candidate_id,
        "recruiter_user_id": recruiter_user_id,
        "job_id": job_id,
    })
    await db.commit()
    return outreach_to_dict(outreach)


async def update_outreach_engagement(
    db: AsyncSession,
    outreach_id: UUID,
    updates: dict[str, Any],
) -> dict[str, Any]:
    """Record opens, clicks, replies, unsubscribes and bounces."""
    outreach = await db.get(CandidateOutreach, outreach_id)
    if not outreach:
        raise NotFoundError(f"Outreach {outreach_id} not found")

    unknown = set(updates) - set(ENGAGEMENT_FIELDS) - {"bounced"}
    if unknown:
        raise ValidationError(f"Unknown engagement field(s): {', '.join(sorted(unknown))}")

    for field in ENGAGEMENT_FIELDS:
        if updates.get(field) is not None:
            setattr(outreach, field, as_utc(updates[field]))
    if updates.get("bounced") is not None:
        outreach.bounced = bool(updates["bounced"])

    await db.commit()
    return outreach_to_dict(outreach)


async def list_outreach(
    db: AsyncSession,
    candidate_id: Optional[UUID] = None,
    recruiter_user_id: Optional[UUID] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    query = select(CandidateOutreach)
    if candidate_id:
        query = query.where(CandidateOutreach.candidate_id == candidate_id)
    if recruiter_user_id:
        query = query.where(CandidateOutreach.recruiter_user_id == recruiter_user_id)

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0
    result = await db.execute(
        query.order_by(CandidateOutreach.sent_at.desc()).limit(limit).offset(offset)
    )

    return {
        "outreach": [outreach_to_dict(o) for o in result.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
