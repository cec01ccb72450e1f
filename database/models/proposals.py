"""
Proposals Module

Candidate-role assignments: a recruiter proposed for a candidate/job pairing.
Rows are never deleted; every state change is stamped with its own timestamp.
"""

import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    ForeignKey,
    DateTime,
    Text,
    Uuid,
    Enum as SQLEnum,
    Index,
)

from database.engine import Base
from core.utils.datetime import now


# ==================== Enums ===================== #
class ProposalState(str, PyEnum):
    """State of a candidate-role proposal."""

    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    TIMED_OUT = "timed_out"
    SUBMITTED = "submitted"
    CLOSED = "closed"


OPEN_PROPOSAL_STATES = frozenset(
    {ProposalState.PROPOSED, ProposalState.ACCEPTED, ProposalState.SUBMITTED}
)
TERMINAL_PROPOSAL_STATES = frozenset(
    {ProposalState.DECLINED, ProposalState.TIMED_OUT, ProposalState.CLOSED}
)


# ==================== CandidateRoleAssignment Model ===================== #
class CandidateRoleAssignment(Base):
    """
    Proposal pairing a candidate, a job and a recruiter.

    proposed -> accepted | declined | timed_out
    accepted -> submitted -> closed
    """

    __tablename__ = "candidate_role_assignments"
    __table_args__ = (
        Index("ix_cra_job_candidate", "job_id", "candidate_id"),
        Index("ix_cra_state_due", "state", "response_due_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.id"), nullable=False, index=True
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("candidates.id"), nullable=False, index=True
    )
    recruiter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("recruiters.id"), nullable=False, index=True
    )
    state: Mapped[ProposalState] = mapped_column(
        SQLEnum(ProposalState, native_enum=False, length=50),
        nullable=False,
        default=ProposalState.PROPOSED,
    )

    proposed_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )
    proposal_notes: Mapped[str | None] = mapped_column(Text)
    response_notes: Mapped[str | None] = mapped_column(Text)

    # Lifecycle timestamps
    proposed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    response_due_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    declined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    timed_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )

    def __repr__(self) -> str:
        return f"<CandidateRoleAssignment(id={self.id}, state={self.state})>"
