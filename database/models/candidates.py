"""
Candidates Module

Candidates, the recruiter who sourced each one (which protects the candidate
from other recruiters for a window), and outreach sent to candidates.
"""

import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    ForeignKey,
    Boolean,
    Integer,
    DateTime,
    Text,
    Uuid,
    Enum as SQLEnum,
    Index,
)

from database.engine import Base
from core.utils.datetime import now


# ==================== Enums ===================== #
class SourcerType(str, PyEnum):
    """Who sourced a candidate."""

    RECRUITER = "recruiter"
    TSN = "tsn"


# ==================== Candidate Model ===================== #
class Candidate(Base):
    """Person being placed into a job."""

    __tablename__ = "candidates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    linkedin_url: Mapped[str | None] = mapped_column(String(500))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )


# ==================== CandidateSourcer Model ===================== #
class CandidateSourcer(Base):
    """
    Sourcing record. The latest row for a candidate is the current sourcer;
    a new row can only be added once the previous protection has expired.
    """

    __tablename__ = "candidate_sourcers"
    __table_args__ = (Index("ix_candidate_sourcers_candidate", "candidate_id", "sourced_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False
    )
    sourcer_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    sourcer_type: Mapped[SourcerType] = mapped_column(
        SQLEnum(SourcerType, native_enum=False, length=50),
        nullable=False,
        default=SourcerType.RECRUITER,
    )
    sourced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    protection_window_days: Mapped[int] = mapped_column(Integer, nullable=False)
    protection_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )


# ==================== CandidateOutreach Model ===================== #
class CandidateOutreach(Base):
    """Outreach email sent to a candidate and its engagement."""

    __tablename__ = "candidate_outreach"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recruiter_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    job_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("jobs.id"))

    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    email_subject: Mapped[str] = mapped_column(String(500), nullable=False)
    email_body: Mapped[str] = mapped_column(Text, nullable=False)

    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    clicked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    replied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    unsubscribed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    bounced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
