"""
Applications Module

A candidate's application to a job, optionally represented by a recruiter.
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
class ApplicationStage(str, PyEnum):
    """Pipeline stage of an application."""

    SUBMITTED = "submitted"
    SCREEN = "screen"
    INTERVIEW = "interview"
    OFFER = "offer"
    HIRED = "hired"
    REJECTED = "rejected"


# ==================== Application Model ===================== #
class Application(Base):
    """Candidate application to a job."""

    __tablename__ = "applications"
    __table_args__ = (
        Index("ix_applications_job_candidate", "job_id", "candidate_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("candidates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    recruiter_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("recruiters.id", ondelete="SET NULL"), index=True
    )
    stage: Mapped[ApplicationStage] = mapped_column(
        SQLEnum(ApplicationStage, native_enum=False, length=50),
        nullable=False,
        default=ApplicationStage.SUBMITTED,
    )
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )
