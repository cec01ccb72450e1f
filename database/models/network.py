"""
Network Module

Recruiter profiles, job role assignments and reputation snapshots.
"""

import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    ForeignKey,
    Integer,
    DateTime,
    Float,
    Text,
    Uuid,
    Enum as SQLEnum,
    UniqueConstraint,
)

from database.engine import Base
from core.utils.datetime import now


# ==================== Enums ===================== #
class RecruiterStatus(str, PyEnum):
    """Onboarding status of a recruiter."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


# ==================== Recruiter Model ===================== #
class Recruiter(Base):
    """
    Recruiter profile attached to a user.

    stripe_connect_account_id is the destination for payout transfers.
    """

    __tablename__ = "recruiters"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    status: Mapped[RecruiterStatus] = mapped_column(
        SQLEnum(RecruiterStatus, native_enum=False, length=50),
        nullable=False,
        default=RecruiterStatus.PENDING,
    )
    bio: Mapped[str | None] = mapped_column(Text)
    stripe_connect_account_id: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )


# ==================== RoleAssignment Model ===================== #
class RoleAssignment(Base):
    """Recruiter assigned to work a job."""

    __tablename__ = "role_assignments"
    __table_args__ = (
        UniqueConstraint("job_id", "recruiter_id", name="uq_role_assignment_job_recruiter"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recruiter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("recruiters.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )


# ==================== RecruiterReputation Model ===================== #
class RecruiterReputation(Base):
    """Derived reputation metrics, recalculated on demand."""

    __tablename__ = "recruiter_reputation"

    recruiter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("recruiters.id", ondelete="CASCADE"), primary_key=True
    )

    total_submissions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_hires: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    hire_rate: Mapped[float | None] = mapped_column(Float)

    total_placements: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_placements: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_placements: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completion_rate: Mapped[float | None] = mapped_column(Float)

    total_collaborations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    proposals_accepted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    proposals_declined: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    proposals_timed_out: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    reputation_score: Mapped[float] = mapped_column(Float, default=50.0, nullable=False)  # 0-100
    last_calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )
