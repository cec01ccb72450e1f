"""
Placements Module

Confirmed hires and the collaborators who share the placement fee.
"""

import uuid
from datetime import datetime, date
from enum import Enum as PyEnum

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    ForeignKey,
    BigInteger,
    Integer,
    Date,
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
class PlacementState(str, PyEnum):
    """Lifecycle state of a placement."""

    HIRED = "hired"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class CollaboratorRole(str, PyEnum):
    """Role a collaborating recruiter played on a placement."""

    SOURCER = "sourcer"
    SUBMITTER = "submitter"
    CLOSER = "closer"
    SUPPORT = "support"


# ==================== Placement Model ===================== #
class Placement(Base):
    """
    Confirmed hire. The fee columns are computed once at creation:
    fee_amount = round(salary * fee_percentage / 100), and
    recruiter_share_amount never exceeds fee_amount.
    """

    __tablename__ = "placements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.id"), nullable=False, index=True
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("candidates.id"), nullable=False, index=True
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id"), nullable=False, index=True
    )
    recruiter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("recruiters.id"), nullable=False, index=True
    )
    application_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("applications.id"), unique=True
    )

    # Fee
    salary: Mapped[int] = mapped_column(BigInteger, nullable=False)  # In cents
    fee_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    fee_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # In cents
    recruiter_share_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    recruiter_share_amount: Mapped[int] = mapped_column(
        BigInteger, nullable=False
    )  # In cents
    platform_share_amount: Mapped[int] = mapped_column(
        BigInteger, nullable=False
    )  # In cents

    # Lifecycle
    state: Mapped[PlacementState] = mapped_column(
        SQLEnum(PlacementState, native_enum=False, length=50),
        nullable=False,
        default=PlacementState.HIRED,
    )
    hired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    guarantee_days: Mapped[int] = mapped_column(Integer, nullable=False, default=90)
    guarantee_expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    failure_reason: Mapped[str | None] = mapped_column(Text)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    replacement_requested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    replacement_placement_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("placements.id", ondelete="SET NULL")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )

    def __repr__(self) -> str:
        return f"<Placement(id={self.id}, state={self.state}, fee_amount={self.fee_amount})>"


# ==================== PlacementCollaborator Model ===================== #
class PlacementCollaborator(Base):
    """Recruiter sharing in a placement fee."""

    __tablename__ = "placement_collaborators"
    __table_args__ = (
        UniqueConstraint(
            "placement_id", "recruiter_user_id", name="uq_collaborator_placement_user"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    placement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("placements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    recruiter_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    role: Mapped[CollaboratorRole] = mapped_column(
        SQLEnum(CollaboratorRole, native_enum=False, length=50), nullable=False
    )
    split_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    split_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # In cents
    notes: Mapped[str | None] = mapped_column(String(1000))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
