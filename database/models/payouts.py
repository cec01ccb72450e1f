"""
Payouts Module

Recruiter payouts for placements, settled by Stripe Connect transfers, with an
append-only audit log of every status change.
"""

import uuid
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    ForeignKey,
    BigInteger,
    Integer,
    DateTime,
    Float,
    Text,
    JSON,
    Uuid,
    Enum as SQLEnum,
    Index,
)

from database.engine import Base
from core.utils.datetime import now


# ==================== Enums ===================== #
class PayoutStatus(str, PyEnum):
    """Status of a payout."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ON_HOLD = "on_hold"


# Allowed transitions; anything not listed is rejected
PAYOUT_TRANSITIONS: dict[PayoutStatus, frozenset[PayoutStatus]] = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.PROCESSING, PayoutStatus.ON_HOLD}),
    PayoutStatus.ON_HOLD: frozenset({PayoutStatus.PENDING}),
    PayoutStatus.PROCESSING: frozenset({PayoutStatus.COMPLETED, PayoutStatus.FAILED}),
    PayoutStatus.FAILED: frozenset({PayoutStatus.PROCESSING}),
    PayoutStatus.COMPLETED: frozenset(),
}


# ==================== Payout Model ===================== #
class Payout(Base):
    """Amount owed to one recruiter for one placement."""

    __tablename__ = "payouts"
    __table_args__ = (Index("ix_payouts_status_created", "status", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    placement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("placements.id"), nullable=False, index=True
    )
    recruiter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("recruiters.id"), nullable=False, index=True
    )

    placement_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)  # In cents
    recruiter_share_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    payout_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # In cents

    status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus, native_enum=False, length=50),
        nullable=False,
        default=PayoutStatus.PENDING,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stripe_transfer_id: Mapped[str | None] = mapped_column(String(255))
    hold_reason: Mapped[str | None] = mapped_column(Text)
    failure_reason: Mapped[str | None] = mapped_column(Text)

    # Not picked up by batch processing before this time
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    trigger_event: Mapped[str | None] = mapped_column(String(100))

    processing_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )

    def __repr__(self) -> str:
        return f"<Payout(id={self.id}, status={self.status}, amount={self.payout_amount})>"


# ==================== PayoutAuditLog Model ===================== #
class PayoutAuditLog(Base):
    """One row per payout status change or notable event."""

    __tablename__ = "payout_audit_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    payout_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payouts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(50))
    new_status: Mapped[str | None] = mapped_column(String(50))
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
