"""
Billing Module

Recruiter subscription plans and the subscriptions that Stripe keeps in sync
through webhooks.
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
    DateTime,
    JSON,
    Uuid,
    Enum as SQLEnum,
)

from database.engine import Base
from core.utils.datetime import now


# ==================== Enums ===================== #
class SubscriptionStatus(str, PyEnum):
    """Subscription status as reported by Stripe."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


ACTIVE_SUBSCRIPTION_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})


# ==================== Plan Model ===================== #
class Plan(Base):
    """Recruiter subscription plan."""

    __tablename__ = "plans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    price_monthly: Mapped[int] = mapped_column(BigInteger, nullable=False)  # In cents
    stripe_price_id: Mapped[str | None] = mapped_column(String(255))
    features: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )

    def __repr__(self) -> str:
        return f"<Plan(id={self.id}, name={self.name})>"


# ==================== Subscription Model ===================== #
class Subscription(Base):
    """A recruiter's subscription to a plan."""

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recruiter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("recruiters.id"), nullable=False, index=True
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("plans.id"), nullable=False
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        SQLEnum(SubscriptionStatus, native_enum=False, length=50),
        nullable=False,
        default=SubscriptionStatus.TRIALING,
    )
    current_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancel_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, recruiter={self.recruiter_id}, status={self.status})>"
