"""
Identity Module

Users, organizations and memberships. Membership roles drive permissions.
"""

import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    DateTime,
    Uuid,
    Enum as SQLEnum,
    UniqueConstraint,
)

from database.engine import Base
from core.utils.datetime import now


# ==================== Enums ===================== #
class OrganizationType(str, PyEnum):
    """Kind of organization."""

    COMPANY = "company"
    PLATFORM = "platform"


class MembershipRole(str, PyEnum):
    """Role a user holds inside an organization."""

    RECRUITER = "recruiter"
    COMPANY_ADMIN = "company_admin"
    HIRING_MANAGER = "hiring_manager"
    PLATFORM_ADMIN = "platform_admin"


# ==================== User Model ===================== #
class User(Base):
    """
    Platform user, identified externally by their Clerk user id.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    clerk_user_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )

    # Relationships
    memberships: Mapped[list["Membership"]] = relationship(
        "Membership", back_populates="user", lazy="selectin"
    )

    @property
    def roles(self) -> set[MembershipRole]:
        return {membership.role for membership in self.memberships}

    def __repr__(self) -> str:
        return f"<User(id={self.id}, clerk_user_id={self.clerk_user_id})>"


# ==================== Organization Model ===================== #
class Organization(Base):
    """Company or platform organization."""

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[OrganizationType] = mapped_column(
        SQLEnum(OrganizationType, native_enum=False, length=50),
        nullable=False,
        default=OrganizationType.COMPANY,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )


# ==================== Membership Model ===================== #
class Membership(Base):
    """A user's role within an organization."""

    __tablename__ = "memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_membership_user_org"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[MembershipRole] = mapped_column(
        SQLEnum(MembershipRole, native_enum=False, length=50), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )

    user: Mapped["User"] = relationship("User", back_populates="memberships")
