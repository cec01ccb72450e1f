"""
Domain event outbox.

Events are inserted in the same transaction as the state change that caused
them and relayed to the message broker afterwards by a worker task.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, Text, JSON, Uuid, Index

from database.engine import Base
from core.utils.datetime import now


class DomainEventRecord(Base):
    """Outbox row for a single domain event."""

    __tablename__ = "domain_event_outbox"
    __table_args__ = (
        Index("ix_outbox_unpublished", "published_at", "occurred_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    routing_key: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source_service: Mapped[str] = mapped_column(String(100), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<DomainEventRecord(id={self.id}, event_type={self.event_type})>"
