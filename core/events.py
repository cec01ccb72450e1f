"""
Domain events: envelope, transactional outbox and topic-exchange publishing.

Services call ``record_event`` inside the unit of work that changes state, so
the event row commits (or rolls back) together with the change. A worker then
calls ``relay_pending_events`` to push committed rows to the broker.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from kombu import Connection, Exchange
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.utils.datetime import now, as_utc
from database.models.events import DomainEventRecord

logger = logging.getLogger(__name__)

EVENT_VERSION = 1


def routing_key_for(event_type: str) -> str:
    """Routing key is the event type with every dot replaced by an underscore."""
    return event_type.replace(".", "_")


class DomainEvent(BaseModel):
    """Event envelope as published to the exchange."""

    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=now)
    version: int = EVENT_VERSION
    source_service: str = Field(default_factory=lambda: settings.service_name)

    @property
    def routing_key(self) -> str:
        return routing_key_for(self.event_type)

    @classmethod
    def from_record(cls, record: DomainEventRecord) -> "DomainEvent":
        return cls(
            event_id=record.id,
            event_type=record.event_type,
            payload=record.payload,
            timestamp=as_utc(record.occurred_at),
            version=record.version,
            source_service=record.source_service,
        )

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def record_event(
    db: AsyncSession,
    event_type: str,
    payload: dict[str, Any],
    version: int = EVENT_VERSION,
) -> DomainEventRecord:
    """
    Add an event to the outbox in the caller's transaction.

    Does not flush or commit; the caller's commit makes the event durable.
    """
    record = DomainEventRecord(
        id=uuid.uuid4(),
        event_type=event_type,
        routing_key=routing_key_for(event_type),
        payload=jsonable_encoder(payload),
        version=version,
        source_service=settings.service_name,
        occurred_at=now(),
    )
    db.add(record)
    logger.debug(f"Recorded event {event_type} ({record.id})")
    return record


class EventPublisher:
    """Publishes event envelopes to the durable topic exchange."""

    def __init__(
        self,
        broker_url: Optional[str] = None,
        exchange_name: Optional[str] = None,
    ):
        self.broker_url = broker_url or settings.event_broker_url
        self.exchange = Exchange(
            exchange_name or settings.event_exchange, type="topic", durable=True
        )

    def publish(self, event: DomainEvent) -> None:
        with Connection(self.broker_url) as conn:
            producer = conn.Producer(serializer="json")
            producer.publish(
                event.to_message(),
                exchange=self.exchange,
                routing_key=event.routing_key,
                declare=[self.exchange],
                message_id=str(event.event_id),
                content_type="application/json",
                delivery_mode=2,
                retry=True,
                retry_policy={"max_retries": 3, "interval_start": 0, "interval_step": 1},
            )
        logger.info(
            f"Published event {event.event_type} ({event.event_id}) "
            f"with routing key {event.routing_key}"
        )


async def relay_pending_events(
    db: AsyncSession,
    publisher: EventPublisher,
    batch_size: int = 100,
) -> dict[str, int]:
    """
    Publish unpublished outbox rows in occurrence order.

    Stops at the first broker failure so later events are never delivered
    ahead of an earlier one; the failed row keeps its error for the next run.

    Returns:
        Counts of published and failed events
    """
    result = await db.execute(
        select(DomainEventRecord)
        .where(DomainEventRecord.published_at.is_(None))
        .order_by(DomainEventRecord.occurred_at, DomainEventRecord.id)
        .limit(batch_size)
        .with_for_update(skip_locked=True)
    )
    records = result.scalars().all()

    published = 0
    failed = 0
    for record in records:
        event = DomainEvent.from_record(record)
        try:
            await asyncio.to_thread(publisher.publish, event)
        except Exception as e:
            record.attempts += 1
            record.last_error = str(e)[:2000]
            failed += 1
            logger.error(
                f"Failed to publish event {record.event_type} ({record.id}): {e}"
            )
            break
        record.published_at = now()
        record.attempts += 1
        record.last_error = None
        published += 1

    await db.commit()
    return {"published": published, "failed": failed, "pending": len(records) - published}
