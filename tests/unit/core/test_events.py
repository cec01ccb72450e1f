"""
Tests for domain events and the transactional outbox relay.
"""

import uuid
from unittest.mock import Mock, patch

import pytest
from sqlalchemy import select

from core.events import (
    DomainEvent,
    EventPublisher,
    record_event,
    relay_pending_events,
    routing_key_for,
)
from database.models.events import DomainEventRecord


class TestRoutingKeys:
    @pytest.mark.parametrize("event_type,expected", [
        ("proposal.created", "proposal_created"),
        ("payout.on_hold", "payout_on_hold"),
        ("placement.replacement_requested", "placement_replacement_requested"),
        ("plain", "plain"),
    ])
    def test_dots_become_underscores(self, event_type, expected):
        assert routing_key_for(event_type) == expected


class TestDomainEvent:
    def test_envelope_defaults(self):
        event = DomainEvent(event_type="job.created", payload={"job_id": "j1"})

        assert event.version == 1
        assert event.source_service == "splits-network-api"
        assert event.routing_key == "job_created"
        assert event.timestamp.tzinfo is not None

    def test_to_message_is_json_safe(self):
        event_id = uuid.uuid4()
        message = DomainEvent(
            event_id=event_id, event_type="job.created", payload={"n": 1}
        ).to_message()

        assert message["event_id"] == str(event_id)
        assert isinstance(message["timestamp"], str)
        assert message["payload"] == {"n": 1}


class TestRecordEvent:
    async def test_event_commits_with_caller_transaction(self, db):
        proposal_id = uuid.uuid4()
        record = record_event(db, "proposal.created", {"proposal_id": proposal_id})
        await db.commit()

        stored = (await db.execute(select(DomainEventRecord))).scalars().all()
        assert [r.id for r in stored] == [record.id]
        assert stored[0].routing_key == "proposal_created"
        assert stored[0].payload == {"proposal_id": str(proposal_id)}
        assert stored[0].published_at is None

    async def test_rollback_discards_event(self, db):
        record_event(db, "proposal.created", {"proposal_id": "p1"})
        await db.rollback()

        stored = (await db.execute(select(DomainEventRecord))).scalars().all()
        assert stored == []

    async def test_from_record_round_trips_identity(self, db):
        record = record_event(db, "payout.completed", {"payout_id": "p1"})
        await db.commit()

        event = DomainEvent.from_record(record)
        assert event.event_id == record.id
        assert event.event_type == "payout.completed"
        assert event.payload == {"payout_id": "p1"}


class TestRelay:
    """Test publishing pending outbox rows."""

    async def test_publishes_in_order_and_marks_published(self, db):
        for i in range(3):
            record_event(db, "job.created", {"sequence": i})
        await db.commit()

        publisher = Mock()
        result = await relay_pending_events(db, publisher, batch_size=10)

        assert result == {"published": 3, "failed": 0, "pending": 0}
        sequences = [call.args[0].payload["sequence"] for call in publisher.publish.call_args_list]
        assert sequences == [0, 1, 2]

        rows = (await db.execute(select(DomainEventRecord))).scalars().all()
        assert all(row.published_at is not None for row in rows)
        assert all(row.attempts == 1 for row in rows)

    async def test_stops_at_first_failure(self, db):
        for i in range(3):
            record_event(db, "job.created", {"sequence": i})
        await db.commit()

        publisher = Mock()
        publisher.publish.side_effect = [None, ConnectionError("broker down"), None]
        result = await relay_pending_events(db, publisher)

        assert result == {"published": 1, "failed": 1, "pending": 2}
        assert publisher.publish.call_count == 2

        rows = (
            await db.execute(select(DomainEventRecord).where(DomainEventRecord.published_at.is_(None)))
        ).scalars().all()
        assert len(rows) == 2
        failed = [row for row in rows if row.last_error]
        assert len(failed) == 1
        assert "broker down" in failed[0].last_error

    async def test_published_rows_are_not_sent_again(self, db):
        record_event(db, "job.created", {})
        await db.commit()
        publisher = Mock()

        await relay_pending_events(db, publisher)
        second = await relay_pending_events(db, publisher)

        assert second == {"published": 0, "failed": 0, "pending": 0}
        assert publisher.publish.call_count == 1

    async def test_batch_size_limits_work(self, db):
        for i in range(5):
            record_event(db, "job.created", {"sequence": i})
        await db.commit()

        result = await relay_pending_events(db, Mock(), batch_size=2)
        assert result["published"] == 2


class TestEventPublisher:
    def test_publishes_to_topic_exchange_with_routing_key(self):
        publisher = EventPublisher(broker_url="memory://", exchange_name="test-events")
        event = DomainEvent(event_type="placement.created", payload={"placement_id": "p1"})

        with patch("core.events.Connection") as connection_cls:
            conn = connection_cls.return_value.__enter__.return_value
            publisher.publish(event)

        producer = conn.Producer.return_value
        kwargs = producer.publish.call_args.kwargs
        assert kwargs["routing_key"] == "placement_created"
        assert kwargs["exchange"].name == "test-events"
        assert kwargs["exchange"].type == "topic"
        assert kwargs["message_id"] == str(event.event_id)
        assert producer.publish.call_args.args[0]["event_type"] == "placement.created"
