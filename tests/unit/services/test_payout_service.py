"""
Tests for payout creation, processing through Stripe Connect, holds and the
audit trail.
"""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
import stripe
from sqlalchemy import select

from api.services import payouts as payout_service
from api.services import placements as placement_service
from core.exceptions import InvalidStateError, PayoutTransferError, ValidationError
from core.integrations.stripe_connect import StripeTransferClient
from core.utils.datetime import now
from database.models import Payout, PayoutStatus
from database.models.events import DomainEventRecord

from conftest import create_recruiter


@pytest.fixture
async def placement(db, marketplace):
    # fee 2,400,000 cents; placement recruiter share 60%
    return await placement_service.create_placement(
        db,
        application_id=marketplace.application.id,
        salary=12_000_000,
        recruiter_share_percentage=60,
    )


@pytest.fixture
async def payout(db, marketplace, placement):
    return await payout_service.create_payout(
        db, uuid.UUID(placement["id"]), marketplace.recruiter.id
    )


class TestCreatePayout:
    async def test_defaults_to_placement_recruiter_share(self, payout):
        assert payout["status"] == "pending"
        assert payout["placement_fee"] == 2_400_000
        assert payout["recruiter_share_percentage"] == 60.0
        assert payout["payout_amount"] == 1_440_000
        assert payout["attempts"] == 0

    async def test_collaborator_split_used_for_collaborator(self, db, placement):
        collaborator = await create_recruiter(db, name="Sam Sourcer")
        await placement_service.add_collaborator(
            db, uuid.UUID(placement["id"]), collaborator.user_id, "sourcer", 25
        )

        created = await payout_service.create_payout(
            db, uuid.UUID(placement["id"]), collaborator.id
        )
        assert created["recruiter_share_percentage"] == 25.0
        assert created["payout_amount"] == 600_000

    async def test_unrelated_recruiter_needs_explicit_share(self, db, placement):
        outsider = await create_recruiter(db, name="Olly Outsider")

        with pytest.raises(ValidationError):
            await payout_service.create_payout(db, uuid.UUID(placement["id"]), outsider.id)

        created = await payout_service.create_payout(
            db, uuid.UUID(placement["id"]), outsider.id, share_percentage=10
        )
        assert created["payout_amount"] == 240_000

    async def test_one_payout_per_recruiter(self, db, marketplace, placement, payout):
        with pytest.raises(ValidationError):
            await payout_service.create_payout(
                db, uuid.UUID(placement["id"]), marketplace.recruiter.id
            )

    async def test_shares_cannot_exceed_100(self, db, placement, payout):
        other = await create_recruiter(db, name="Tia Toomuch")

        with pytest.raises(ValidationError):
            await payout_service.create_payout(
                db, uuid.UUID(placement["id"]), other.id, share_percentage=41
            )

    async def test_failed_placement_rejected(self, db, marketplace, placement):
        await placement_service.transition_placement(db, uuid.UUID(placement["id"]), "failed")

        with pytest.raises(InvalidStateError):
            await payout_service.create_payout(
                db, uuid.UUID(placement["id"]), marketplace.recruiter.id
            )

    async def test_unknown_placement(self, db, marketplace):
        with pytest.raises(ValidationError):
            await payout_service.create_payout(db, uuid.uuid4(), marketplace.recruiter.id)

    async def test_audit_and_event_written(self, db, payout):
        audit = await payout_service.get_audit_log(db, uuid.UUID(payout["id"]))
        assert [(e["event_type"], e["old_status"], e["new_status"]) for e in audit] == [
            ("payout.created", None, "pending"),
        ]
        events = (await db.execute(select(DomainEventRecord.event_type))).scalars().all()
        assert "payout.created" in events


class TestProcessPayout:
    """Test settlement through the transfer client."""

    async def test_success(self, db, marketplace, payout, transfer_client):
        processed = await payout_service.process_payout(db, uuid.UUID(payout["id"]), transfer_client)

        assert processed["status"] == "completed"
        assert processed["stripe_transfer_id"] == "tr_test_123"
        assert processed["attempts"] == 1
        assert processed["completed_at"] is not None

        kwargs = transfer_client.create_transfer.call_args.kwargs
        assert kwargs["amount"] == 1_440_000
        assert kwargs["destination"] == "acct_test123"
        assert kwargs["idempotency_key"] == f"payout-{payout['id']}-1"

    async def test_audit_trail_of_success(self, db, payout, transfer_client):
        payout_id = uuid.UUID(payout["id"])
        await payout_service.process_payout(db, payout_id, transfer_client)

        audit = await payout_service.get_audit_log(db, payout_id)
        assert [e["new_status"] for e in audit] == ["pending", "processing", "completed"]

    async def test_transfer_failure_marks_failed(self, db, payout, transfer_client):
        transfer_client.create_transfer.side_effect = PayoutTransferError("Insufficient funds")

        with pytest.raises(PayoutTransferError):
            await payout_service.process_payout(db, uuid.UUID(payout["id"]), transfer_client)

        failed = await payout_service.get_payout(db, uuid.UUID(payout["id"]))
        assert failed["status"] == "failed"
        assert failed["failure_reason"] == "Insufficient funds"
        assert failed["failed_at"] is not None

    async def test_unexpected_error_wrapped(self, db, payout, transfer_client):
        transfer_client.create_transfer.side_effect = TimeoutError("read timed out")

        with pytest.raises(PayoutTransferError) as exc_info:
            await payout_service.process_payout(db, uuid.UUID(payout["id"]), transfer_client)
        assert "read timed out" in exc_info.value.message

    async def test_missing_connect_account_fails(self, db, marketplace, payout, transfer_client):
        marketplace.recruiter.stripe_connect_account_id = None
        await db.commit()

        with pytest.raises(PayoutTransferError):
            await payout_service.process_payout(db, uuid.UUID(payout["id"]), transfer_client)

        transfer_client.create_transfer.assert_not_called()
        assert (await payout_service.get_payout(db, uuid.UUID(payout["id"])))["status"] == "failed"

    async def test_completed_payout_not_processed_again(self, db, payout, transfer_client):
        payout_id = uuid.UUID(payout["id"])
        await payout_service.process_payout(db, payout_id, transfer_client)

        with pytest.raises(InvalidStateError):
            await payout_service.process_payout(db, payout_id, transfer_client)
        assert transfer_client.create_transfer.call_count == 1

    async def test_retry_after_failure(self, db, payout, transfer_client):
        payout_id = uuid.UUID(payout["id"])
        transfer_client.create_transfer.side_effect = [
            PayoutTransferError("Account restricted"),
            "tr_retry_456",
        ]
        with pytest.raises(PayoutTransferError):
            await payout_service.process_payout(db, payout_id, transfer_client)

        retried = await payout_service.retry_payout(db, payout_id, transfer_client)

        assert retried["status"] == "completed"
        assert retried["attempts"] == 2
        assert retried["failure_reason"] is None
        keys = [c.kwargs["idempotency_key"] for c in transfer_client.create_transfer.call_args_list]
        assert keys == [f"payout-{payout_id}-1", f"payout-{payout_id}-2"]

    async def test_retry_requires_failed(self, db, payout, transfer_client):
        with pytest.raises(InvalidStateError):
            await payout_service.retry_payout(db, uuid.UUID(payout["id"]), transfer_client)


class TestHolds:
    async def test_hold_and_release(self, db, payout):
        payout_id = uuid.UUID(payout["id"])

        held = await payout_service.hold_payout(db, payout_id, "Disputed invoice")
        assert held["status"] == "on_hold"
        assert held["hold_reason"] == "Disputed invoice"

        released = await payout_service.release_payout(db, payout_id)
        assert released["status"] == "pending"
        assert released["hold_reason"] is None

    async def test_held_payout_cannot_be_processed(self, db, payout, transfer_client):
        payout_id = uuid.UUID(payout["id"])
        await payout_service.hold_payout(db, payout_id, "Disputed invoice")

        with pytest.raises(InvalidStateError):
            await payout_service.process_payout(db, payout_id, transfer_client)

    async def test_release_requires_hold(self, db, payout):
        with pytest.raises(InvalidStateError):
            await payout_service.release_payout(db, uuid.UUID(payout["id"]))

    async def test_completed_payout_cannot_be_held(self, db, payout, transfer_client):
        payout_id = uuid.UUID(payout["id"])
        await payout_service.process_payout(db, payout_id, transfer_client)

        with pytest.raises(InvalidStateError):
            await payout_service.hold_payout(db, payout_id, "Too late")


class TestBatchProcessing:
    async def test_processes_pending_and_counts_failures(self, db, placement, payout, transfer_client):
        other = await create_recruiter(db, name="Nina NoAccount", stripe_connect_account_id=None)
        second = await payout_service.create_payout(
            db, uuid.UUID(placement["id"]), other.id, share_percentage=10
        )
        held = await create_recruiter(db, name="Hal Held")
        third = await payout_service.create_payout(
            db, uuid.UUID(placement["id"]), held.id, share_percentage=5
        )
        await payout_service.hold_payout(db, uuid.UUID(third["id"]), "Pending review")

        summary = await payout_service.process_due_payouts(db, transfer_client)

        assert summary == {"processed": 2, "completed": 1, "failed": 1}
        statuses = {
            str(p.id): p.status
            for p in (await db.execute(select(Payout))).scalars().all()
        }
        assert statuses[payout["id"]] == PayoutStatus.COMPLETED
        assert statuses[second["id"]] == PayoutStatus.FAILED
        assert statuses[third["id"]] == PayoutStatus.ON_HOLD

    async def test_skips_payouts_scheduled_later(self, db, payout, transfer_client):
        payout_id = uuid.UUID(payout["id"])
        scheduled_for = now() + timedelta(days=90)
        await payout_service.schedule_payout(
            db, payout_id, scheduled_for, trigger_event="guarantee_completed"
        )

        summary = await payout_service.process_due_payouts(db, transfer_client)
        assert summary == {"processed": 0, "completed": 0, "failed": 0}
        transfer_client.create_transfer.assert_not_awaited()

        summary = await payout_service.process_due_payouts(
            db, transfer_client, reference=scheduled_for + timedelta(minutes=1)
        )
        assert summary == {"processed": 1, "completed": 1, "failed": 0}


class TestSchedulePayout:
    async def test_schedule_records_audit_and_event(self, db, payout):
        payout_id = uuid.UUID(payout["id"])
        scheduled = await payout_service.schedule_payout(
            db, payout_id, now() + timedelta(days=30), trigger_event="guarantee_completed"
        )

        assert scheduled["status"] == "pending"
        assert scheduled["scheduled_for"] is not None
        assert scheduled["trigger_event"] == "guarantee_completed"

        audit = await payout_service.get_audit_log(db, payout_id)
        assert "payout.scheduled" in [entry["event_type"] for entry in audit]
        events = (
            await db.execute(
                select(DomainEventRecord.event_type).where(
                    DomainEventRecord.event_type == "payout.scheduled"
                )
            )
        ).scalars().all()
        assert len(events) == 1

    async def test_created_with_schedule(self, db, placement):
        other = await create_recruiter(db, name="Sid Scheduled")
        created = await payout_service.create_payout(
            db,
            uuid.UUID(placement["id"]),
            other.id,
            share_percentage=10,
            scheduled_for=now() + timedelta(days=7),
            trigger_event="invoice_paid",
        )
        assert created["trigger_event"] == "invoice_paid"
        assert created["scheduled_for"] is not None

    async def test_past_time_rejected(self, db, payout):
        with pytest.raises(ValidationError):
            await payout_service.schedule_payout(
                db, uuid.UUID(payout["id"]), now() - timedelta(hours=1)
            )

    async def test_completed_payout_cannot_be_scheduled(self, db, payout, transfer_client):
        payout_id = uuid.UUID(payout["id"])
        await payout_service.process_payout(db, payout_id, transfer_client)

        with pytest.raises(InvalidStateError):
            await payout_service.schedule_payout(db, payout_id, now() + timedelta(days=1))


class TestStripeTransferClient:
    async def test_creates_transfer(self):
        client = StripeTransferClient(api_key="sk_test_x", currency="usd")

        with patch("core.integrations.stripe_connect.stripe.Transfer.create") as create:
            create.return_value = {"id": "tr_abc"}
            transfer_id = await client.create_transfer(
                amount=1_000,
                destination="acct_1",
                metadata={"payout_id": uuid.UUID(int=1)},
                idempotency_key="payout-1-1",
            )

        assert transfer_id == "tr_abc"
        kwargs = create.call_args.kwargs
        assert kwargs["metadata"] == {"payout_id": str(uuid.UUID(int=1))}
        assert kwargs["idempotency_key"] == "payout-1-1"

    async def test_stripe_error_becomes_transfer_error(self):
        client = StripeTransferClient(api_key="sk_test_x")

        with patch(
            "core.integrations.stripe_connect.stripe.Transfer.create",
            side_effect=stripe.InvalidRequestError("No such destination", param="destination"),
        ):
            with pytest.raises(PayoutTransferError):
                await client.create_transfer(1_000, "acct_missing", {})

    async def test_non_positive_amount_rejected(self):
        with pytest.raises(PayoutTransferError):
            await StripeTransferClient(api_key="sk_test_x").create_transfer(0, "acct_1", {})
