"""
Tests for candidate sourcing protection and outreach.
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from api.services import applications as application_service
from api.services import placements as placement_service
from api.services import proposals as proposal_service
from api.services import sourcing as sourcing_service
from core.exceptions import CandidateProtectedError, NotFoundError, ValidationError
from core.utils.datetime import now
from database.models import CandidateSourcer
from database.models.events import DomainEventRecord

from conftest import create_candidate, create_job, create_recruiter


async def _expire_protection(db, candidate_id):
    sourcer = (
        await db.execute(
            select(CandidateSourcer).where(CandidateSourcer.candidate_id == candidate_id)
        )
    ).scalar_one()
    sourcer.protection_expires_at = now() - timedelta(days=1)
    await db.commit()


@pytest.fixture
async def rival(db):
    return await create_recruiter(db, name="Rory Rival")


class TestSourceCandidate:
    async def test_first_sourcer_is_protected(self, db, marketplace):
        sourced = await sourcing_service.source_candidate(
            db, marketplace.candidate.id, marketplace.recruiter.user_id, notes="LinkedIn"
        )

        assert sourced["sourcer_user_id"] == str(marketplace.recruiter.user_id)
        assert sourced["sourcer_type"] == "recruiter"
        assert sourced["protection_window_days"] == 365
        assert sourced["is_protected"] is True

        events = (await db.execute(select(DomainEventRecord.event_type))).scalars().all()
        assert "candidate.sourced" in events

    async def test_second_sourcer_rejected_while_protected(self, db, marketplace, rival):
        await sourcing_service.source_candidate(
            db, marketplace.candidate.id, marketplace.recruiter.user_id
        )

        with pytest.raises(CandidateProtectedError) as exc_info:
            await sourcing_service.source_candidate(db, marketplace.candidate.id, rival.user_id)
        assert exc_info.value.details["sourcer_user_id"] == str(marketplace.recruiter.user_id)

    async def test_resourcing_after_protection_expires(self, db, marketplace, rival):
        await sourcing_service.source_candidate(
            db, marketplace.candidate.id, marketplace.recruiter.user_id
        )
        await _expire_protection(db, marketplace.candidate.id)

        sourced = await sourcing_service.source_candidate(
            db, marketplace.candidate.id, rival.user_id, protection_window_days=30
        )

        assert sourced["sourcer_user_id"] == str(rival.user_id)
        current = await sourcing_service.get_candidate_sourcer(db, marketplace.candidate.id)
        assert current["id"] == sourced["id"]

    async def test_invalid_input(self, db, marketplace):
        with pytest.raises(ValidationError):
            await sourcing_service.source_candidate(
                db, marketplace.candidate.id, marketplace.recruiter.user_id, sourcer_type="bot"
            )
        with pytest.raises(ValidationError):
            await sourcing_service.source_candidate(
                db, marketplace.candidate.id, marketplace.recruiter.user_id,
                protection_window_days=0,
            )
        with pytest.raises(ValidationError):
            await sourcing_service.source_candidate(db, uuid.uuid4(), marketplace.recruiter.user_id)

    async def test_unsourced_candidate_has_no_sourcer(self, db, marketplace):
        assert await sourcing_service.get_candidate_sourcer(db, marketplace.candidate.id) is None

        with pytest.raises(NotFoundError):
            await sourcing_service.get_candidate_sourcer(db, uuid.uuid4())


class TestCanWorkWithCandidate:
    async def test_open_candidate(self, db, marketplace, rival):
        assert await sourcing_service.can_user_work_with_candidate(
            db, marketplace.candidate.id, rival.user_id
        )

    async def test_only_sourcer_while_protected(self, db, marketplace, rival):
        await sourcing_service.source_candidate(
            db, marketplace.candidate.id, marketplace.recruiter.user_id
        )

        assert await sourcing_service.can_user_work_with_candidate(
            db, marketplace.candidate.id, marketplace.recruiter.user_id
        )
        assert not await sourcing_service.can_user_work_with_candidate(
            db, marketplace.candidate.id, rival.user_id
        )

        await _expire_protection(db, marketplace.candidate.id)
        assert await sourcing_service.can_user_work_with_candidate(
            db, marketplace.candidate.id, rival.user_id
        )


class TestProtectionEnforcement:
    @pytest.fixture(autouse=True)
    async def sourced(self, db, marketplace):
        await sourcing_service.source_candidate(
            db, marketplace.candidate.id, marketplace.recruiter.user_id
        )

    async def test_proposal_for_rival_rejected(self, db, marketplace, rival):
        with pytest.raises(CandidateProtectedError):
            await proposal_service.create_proposal(
                db,
                job_id=marketplace.job.id,
                candidate_id=marketplace.candidate.id,
                recruiter_id=rival.id,
            )

    async def test_proposal_for_sourcer_allowed(self, db, marketplace):
        proposal = await proposal_service.create_proposal(
            db,
            job_id=marketplace.job.id,
            candidate_id=marketplace.candidate.id,
            recruiter_id=marketplace.recruiter.id,
        )
        assert proposal["state"] == "proposed"

    async def test_application_by_rival_rejected(self, db, marketplace, rival):
        other_job = await create_job(db, title="Staff Engineer")

        with pytest.raises(CandidateProtectedError):
            await application_service.create_application(
                db, other_job.id, marketplace.candidate.id, recruiter_id=rival.id
            )

    async def test_direct_application_allowed(self, db, marketplace):
        other_job = await create_job(db, title="Staff Engineer")

        application = await application_service.create_application(
            db, other_job.id, marketplace.candidate.id
        )
        assert application["recruiter_id"] is None

    async def test_sourcer_role_reserved(self, db, marketplace, rival):
        placement = await placement_service.create_placement(
            db, application_id=marketplace.application.id, salary=12_000_000
        )
        placement_id = uuid.UUID(placement["id"])

        with pytest.raises(CandidateProtectedError):
            await placement_service.add_collaborator(
                db, placement_id, rival.user_id, "sourcer", 20
            )

        updated = await placement_service.add_collaborator(
            db, placement_id, rival.user_id, "support", 10
        )
        assert [c["role"] for c in updated["collaborators"]] == ["support"]


class TestOutreach:
    async def test_first_outreach_sources_candidate(self, db, marketplace):
        outreach = await sourcing_service.record_outreach(
            db,
            marketplace.candidate.id,
            marketplace.recruiter.user_id,
            email_subject="Senior Engineer at Acme",
            email_body="Hi Casey, are you open to a chat?",
            job_id=marketplace.job.id,
        )

        assert outreach["bounced"] is False
        assert outreach["opened_at"] is None
        sourcer = await sourcing_service.get_candidate_sourcer(db, marketplace.candidate.id)
        assert sourcer["sourcer_user_id"] == str(marketplace.recruiter.user_id)
        assert sourcer["notes"] == "First outreach"

        events = (await db.execute(select(DomainEventRecord.event_type))).scalars().all()
        assert "candidate.outreach_sent" in events

    async def test_sourcer_can_follow_up(self, db, marketplace):
        for subject in ("Intro", "Follow up"):
            await sourcing_service.record_outreach(
                db, marketplace.candidate.id, marketplace.recruiter.user_id, subject, "Body"
            )

        listed = await sourcing_service.list_outreach(db, candidate_id=marketplace.candidate.id)
        assert listed["total"] == 2
        sourcers = (await db.execute(select(CandidateSourcer))).scalars().all()
        assert len(sourcers) == 1

    async def test_rival_outreach_rejected(self, db, marketplace, rival):
        await sourcing_service.record_outreach(
            db, marketplace.candidate.id, marketplace.recruiter.user_id, "Intro", "Body"
        )

        with pytest.raises(CandidateProtectedError):
            await sourcing_service.record_outreach(
                db, marketplace.candidate.id, rival.user_id, "Intro", "Body"
            )

    async def test_engagement_update(self, db, marketplace):
        outreach = await sourcing_service.record_outreach(
            db, marketplace.candidate.id, marketplace.recruiter.user_id, "Intro", "Body"
        )
        opened_at = now()

        updated = await sourcing_service.update_outreach_engagement(
            db, uuid.UUID(outreach["id"]), {"opened_at": opened_at, "bounced": True}
        )

        assert updated["opened_at"] is not None
        assert updated["replied_at"] is None
        assert updated["bounced"] is True

    async def test_engagement_rejects_unknown_fields(self, db, marketplace):
        outreach = await sourcing_service.record_outreach(
            db, marketplace.candidate.id, marketplace.recruiter.user_id, "Intro", "Body"
        )

        with pytest.raises(ValidationError):
            await sourcing_service.update_outreach_engagement(
                db, uuid.UUID(outreach["id"]), {"forwarded_at": now()}
            )
        with pytest.raises(NotFoundError):
            await sourcing_service.update_outreach_engagement(db, uuid.uuid4(), {})

    async def test_list_filters_by_sender(self, db, marketplace):
        second = await create_candidate(db, full_name="Drew Developer")
        await sourcing_service.record_outreach(
            db, marketplace.candidate.id, marketplace.recruiter.user_id, "Intro", "Body"
        )
        rival = await create_recruiter(db, name="Rory Rival")
        await sourcing_service.record_outreach(db, second.id, rival.user_id, "Intro", "Body")

        listed = await sourcing_service.list_outreach(db, recruiter_user_id=rival.user_id)
        assert listed["total"] == 1
        assert listed["outreach"][0]["candidate_id"] == str(second.id)
