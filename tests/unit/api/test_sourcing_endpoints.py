"""Tests for sourcing and outreach endpoints."""

import pytest

from database.models import MembershipRole, User

from conftest import auth_headers, create_recruiter, create_user


@pytest.fixture
async def recruiter_headers(db, marketplace):
    return auth_headers(await db.get(User, marketplace.recruiter.user_id))


@pytest.fixture
async def rival_headers(db):
    rival = await create_recruiter(db, name="Rory Rival")
    return auth_headers(await db.get(User, rival.user_id))


class TestSourcingEndpoints:
    async def test_source_and_read(self, api_client, marketplace, recruiter_headers):
        candidate_id = marketplace.candidate.id

        created = await api_client.post(
            f"/api/v1/sourcing/candidates/{candidate_id}",
            json={"notes": "Met at meetup", "protection_window_days": 180},
            headers=recruiter_headers,
        )
        fetched = await api_client.get(
            f"/api/v1/sourcing/candidates/{candidate_id}", headers=recruiter_headers
        )

        assert created.status_code == 201
        assert created.json()["sourcer_user_id"] == str(marketplace.recruiter.user_id)
        assert created.json()["protection_window_days"] == 180
        assert fetched.json()["sourcer"]["id"] == created.json()["id"]

    async def test_rival_blocked_with_409(
        self, api_client, marketplace, recruiter_headers, rival_headers
    ):
        path = f"/api/v1/sourcing/candidates/{marketplace.candidate.id}"
        await api_client.post(path, json={}, headers=recruiter_headers)

        response = await api_client.post(path, json={}, headers=rival_headers)
        access = await api_client.get(f"{path}/access", headers=rival_headers)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CANDIDATE_PROTECTED"
        assert access.json()["can_work"] is False

    async def test_sourcing_for_another_user_needs_recruiter_manage(
        self, api_client, db, marketplace, rival_headers
    ):
        response = await api_client.post(
            f"/api/v1/sourcing/candidates/{marketplace.candidate.id}",
            json={"sourcer_user_id": str(marketplace.recruiter.user_id)},
            headers=rival_headers,
        )
        assert response.status_code == 403

    async def test_hiring_manager_cannot_source(self, api_client, db, marketplace):
        manager = await create_user(db, MembershipRole.HIRING_MANAGER)

        response = await api_client.post(
            f"/api/v1/sourcing/candidates/{marketplace.candidate.id}",
            json={},
            headers=auth_headers(manager),
        )
        assert response.status_code == 403

    async def test_unsourced_candidate(self, api_client, marketplace, recruiter_headers):
        response = await api_client.get(
            f"/api/v1/sourcing/candidates/{marketplace.candidate.id}", headers=recruiter_headers
        )
        assert response.json() == {"candidate_id": str(marketplace.candidate.id), "sourcer": None}


class TestOutreachEndpoints:
    async def test_outreach_lifecycle(self, api_client, marketplace, recruiter_headers):
        created = await api_client.post(
            "/api/v1/sourcing/outreach",
            json={
                "candidate_id": str(marketplace.candidate.id),
                "job_id": str(marketplace.job.id),
                "email_subject": "Senior Engineer at Acme",
                "email_body": "Open to a chat?",
            },
            headers=recruiter_headers,
        )
        outreach_id = created.json()["id"]
        updated = await api_client.patch(
            f"/api/v1/sourcing/outreach/{outreach_id}",
            json={"replied_at": "2026-01-05T10:00:00+00:00"},
            headers=recruiter_headers,
        )
        listed = await api_client.get(
            "/api/v1/sourcing/outreach",
            params={"candidate_id": str(marketplace.candidate.id)},
            headers=recruiter_headers,
        )
        sourcer = await api_client.get(
            f"/api/v1/sourcing/candidates/{marketplace.candidate.id}", headers=recruiter_headers
        )

        assert created.status_code == 201
        assert updated.status_code == 200
        assert updated.json()["replied_at"].startswith("2026-01-05T10:00:00")
        assert listed.json()["total"] == 1
        assert sourcer.json()["sourcer"]["sourcer_user_id"] == str(marketplace.recruiter.user_id)

    async def test_rival_outreach_conflicts(
        self, api_client, marketplace, recruiter_headers, rival_headers
    ):
        body = {
            "candidate_id": str(marketplace.candidate.id),
            "email_subject": "Hello",
            "email_body": "Open to a chat?",
        }
        await api_client.post("/api/v1/sourcing/outreach", json=body, headers=recruiter_headers)

        response = await api_client.post("/api/v1/sourcing/outreach", json=body, headers=rival_headers)
        assert response.status_code == 409


class TestProposalProtection:
    async def test_proposal_for_rival_conflicts(self, api_client, db, admin, marketplace, recruiter_headers):
        rival = await create_recruiter(db, name="Rory Rival")
        await api_client.post(
            f"/api/v1/sourcing/candidates/{marketplace.candidate.id}",
            json={},
            headers=recruiter_headers,
        )

        response = await api_client.post(
            "/api/v1/proposals",
            json={
                "job_id": str(marketplace.job.id),
                "candidate_id": str(marketplace.candidate.id),
                "recruiter_id": str(rival.id),
            },
            headers=auth_headers(admin),
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CANDIDATE_PROTECTED"
