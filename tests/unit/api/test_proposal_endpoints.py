"""
Tests for proposal endpoints.
"""

import uuid

import pytest

from database.models import MembershipRole

from conftest import auth_headers, create_user


@pytest.fixture
def proposal_body(marketplace):
    return {
        "job_id": str(marketplace.job.id),
        "candidate_id": str(marketplace.candidate.id),
        "recruiter_id": str(marketplace.recruiter.id),
        "notes": "Strong backend background",
    }


class TestCreateProposal:
    async def test_create(self, api_client, admin, proposal_body):
        response = await api_client.post(
            "/api/v1/proposals", json=proposal_body, headers=auth_headers(admin)
        )

        assert response.status_code == 201
        data = response.json()
        assert data["state"] == "proposed"
        assert data["is_overdue"] is False
        assert 167 < data["hours_remaining"] <= 168

    async def test_duplicate_open_proposal(self, api_client, admin, proposal_body):
        headers = auth_headers(admin)
        await api_client.post("/api/v1/proposals", json=proposal_body, headers=headers)

        response = await api_client.post("/api/v1/proposals", json=proposal_body, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_due_days_bounds(self, api_client, admin, proposal_body):
        response = await api_client.post(
            "/api/v1/proposals",
            json={**proposal_body, "due_days": 0},
            headers=auth_headers(admin),
        )
        assert response.status_code == 422

    async def test_hiring_manager_cannot_propose(self, api_client, db, proposal_body):
        manager = await create_user(db, MembershipRole.HIRING_MANAGER)

        response = await api_client.post(
            "/api/v1/proposals", json=proposal_body, headers=auth_headers(manager)
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"

    async def test_requires_token(self, api_client, proposal_body):
        response = await api_client.post("/api/v1/proposals", json=proposal_body)
        assert response.status_code == 401


class TestRespond:
    async def test_accept_then_submit(self, api_client, admin, proposal_body):
        headers = auth_headers(admin)
        created = (await api_client.post("/api/v1/proposals", json=proposal_body, headers=headers)).json()

        accepted = await api_client.post(
            f"/api/v1/proposals/{created['id']}/accept",
            json={"notes": "Happy to take this on"},
            headers=headers,
        )
        submitted = await api_client.post(
            f"/api/v1/proposals/{created['id']}/submit", headers=headers
        )

        assert accepted.status_code == 200
        assert accepted.json()["state"] == "accepted"
        assert accepted.json()["hours_remaining"] is None
        assert submitted.json()["state"] == "submitted"

    async def test_decline_twice_conflicts(self, api_client, admin, proposal_body):
        headers = auth_headers(admin)
        created = (await api_client.post("/api/v1/proposals", json=proposal_body, headers=headers)).json()
        await api_client.post(f"/api/v1/proposals/{created['id']}/decline", headers=headers)

        response = await api_client.post(
            f"/api/v1/proposals/{created['id']}/decline", headers=headers
        )

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "INVALID_STATE"
        assert error["details"]["current_state"] == "declined"

    async def test_close(self, api_client, admin, proposal_body):
        headers = auth_headers(admin)
        created = (await api_client.post("/api/v1/proposals", json=proposal_body, headers=headers)).json()

        response = await api_client.post(f"/api/v1/proposals/{created['id']}/close", headers=headers)

        assert response.json()["state"] == "closed"


class TestReadProposals:
    async def test_get_unknown(self, api_client, admin):
        response = await api_client.get(
            f"/api/v1/proposals/{uuid.uuid4()}", headers=auth_headers(admin)
        )
        assert response.status_code == 404

    async def test_list_filters_by_state(self, api_client, admin, proposal_body):
        headers = auth_headers(admin)
        await api_client.post("/api/v1/proposals", json=proposal_body, headers=headers)

        proposed = await api_client.get("/api/v1/proposals?state=proposed", headers=headers)
        accepted = await api_client.get("/api/v1/proposals?state=accepted", headers=headers)
        unknown = await api_client.get("/api/v1/proposals?state=bogus", headers=headers)

        assert proposed.json()["total"] == 1
        assert accepted.json()["total"] == 0
        assert unknown.status_code == 400
