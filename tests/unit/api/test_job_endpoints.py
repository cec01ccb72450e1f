"""
Tests for job, candidate, application and recruiter network endpoints.
"""

from database.models import MembershipRole

from conftest import auth_headers, create_recruiter, create_user


class TestJobs:
    async def test_company_job_and_candidate(self, api_client, admin):
        headers = auth_headers(admin)

        company = await api_client.post("/api/v1/jobs/companies", json={"name": "Acme"}, headers=headers)
        job = await api_client.post(
            "/api/v1/jobs",
            json={
                "company_id": company.json()["id"],
                "title": "Staff Engineer",
                "fee_percentage": 22.5,
                "salary_min": 15_000_000,
                "salary_max": 20_000_000,
            },
            headers=headers,
        )
        candidate = await api_client.post(
            "/api/v1/jobs/candidates",
            json={"email": "jamie@example.com", "full_name": "Jamie Doe"},
            headers=headers,
        )

        assert company.status_code == 201
        assert job.status_code == 201
        assert job.json()["status"] == "active"
        assert job.json()["fee_percentage"] == 22.5
        assert candidate.status_code == 201

    async def test_salary_range_validated(self, api_client, admin):
        company = await api_client.post(
            "/api/v1/jobs/companies", json={"name": "Acme"}, headers=auth_headers(admin)
        )

        response = await api_client.post(
            "/api/v1/jobs",
            json={
                "company_id": company.json()["id"],
                "title": "Staff Engineer",
                "fee_percentage": 20,
                "salary_min": 2,
                "salary_max": 1,
            },
            headers=auth_headers(admin),
        )

        assert response.status_code == 422

    async def test_recruiter_cannot_open_jobs(self, api_client, db):
        recruiter_user = await create_user(db, MembershipRole.RECRUITER)

        response = await api_client.post(
            "/api/v1/jobs/companies", json={"name": "Acme"}, headers=auth_headers(recruiter_user)
        )

        assert response.status_code == 403


class TestApplications:
    async def test_hired_only_via_placement(self, api_client, admin, marketplace):
        response = await api_client.patch(
            f"/api/v1/applications/{marketplace.application.id}/stage",
            json={"stage": "hired"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 400

    async def test_move_to_interview(self, api_client, admin, marketplace):
        response = await api_client.patch(
            f"/api/v1/applications/{marketplace.application.id}/stage",
            json={"stage": "interview", "notes": "Phone screen passed"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.json()["stage"] == "interview"


class TestRecruiterNetwork:
    async def test_self_signup_is_pending(self, api_client, db):
        user = await create_user(db, MembershipRole.RECRUITER)

        response = await api_client.post(
            "/api/v1/recruiters", json={"bio": "Fintech"}, headers=auth_headers(user)
        )

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert response.json()["user_id"] == str(user.id)

    async def test_profile_for_other_user_needs_manage(self, api_client, db):
        user = await create_user(db, MembershipRole.RECRUITER)
        other = await create_user(db)

        response = await api_client.post(
            "/api/v1/recruiters", json={"user_id": str(other.id)}, headers=auth_headers(user)
        )

        assert response.status_code == 403

    async def test_assign_and_reputation(self, api_client, admin, db, marketplace):
        headers = auth_headers(admin)
        recruiter = await create_recruiter(db, name="Second Recruiter")

        assigned = await api_client.post(
            "/api/v1/recruiters/assignments",
            json={"job_id": str(marketplace.job.id), "recruiter_id": str(recruiter.id)},
            headers=headers,
        )
        listed = await api_client.get(
            f"/api/v1/recruiters/assignments?job_id={marketplace.job.id}", headers=headers
        )
        reputation = await api_client.post(
            f"/api/v1/recruiters/{recruiter.id}/reputation/recalculate", headers=headers
        )

        assert assigned.status_code == 201
        assert len(listed.json()["assignments"]) == 1
        assert reputation.json()["reputation_score"] == 50.0
