"""
Tests for plan, subscription and Stripe webhook endpoints, with Stripe replaced
by the billing_client fake.
"""

import json

import pytest

from core.exceptions import WebhookSignatureError
from core.integrations.stripe_billing import subscription_snapshot
from database.models import MembershipRole, User

from conftest import auth_headers, create_recruiter, create_user


@pytest.fixture
async def plan(api_client, admin):
    response = await api_client.post(
        "/api/v1/plans",
        json={"name": "Pro", "price_monthly": 9_900, "stripe_price_id": "price_pro"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
async def recruiter(db):
    return await create_recruiter(db)


@pytest.fixture
async def recruiter_headers(db, recruiter):
    return auth_headers(await db.get(User, recruiter.user_id))


def _stripe_subscription(status):
    return {
        "id": "sub_test123",
        "status": status,
        "current_period_start": 1_767_225_600,
        "current_period_end": 1_769_904_000,
        "cancel_at": None,
    }


class TestPlanEndpoints:
    async def test_recruiter_lists_plans(self, api_client, plan, recruiter_headers):
        response = await api_client.get("/api/v1/plans", headers=recruiter_headers)

        assert response.status_code == 200
        assert [p["id"] for p in response.json()["plans"]] == [plan["id"]]

    async def test_recruiter_cannot_create_plan(self, api_client, recruiter_headers):
        response = await api_client.post(
            "/api/v1/plans",
            json={"name": "Free", "price_monthly": 0},
            headers=recruiter_headers,
        )
        assert response.status_code == 403

    async def test_negative_price_is_422(self, api_client, admin):
        response = await api_client.post(
            "/api/v1/plans",
            json={"name": "Broken", "price_monthly": -5},
            headers=auth_headers(admin),
        )
        assert response.status_code == 422


class TestSubscriptionEndpoints:
    async def test_subscribe_own_profile(self, api_client, plan, recruiter, recruiter_headers):
        response = await api_client.post(
            "/api/v1/subscriptions", json={"plan_id": plan["id"]}, headers=recruiter_headers
        )
        status_response = await api_client.get(
            f"/api/v1/subscriptions/recruiter/{recruiter.id}/status", headers=recruiter_headers
        )

        assert response.status_code == 201
        assert response.json()["recruiter_id"] == str(recruiter.id)
        assert response.json()["status"] == "trialing"
        assert status_response.json() == {"recruiter_id": str(recruiter.id), "is_active": True}

    async def test_subscribe_through_stripe(
        self, api_client, plan, recruiter_headers, billing_client
    ):
        billing_client.create_subscription.return_value = subscription_snapshot(
            _stripe_subscription("incomplete")
        )

        response = await api_client.post(
            "/api/v1/subscriptions",
            json={"plan_id": plan["id"], "stripe_customer_id": "cus_test"},
            headers=recruiter_headers,
        )

        assert response.status_code == 201
        assert response.json()["stripe_subscription_id"] == "sub_test123"
        assert response.json()["is_active"] is False

    async def test_other_recruiter_needs_billing_manage(
        self, api_client, db, plan, recruiter, recruiter_headers
    ):
        other = await create_recruiter(db, name="Olive Other")

        response = await api_client.post(
            "/api/v1/subscriptions",
            json={"plan_id": plan["id"], "recruiter_id": str(other.id)},
            headers=recruiter_headers,
        )
        assert response.status_code == 403

    async def test_admin_subscribes_and_cancels_any_recruiter(
        self, api_client, admin, plan, recruiter
    ):
        headers = auth_headers(admin)
        created = await api_client.post(
            "/api/v1/subscriptions",
            json={"plan_id": plan["id"], "recruiter_id": str(recruiter.id)},
            headers=headers,
        )
        canceled = await api_client.post(
            f"/api/v1/subscriptions/recruiter/{recruiter.id}/cancel", headers=headers
        )
        again = await api_client.post(
            f"/api/v1/subscriptions/recruiter/{recruiter.id}/cancel", headers=headers
        )

        assert created.status_code == 201
        assert canceled.status_code == 200
        assert canceled.json()["status"] == "canceled"
        assert again.status_code == 409

    async def test_admin_without_profile_must_name_recruiter(self, api_client, admin, plan):
        response = await api_client.post(
            "/api/v1/subscriptions", json={"plan_id": plan["id"]}, headers=auth_headers(admin)
        )
        assert response.status_code == 400

    async def test_hiring_manager_cannot_subscribe(self, api_client, db, plan):
        manager = await create_user(db, MembershipRole.HIRING_MANAGER)

        response = await api_client.post(
            "/api/v1/subscriptions", json={"plan_id": plan["id"]}, headers=auth_headers(manager)
        )
        assert response.status_code == 403

    async def test_missing_subscription_is_404(self, api_client, recruiter, recruiter_headers):
        response = await api_client.get(
            f"/api/v1/subscriptions/recruiter/{recruiter.id}", headers=recruiter_headers
        )
        assert response.status_code == 404


class TestStripeWebhook:
    async def test_webhook_needs_no_bearer_token(
        self, api_client, plan, recruiter_headers, billing_client
    ):
        billing_client.create_subscription.return_value = subscription_snapshot(
            _stripe_subscription("incomplete")
        )
        await api_client.post(
            "/api/v1/subscriptions",
            json={"plan_id": plan["id"], "stripe_customer_id": "cus_test"},
            headers=recruiter_headers,
        )
        payload = json.dumps({
            "id": "evt_1",
            "type": "customer.subscription.updated",
            "data": {"object": _stripe_subscription("active")},
        })

        response = await api_client.post(
            "/api/v1/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": "t=1,v1=signed"},
        )

        assert response.status_code == 200
        assert response.json()["handled"] is True
        assert response.json()["status"] == "active"
        assert billing_client.construct_event.call_args.args[1] == "t=1,v1=signed"

    async def test_bad_signature_is_401(self, api_client, billing_client):
        billing_client.construct_event.side_effect = WebhookSignatureError("Invalid webhook signature")

        response = await api_client.post(
            "/api/v1/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "t=1,v1=forged"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_WEBHOOK_SIGNATURE"

    async def test_unknown_event_acknowledged(self, api_client):
        response = await api_client.post(
            "/api/v1/webhooks/stripe",
            content=json.dumps({"id": "evt_2", "type": "invoice.paid", "data": {"object": {}}}),
            headers={"stripe-signature": "t=1,v1=signed"},
        )

        assert response.status_code == 200
        assert response.json() == {"event_type": "invoice.paid", "handled": False}
