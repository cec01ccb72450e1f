"""
Tests for structured request logging and sensitive-data masking.
"""

import json
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.middleware.logging import (
    StructuredFormatter,
    StructuredLoggingMiddleware,
    get_client_ip,
    is_sensitive_field,
    mask_headers,
    mask_pii,
    mask_sensitive_data,
)


class TestMasking:
    @pytest.mark.parametrize("field_name,expected", [
        ("password", True),
        ("access_token", True),
        ("stripe_connect_account_id", True),
        ("bank_account", True),
        ("Authorization", True),
        ("salary", False),
        ("job_id", False),
        ("split_percentage", False),
    ])
    def test_sensitive_field_names(self, field_name, expected):
        assert is_sensitive_field(field_name) is expected

    def test_nested_structures(self):
        data = {
            "recruiter": {"stripe_connect_account_id": "acct_123", "bio": "Call 555-123-4567"},
            "candidates": [{"email": "jane@example.com"}],
            "salary": 12_000_000,
        }
        masked = mask_sensitive_data(data)

        assert masked["recruiter"]["stripe_connect_account_id"] == "[REDACTED]"
        assert "[PHONE]" in masked["recruiter"]["bio"]
        assert masked["candidates"][0]["email"] == "[EMAIL]"
        assert masked["salary"] == 12_000_000

    @pytest.mark.parametrize("text, expected", [
        ("Call 555-123-4567", "Call [PHONE]"),
        ("Call 555.123.4567 today", "Call [PHONE] today"),
        ("Call 5551234567", "Call [PHONE]"),
        ("Intl +44 20 7946 0958", "Intl [PHONE]"),
        ("Card 4111 1111 1111 1111", "Card [CARD]"),
        ("Fee 2400000 cents", "Fee 2400000 cents"),
    ])
    def test_pii_in_free_text(self, text, expected):
        assert mask_pii(text) == expected

    def test_depth_limit(self):
        data = current = {}
        for _ in range(15):
            current["child"] = {}
            current = current["child"]

        assert "[MAX_DEPTH_EXCEEDED]" in json.dumps(mask_sensitive_data(data))

    def test_authorization_scheme_kept(self):
        masked = mask_headers({"authorization": "Bearer abc.def", "accept": "application/json"})

        assert masked["authorization"] == "Bearer [REDACTED]"
        assert masked["accept"] == "application/json"


class TestClientIp:
    def test_last_octet_hidden(self):
        request = type("R", (), {"headers": {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}, "client": None})()
        assert get_client_ip(request) == "203.0.113.xxx"


class TestMiddleware:
    def _client(self):
        app = FastAPI()
        app.add_middleware(StructuredLoggingMiddleware)

        @app.get("/api/v1/jobs")
        async def jobs():
            return []

        return TestClient(app)

    def test_request_id_echoed(self):
        response = self._client().get("/api/v1/jobs", headers={"x-request-id": "req-123"})
        assert response.headers["x-request-id"] == "req-123"

    def test_request_id_generated(self):
        response = self._client().get("/api/v1/jobs")
        assert len(response.headers["x-request-id"]) == 36

    def test_logs_start_and_completion(self, caplog):
        with caplog.at_level(logging.INFO, logger="core.middleware.logging"):
            self._client().get("/api/v1/jobs?email=jane@example.com")

        events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "core.middleware.logging"]
        assert [e["event"] for e in events] == ["request_started", "request_completed"]
        assert events[0]["query_params"]["email"] == "[EMAIL]"
        assert events[1]["status_code"] == 200


class TestFormatter:
    def test_json_line_with_extras(self):
        record = logging.LogRecord("payouts", logging.INFO, __file__, 1, "Payout completed", None, None)
        record.payout_id = "p1"

        line = json.loads(StructuredFormatter().format(record))

        assert line["level"] == "INFO"
        assert line["message"] == "Payout completed"
        assert line["payout_id"] == "p1"
