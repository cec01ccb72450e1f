"""
Tests for rate limiting middleware and the sliding window limiter.
"""

from collections import defaultdict
from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from redis.exceptions import RedisError

from core.middleware.rate_limiting import (
    RateLimitMiddleware,
    RateLimitRule,
    RateLimitStrategy,
    RateLimitWindow,
    SlidingWindowRateLimiter,
)


class FakePipeline:
    """Buffers sorted-set commands and applies them on execute()."""

    def __init__(self, store):
        self.store = store
        self.commands = []

    def zremrangebyscore(self, key, minimum, maximum):
        self.commands.append(("zremrangebyscore", key, minimum, maximum))

    def zcard(self, key):
        self.commands.append(("zcard", key))

    def zadd(self, key, mapping):
        self.commands.append(("zadd", key, mapping))

    def expire(self, key, seconds):
        self.commands.append(("expire", key, seconds))

    async def execute(self):
        results = []
        for name, key, *args in self.commands:
            members = self.store.sets[key]
            if name == "zremrangebyscore":
                stale = [m for m, score in members.items() if args[0] <= score <= args[1]]
                for member in stale:
                    del members[member]
                results.append(len(stale))
            elif name == "zcard":
                results.append(len(members))
            elif name == "zadd":
                members.update(args[0])
                results.append(len(args[0]))
            else:
                results.append(True)
        return results


class FakeRedis:
    """Just enough of redis.asyncio for the sliding window limiter."""

    def __init__(self):
        self.sets = defaultdict(dict)

    def pipeline(self):
        return FakePipeline(self)

    async def zrange(self, key, start, end, withscores=False):
        ordered = sorted(self.sets[key].items(), key=lambda item: item[1])
        window = ordered[start:None if end == -1 else end + 1]
        return window if withscores else [member for member, _ in window]

    async def zrem(self, key, *members):
        for member in members:
            self.sets[key].pop(member, None)


class TestRateLimitRule:
    def test_applies_everywhere_by_default(self):
        rule = RateLimitRule(RateLimitStrategy.IP_ADDRESS, RateLimitWindow.MINUTE, 10)
        assert rule.applies_to("/api/v1/payouts", "GET")

    def test_path_prefix_and_method_filters(self):
        rule = RateLimitRule(
            RateLimitStrategy.USER_ID,
            RateLimitWindow.MINUTE,
            10,
            paths=["/api/v1/payouts"],
            methods=["POST"],
        )

        assert rule.applies_to("/api/v1/payouts/abc/process", "post")
        assert not rule.applies_to("/api/v1/payouts", "GET")
        assert not rule.applies_to("/api/v1/placements", "POST")


class TestSlidingWindowLimiter:
    """Test the Redis sorted-set algorithm."""

    async def test_allows_up_to_limit(self):
        limiter = SlidingWindowRateLimiter(FakeRedis())

        results = [await limiter.is_allowed("k", max_requests=3, window_seconds=60) for _ in range(3)]

        assert all(allowed for allowed, _ in results)
        assert [meta["remaining"] for _, meta in results] == [2, 1, 0]

    async def test_rejects_over_limit_with_retry_after(self):
        redis_client = FakeRedis()
        limiter = SlidingWindowRateLimiter(redis_client)
        for _ in range(2):
            await limiter.is_allowed("k", max_requests=2, window_seconds=60)

        allowed, meta = await limiter.is_allowed("k", max_requests=2, window_seconds=60)

        assert not allowed
        assert meta["remaining"] == 0
        assert 0 < meta["retry_after"] <= 61
        # Rejected requests do not consume the window
        assert len(redis_client.sets["k"]) == 2

    async def test_keys_are_independent(self):
        limiter = SlidingWindowRateLimiter(FakeRedis())
        await limiter.is_allowed("a", max_requests=1, window_seconds=60)

        allowed, _ = await limiter.is_allowed("b", max_requests=1, window_seconds=60)
        assert allowed

    async def test_fails_open_when_redis_unavailable(self):
        redis_client = Mock()
        redis_client.pipeline.side_effect = RedisError("Connection refused")
        limiter = SlidingWindowRateLimiter(redis_client)

        allowed, meta = await limiter.is_allowed("k", max_requests=1, window_seconds=60)

        assert allowed
        assert meta["error"] == "redis_unavailable"


class SubjectFromHeader:
    """Stand-in for the authentication middleware, which sets auth_subject."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        for name, value in scope.get("headers", []):
            if name == b"x-test-subject":
                scope["auth_subject"] = value.decode()
        await self.app(scope, receive, send)


def _build_app(rules, redis_client=None):
    app = FastAPI()

    @app.get("/api/v1/jobs")
    async def jobs():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    app.add_middleware(
        RateLimitMiddleware,
        rules=rules,
        limiter=SlidingWindowRateLimiter(redis_client or FakeRedis()),
    )
    app.add_middleware(SubjectFromHeader)
    return app


class TestRateLimitMiddleware:
    def test_ip_limit_returns_429(self):
        app = _build_app([RateLimitRule(RateLimitStrategy.IP_ADDRESS, RateLimitWindow.MINUTE, 2)])
        client = TestClient(app)

        assert client.get("/api/v1/jobs").status_code == 200
        assert client.get("/api/v1/jobs").status_code == 200
        response = client.get("/api/v1/jobs")

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert int(response.headers["Retry-After"]) > 0
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_headers_on_success(self):
        app = _build_app([RateLimitRule(RateLimitStrategy.IP_ADDRESS, RateLimitWindow.MINUTE, 5)])
        response = TestClient(app).get("/api/v1/jobs")

        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_forwarded_for_distinguishes_clients(self):
        app = _build_app([RateLimitRule(RateLimitStrategy.IP_ADDRESS, RateLimitWindow.MINUTE, 1)])
        client = TestClient(app)

        assert client.get("/api/v1/jobs", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 200
        assert client.get("/api/v1/jobs", headers={"X-Forwarded-For": "2.2.2.2"}).status_code == 200
        assert client.get("/api/v1/jobs", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 429

    def test_user_limit_keyed_by_token_subject(self):
        app = _build_app([RateLimitRule(RateLimitStrategy.USER_ID, RateLimitWindow.MINUTE, 1)])
        client = TestClient(app)

        assert client.get("/api/v1/jobs", headers={"x-test-subject": "user_a"}).status_code == 200
        assert client.get("/api/v1/jobs", headers={"x-test-subject": "user_b"}).status_code == 200
        assert client.get("/api/v1/jobs", headers={"x-test-subject": "user_a"}).status_code == 429

    def test_user_rule_skipped_without_subject(self):
        app = _build_app([RateLimitRule(RateLimitStrategy.USER_ID, RateLimitWindow.MINUTE, 1)])
        client = TestClient(app)

        assert client.get("/api/v1/jobs").status_code == 200
        assert client.get("/api/v1/jobs").status_code == 200

    def test_health_is_never_limited(self):
        app = _build_app([RateLimitRule(RateLimitStrategy.IP_ADDRESS, RateLimitWindow.MINUTE, 1)])
        client = TestClient(app)

        for _ in range(3):
            assert client.get("/health").status_code == 200
