"""
Redis-based rate limiting middleware.
Sliding-window limits keyed by authenticated subject or client IP.
"""

import logging
import time
import uuid
from typing import Callable, Optional, List, Dict, Any
from enum import Enum
from dataclasses import dataclass
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RateLimitStrategy(str, Enum):
    """What a limit is counted against."""
    IP_ADDRESS = "ip"
    USER_ID = "user"


class RateLimitWindow(str, Enum):
    """Time window types for rate limiting."""
    SECOND = "second"
    MINUTE = "minute"
    HOUR = "hour"


WINDOW_SECONDS = {
    RateLimitWindow.SECOND: 1,
    RateLimitWindow.MINUTE: 60,
    RateLimitWindow.HOUR: 3600,
}


@dataclass
class RateLimitRule:
    """Rate limit rule configuration."""
    strategy: RateLimitStrategy
    window: RateLimitWindow
    max_requests: int
    paths: Optional[List[str]] = None  # Path prefixes the rule applies to
    methods: Optional[List[str]] = None

    def applies_to(self, path: str, method: str) -> bool:
        if self.paths and not any(path.startswith(prefix) for prefix in self.paths):
            return False
        if self.methods and method.upper() not in self.methods:
            return False
        return True


class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter on Redis sorted sets.

    Each request is a member scored by its timestamp; members older than the
    window are trimmed before counting.
    """

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def is_allowed(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
        cost: int = 1,
    ) -> tuple[bool, Dict[str, Any]]:
        """
        Check if request is allowed under rate limit.

        Args:
            key: Unique identifier for the rate limit
            max_requests: Maximum requests allowed in window
            window_seconds: Time window in seconds
            cost: Cost of this request

        Returns:
            Tuple of (is_allowed, metadata) where metadata has
            limit, remaining, reset and retry_after
        """
        now = time.time()
        request_id = f"{now}:{uuid.uuid4().hex[:8]}"

        try:
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, now - window_seconds)
            pipe.zcard(key)
            pipe.zadd(key, {request_id: now})
            pipe.expire(key, window_seconds + 60)
            results = await pipe.execute()

            current_count = results[1]
            allowed = current_count + cost <= max_requests
            retry_after = 0

            if not allowed:
                oldest = await self.redis.zrange(key, 0, 0, withscores=True)
                if oldest:
                    retry_after = int(oldest[0][1] + window_seconds - now) + 1
                else:
                    retry_after = window_seconds
                await self.redis.zrem(key, request_id)

            return allowed, {
                'limit': max_requests,
                'remaining': max(0, max_requests - current_count - cost),
                'reset': int(now + window_seconds),
                'retry_after': max(0, retry_after),
            }

        except RedisError as e:
            # Fail open - allow request if Redis is unavailable
            logger.error(f"Redis error in rate limiter: {e}")
            return True, {
                'limit': max_requests,
                'remaining': max_requests,
                'reset': int(now + window_seconds),
                'retry_after': 0,
                'error': 'redis_unavailable',
            }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies every matching rule to each request and rejects with 429 when
    any of them is exhausted. Adds X-RateLimit-* headers to responses.
    """

    def __init__(
        self,
        app: ASGIApp,
        redis_url: Optional[str] = None,
        rules: Optional[List[RateLimitRule]] = None,
        limiter: Optional[SlidingWindowRateLimiter] = None,
        key_prefix: str = "splits:ratelimit",
        enable_headers: bool = True,
    ):
        """
        Initialize rate limiting middleware.

        Args:
            app: The ASGI application
            redis_url: Redis connection URL (ignored when limiter is given)
            rules: Rate limit rules to apply
            limiter: Pre-built limiter
            key_prefix: Prefix for Redis keys
            enable_headers: Whether to add rate limit headers to responses
        """
        super().__init__(app)
        self.redis_url = redis_url
        self.limiter = limiter
        self.rules = rules or [
            RateLimitRule(RateLimitStrategy.USER_ID, RateLimitWindow.MINUTE, 100),
            RateLimitRule(RateLimitStrategy.IP_ADDRESS, RateLimitWindow.MINUTE, 200),
        ]
        self.key_prefix = key_prefix
        self.enable_headers = enable_headers

    def _get_limiter(self) -> Optional[SlidingWindowRateLimiter]:
        if self.limiter is None and self.redis_url:
            client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
            )
            self.limiter = SlidingWindowRateLimiter(client)
            logger.info("Rate limiter initialized")
        return self.limiter

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        limiter = self._get_limiter()
        if limiter is None or request.url.path.startswith(('/health', '/ready')):
            return await call_next(request)

        result = await self._check_rate_limits(limiter, request)

        if not result['allowed']:
            response = JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    'error': {
                        'code': 'RATE_LIMIT_EXCEEDED',
                        'message': 'Too many requests. Please try again later.',
                        'retry_after': result['retry_after'],
                    }
                },
            )
            response.headers['Retry-After'] = str(result['retry_after'])
            if self.enable_headers:
                self._add_rate_limit_headers(response, result)
            return response

        response = await call_next(request)
        if self.enable_headers and result['limit']:
            self._add_rate_limit_headers(response, result)
        return response

    async def _check_rate_limits(
        self, limiter: SlidingWindowRateLimiter, request: Request
    ) -> Dict[str, Any]:
        result = {'allowed': True, 'limit': 0, 'remaining': 0, 'reset': 0, 'retry_after': 0}

        for rule in self.rules:
            if not rule.applies_to(request.url.path, request.method):
                continue
            key = self._generate_key(request, rule)
            if key is None:
                continue

            allowed, metadata = await limiter.is_allowed(
                key=key,
                max_requests=rule.max_requests,
                window_seconds=WINDOW_SECONDS[rule.window],
            )

            if not allowed:
                result['allowed'] = False
                result['retry_after'] = max(result['retry_after'], metadata['retry_after'])

            # Report the most restrictive limit
            if result['limit'] == 0 or metadata['remaining'] < result['remaining']:
                result['limit'] = metadata['limit']
                result['remaining'] = metadata['remaining']
                result['reset'] = metadata['reset']

        return result

    def _generate_key(self, request: Request, rule: RateLimitRule) -> Optional[str]:
        if rule.strategy == RateLimitStrategy.USER_ID:
            subject = request.scope.get('auth_subject')
            if not subject:
                return None
            identifier = f"user:{subject}"
        else:
            forwarded_for = request.headers.get('x-forwarded-for')
            ip = forwarded_for.split(',')[0].strip() if forwarded_for else (
                request.client.host if request.client else 'unknown'
            )
            identifier = f"ip:{ip}"
        return f"{self.key_prefix}:{rule.window.value}:{identifier}"

    def _add_rate_limit_headers(self, response: Response, result: Dict[str, Any]) -> None:
        response.headers['X-RateLimit-Limit'] = str(result['limit'])
        response.headers['X-RateLimit-Remaining'] = str(result['remaining'])
        response.headers['X-RateLimit-Reset'] = str(result['reset'])
