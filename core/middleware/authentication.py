"""
Authentication middleware for Clerk-issued Bearer JWTs.

The middleware verifies the token signature and expiry and stores the claims
in the ASGI scope. Loading the matching ``User`` row happens in the
``get_current_user`` dependency so it shares the request's database session.
"""

import asyncio
import logging
from typing import Callable, Optional
from datetime import datetime, timezone
import jwt
from jwt import PyJWKClient
from fastapi import Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.engine import get_db
from database.models.identity import User

logger = logging.getLogger(__name__)

# Public endpoints that don't require authentication
PUBLIC_ENDPOINTS = [
    "/",
    "/health",
    "/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/api/v1/webhooks/stripe",
]


class AuthenticationError(Exception):
    """Base exception for authentication errors."""
    pass


class TokenExpiredError(AuthenticationError):
    """Raised when JWT token has expired."""
    pass


class TokenInvalidError(AuthenticationError):
    """Raised when JWT token is missing, malformed or has a bad signature."""
    pass


class AuthenticationMiddleware:
    """
    Verifies ``Authorization: Bearer <jwt>`` on every non-public request.

    Tokens are checked against a shared secret (HS256) or, when a JWKS URL is
    configured, against Clerk's published signing keys (RS256).
    """

    def __init__(
        self,
        app: Callable,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        jwks_url: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        """
        Initialize authentication middleware.

        Args:
            app: ASGI application
            jwt_secret: Secret key for HS256 verification
            jwt_algorithm: JWT signing algorithm when no JWKS URL is set
            jwks_url: Clerk JWKS endpoint for RS256 verification
            issuer: Expected ``iss`` claim, if any
        """
        self.app = app
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.issuer = issuer
        self.jwks_client = PyJWKClient(jwks_url) if jwks_url else None

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)

        if request.method == "OPTIONS" or self._is_public_endpoint(request.url.path):
            await self.app(scope, receive, send)
            return

        try:
            token = self._extract_token(request)
            if not token:
                raise TokenInvalidError("No authentication token provided")
            payload = await self._verify_token(token)
        except TokenExpiredError:
            await self._send_error_response(
                scope, receive, send,
                status_code=status.HTTP_401_UNAUTHORIZED,
                code="TOKEN_EXPIRED",
                message="Authentication token has expired. Please sign in again.",
            )
            return
        except TokenInvalidError as e:
            logger.warning(f"Invalid token: {str(e)}")
            await self._send_error_response(
                scope, receive, send,
                status_code=status.HTTP_401_UNAUTHORIZED,
                code="TOKEN_INVALID",
                message="Invalid authentication token.",
            )
            return

        scope["jwt_payload"] = payload
        scope["auth_subject"] = payload["sub"]
        await self.app(scope, receive, send)

    def _is_public_endpoint(self, path: str) -> bool:
        if path in PUBLIC_ENDPOINTS:
            return True
        public_prefixes = ["/health", "/docs", "/redoc", "/openapi"]
        return any(path.startswith(prefix) for prefix in public_prefixes)

    def _extract_token(self, request: Request) -> Optional[str]:
        auth_header = request.headers.get("Authorization")

        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[7:].strip() or None

        return None

    async def _verify_token(self, token: str) -> dict:
        """
        Verify signature, expiry and (optionally) issuer.

        Raises:
            TokenExpiredError: If the token has expired
            TokenInvalidError: For any other verification failure
        """
        try:
            if self.jwks_client:
                signing_key = await asyncio.to_thread(
                    self.jwks_client.get_signing_key_from_jwt, token
                )
                key, algorithms = signing_key.key, ["RS256"]
            else:
                key, algorithms = self.jwt_secret, [self.jwt_algorithm]

            return jwt.decode(
                token,
                key,
                algorithms=algorithms,
                issuer=self.issuer,
                options={"require": ["sub", "exp"], "verify_iss": bool(self.issuer)},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.PyJWTError as e:
            raise TokenInvalidError(f"Invalid token: {str(e)}")

    async def _send_error_response(
        self,
        scope: dict,
        receive: Callable,
        send: Callable,
        status_code: int,
        code: str,
        message: str,
    ) -> None:
        response = JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "code": code,
                    "message": message,
                    "path": scope.get("path"),
                    "method": scope.get("method"),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            },
            headers={"WWW-Authenticate": "Bearer"},
        )
        await response(scope, receive, send)


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    Load the user for the verified token subject.

    Returns None when the request carried no verified token or no user matches
    the subject.
    """
    if "user" in request.scope:
        return request.scope["user"]

    subject = request.scope.get("auth_subject")
    if not subject:
        return None

    result = await db.execute(select(User).where(User.clerk_user_id == subject))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("No user found for authenticated token subject")

    request.scope["user"] = user
    return user
