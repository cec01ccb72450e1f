"""
Error handling middleware and exception handlers.

Every error leaves the API in the same envelope:
{"error": {"code", "message", "path", "method", "details"?, "request_id"?}}
"""

import logging
import traceback
from typing import Any, Callable, Optional
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from redis.exceptions import RedisError
import re

from core.exceptions import DomainError
from core.middleware.authorization import AuthorizationError

logger = logging.getLogger(__name__)

# Patterns for sensitive data that should never be logged or returned
SENSITIVE_PATTERNS = [
    re.compile(r'password["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'token["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'api[_-]?key["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'authorization["\s:]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'\bsk_(live|test)_[A-Za-z0-9]+\b'),  # Stripe secret keys
    re.compile(r'\bacct_[A-Za-z0-9]+\b'),  # Stripe Connect account ids
    re.compile(r'\b\d{16}\b'),  # Card / bank numbers
]


def sanitize_error_message(message: Any) -> str:
    """
    Remove sensitive information from error messages.

    Args:
        message: Original error message

    Returns:
        Sanitized error message
    """
    sanitized = str(message)
    for pattern in SENSITIVE_PATTERNS:
        sanitized = pattern.sub('[REDACTED]', sanitized)
    return sanitized


def get_safe_error_details(exc: Exception) -> dict[str, Any]:
    """Exception type, sanitized message and traceback, for debug responses only."""
    return {
        "type": type(exc).__name__,
        "message": sanitize_error_message(str(exc)),
        "traceback": traceback.format_exc(),
    }


def error_body(
    code: str,
    message: str,
    path: str,
    method: str,
    details: Any = None,
    request_id: Optional[str] = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "path": path,
        "method": method,
    }
    if details is not None:
        body["details"] = details
    if request_id:
        body["request_id"] = request_id
    return {"error": body}


def format_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Field path, message and type for each request validation error."""
    return [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": sanitize_error_message(error["msg"]),
            "type": error["type"],
        }
        for error in exc.errors()
    ]


class ErrorHandlingMiddleware:
    """
    ASGI middleware that turns any exception escaping the app into the
    standard error envelope, with sanitized messages and severity-appropriate
    logging.
    """

    def __init__(self, app: Callable, debug: bool = False):
        """
        Initialize error handling middleware.

        Args:
            app: The ASGI application
            debug: Whether to include detailed error information
        """
        self.app = app
        self.debug = debug

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            response = self._handle_exception(exc, scope)
            await response(scope, receive, send)

    def _handle_exception(self, exc: Exception, scope: dict) -> Response:
        """
        Map an exception to a status code, error code and message.

        Args:
            exc: The exception to handle
            scope: ASGI scope for context

        Returns:
            JSONResponse with error details
        """
        request_path = scope.get("path", "unknown")
        request_method = scope.get("method", "unknown")

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        error_code = "INTERNAL_SERVER_ERROR"
        message = "An unexpected error occurred"
        details = None

        if isinstance(exc, DomainError):
            status_code = exc.status_code
            error_code = exc.code
            message = sanitize_error_message(exc.message)
            details = exc.details
            logger.warning(
                f"Domain error: {request_method} {request_path} - {error_code}: {message}"
            )

        elif isinstance(exc, AuthorizationError):
            status_code = status.HTTP_403_FORBIDDEN
            error_code = "INSUFFICIENT_PERMISSIONS"
            message = sanitize_error_message(str(exc))
            logger.warning(f"Authorization denied: {request_method} {request_path}")

        elif isinstance(exc, StarletteHTTPException):
            status_code = exc.status_code
            error_code = "HTTP_EXCEPTION"
            message = sanitize_error_message(exc.detail)
            logger.warning(
                f"HTTP exception: {request_method} {request_path} - "
                f"Status: {status_code}, Message: {message}"
            )

        elif isinstance(exc, RequestValidationError):
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
            error_code = "VALIDATION_ERROR"
            message = "Request validation failed"
            details = format_validation_errors(exc)
            logger.warning(
                f"Validation error: {request_method} {request_path} - Errors: {details}"
            )

        elif isinstance(exc, IntegrityError):
            status_code = status.HTTP_409_CONFLICT
            error_code = "INTEGRITY_ERROR"
            message = "Database integrity constraint violated"
            if self.debug:
                details = get_safe_error_details(exc)
            logger.error(
                f"Database integrity error: {request_method} {request_path}",
                exc_info=not self.debug,
            )

        elif isinstance(exc, OperationalError):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            error_code = "DATABASE_ERROR"
            message = "Database service temporarily unavailable"
            logger.error(
                f"Database operational error: {request_method} {request_path}",
                exc_info=True,
            )

        elif isinstance(exc, SQLAlchemyError):
            error_code = "DATABASE_ERROR"
            message = "A database error occurred"
            if self.debug:
                details = get_safe_error_details(exc)
            logger.error(
                f"SQLAlchemy error: {request_method} {request_path}",
                exc_info=not self.debug,
            )

        elif isinstance(exc, RedisError):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            error_code = "CACHE_ERROR"
            message = "Cache service temporarily unavailable"
            logger.error(f"Redis error: {request_method} {request_path}", exc_info=True)

        elif isinstance(exc, ValueError):
            status_code = status.HTTP_400_BAD_REQUEST
            error_code = "INVALID_INPUT"
            message = sanitize_error_message(str(exc)) or "Invalid input provided"
            logger.warning(f"Value error: {request_method} {request_path} - {message}")

        elif isinstance(exc, TimeoutError):
            status_code = status.HTTP_504_GATEWAY_TIMEOUT
            error_code = "TIMEOUT"
            message = "The request timed out"
            logger.error(f"Timeout error: {request_method} {request_path}")

        else:
            if self.debug:
                details = get_safe_error_details(exc)
            logger.error(
                f"Unhandled exception: {request_method} {request_path} - "
                f"{type(exc).__name__}: {sanitize_error_message(str(exc))}",
                exc_info=True,
            )

        request_id = None
        for name, value in scope.get("headers") or []:
            if name == b"x-request-id":
                request_id = value.decode()
                break

        return JSONResponse(
            status_code=status_code,
            content=error_body(
                error_code, message, request_path, request_method, details, request_id
            ),
        )


def setup_error_handlers(app):
    """
    Set up exception handlers for FastAPI application.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError):
        """Handle business-rule violations raised by services."""
        logger.warning(
            f"Domain error: {request.method} {request.url.path} - {exc.code}: {exc.message}"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(
                exc.code,
                sanitize_error_message(exc.message),
                str(request.url.path),
                request.method,
                exc.details,
                getattr(request.state, "request_id", None),
            ),
        )

    @app.exception_handler(AuthorizationError)
    async def authorization_exception_handler(request: Request, exc: AuthorizationError):
        """Handle permission failures raised by authorization dependencies."""
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content=error_body(
                "INSUFFICIENT_PERMISSIONS",
                sanitize_error_message(str(exc)),
                str(request.url.path),
                request.method,
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(
                "HTTP_EXCEPTION",
                sanitize_error_message(exc.detail),
                str(request.url.path),
                request.method,
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body(
                "VALIDATION_ERROR",
                "Request validation failed",
                str(request.url.path),
                request.method,
                format_validation_errors(exc),
            ),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        logger.error(
            f"Unhandled exception: {request.method} {request.url.path} - "
            f"{type(exc).__name__}: {sanitize_error_message(str(exc))}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                "INTERNAL_SERVER_ERROR",
                "An unexpected error occurred",
                str(request.url.path),
                request.method,
            ),
        )
