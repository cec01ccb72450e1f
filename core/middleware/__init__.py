"""
Core middleware package.

- Error handling with sensitive data sanitization
- Structured request logging with PII masking
- Redis sliding-window rate limiting
- Bearer JWT authentication
- Role-based authorization
"""

from core.middleware.authentication import (
    AuthenticationMiddleware,
    AuthenticationError,
    get_current_user,
)

from core.middleware.authorization import (
    Permission,
    ROLE_PERMISSIONS,
    check_permission,
    get_user_permissions,
    require_permission,
    AuthorizationError,
    InsufficientPermissions,
)

from core.middleware.error_handling import (
    ErrorHandlingMiddleware,
    setup_error_handlers,
    sanitize_error_message,
)

from core.middleware.logging import (
    StructuredLoggingMiddleware,
    setup_logging,
    get_logger,
)

from core.middleware.rate_limiting import (
    RateLimitMiddleware,
    RateLimitRule,
    RateLimitStrategy,
    RateLimitWindow,
    SlidingWindowRateLimiter,
)

__all__ = [
    # Authentication
    "AuthenticationMiddleware",
    "AuthenticationError",
    "get_current_user",
    # Authorization
    "Permission",
    "ROLE_PERMISSIONS",
    "check_permission",
    "get_user_permissions",
    "require_permission",
    "AuthorizationError",
    "InsufficientPermissions",
    # Error handling
    "ErrorHandlingMiddleware",
    "setup_error_handlers",
    "sanitize_error_message",
    # Logging
    "StructuredLoggingMiddleware",
    "setup_logging",
    "get_logger",
    # Rate limiting
    "RateLimitMiddleware",
    "RateLimitRule",
    "RateLimitStrategy",
    "RateLimitWindow",
    "SlidingWindowRateLimiter",
]
