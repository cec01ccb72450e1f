"""
FastAPI application initialization and configuration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from database.engine import init_db, close_db
from api.routes import health
from api.routes.v1 import (
    applications,
    documents,
    jobs,
    payouts,
    placements,
    proposals,
    recruiters,
    sourcing,
    subscriptions,
    users,
)

from core.middleware import (
    ErrorHandlingMiddleware,
    setup_error_handlers,
    StructuredLoggingMiddleware,
    setup_logging,
    RateLimitMiddleware,
    RateLimitRule,
    RateLimitStrategy,
    RateLimitWindow,
    AuthenticationMiddleware,
)

# Setup structured logging before anything else logs
setup_logging(
    log_level=settings.log_level,
    json_logs=settings.json_logs,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info(f"Starting {settings.app_name} in {settings.app_env} environment")
    await init_db()

    yield

    logger.info(f"Shutting down {settings.app_name}")
    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="Split-fee recruiting marketplace API",
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

setup_error_handlers(app)

# Middleware executes in reverse order of registration.
# 1. Rate limiting (innermost, sees the verified token subject)
if settings.rate_limit_enabled:
    rate_limit_rules = [
        RateLimitRule(
            strategy=RateLimitStrategy.USER_ID,
            window=RateLimitWindow.MINUTE,
            max_requests=settings.rate_limit_per_minute,
        ),
        RateLimitRule(
            strategy=RateLimitStrategy.USER_ID,
            window=RateLimitWindow.HOUR,
            max_requests=settings.rate_limit_per_hour,
        ),
        # Unauthenticated traffic
        RateLimitRule(
            strategy=RateLimitStrategy.IP_ADDRESS,
            window=RateLimitWindow.MINUTE,
            max_requests=settings.rate_limit_per_minute * 2,
        ),
    ]

    app.add_middleware(
        RateLimitMiddleware,
        redis_url=str(settings.redis_url),
        rules=rate_limit_rules,
        key_prefix="splits:ratelimit",
        enable_headers=True,
    )

# 2. Authentication (verifies bearer tokens)
app.add_middleware(
    AuthenticationMiddleware,
    jwt_secret=settings.jwt_secret_key,
    jwt_algorithm=settings.jwt_algorithm,
    jwks_url=settings.clerk_jwks_url,
    issuer=settings.clerk_issuer,
)

# 3. Structured logging (logs all requests/responses)
app.add_middleware(
    StructuredLoggingMiddleware,
    log_request_body=settings.log_request_body,
    max_body_size=settings.log_max_body_size,
)

# 4. Error handling (catches anything that escapes)
app.add_middleware(
    ErrorHandlingMiddleware,
    debug=settings.debug,
)

# 5. CORS (outermost)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])

for module in (
    jobs, recruiters, applications, proposals, placements, payouts,
    documents, sourcing, subscriptions, users,
):
    app.include_router(module.router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
