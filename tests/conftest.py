"""Shared fixtures and utilities for tests."""

import json
import os
import tempfile
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("EVENT_BROKER_URL", "memory://")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-min-32-chars-long-for-security")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_splits")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("OUTBOX_DISPATCH_ON_COMMIT", "false")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", tempfile.mkdtemp(prefix="splits-storage-"))
os.environ.setdefault("JSON_LOGS", "false")

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.config import settings
from core.storage.local import LocalStorage
from core.utils.datetime import now
from database.engine import Base, get_db
import database.models  # noqa: F401
from database.models import (
    Application,
    Candidate,
    Company,
    Job,
    Membership,
    MembershipRole,
    Organization,
    OrganizationType,
    Recruiter,
    RecruiterReputation,
    RecruiterStatus,
    User,
)


@pytest.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(base_path=str(tmp_path / "documents"))


@pytest.fixture
def transfer_client():
    """Stripe Connect stand-in; every transfer succeeds unless reconfigured."""
    client = AsyncMock()
    client.create_transfer = AsyncMock(return_value="tr_test_123")
    return client


@pytest.fixture
def billing_client():
    """Stripe Billing stand-in; webhook payloads are parsed as plain JSON."""
    client = MagicMock()
    client.create_subscription = AsyncMock()
    client.cancel_subscription = AsyncMock()
    client.construct_event.side_effect = lambda payload, signature: json.loads(payload)
    return client


async def create_user(
    db: AsyncSession,
    role: MembershipRole | None = None,
    name: str = "Test User",
    is_active: bool = True,
) -> User:
    """Create a user, optionally with a membership carrying the given role."""
    suffix = os.urandom(4).hex()
    user = User(
        clerk_user_id=f"user_{suffix}",
        email=f"{suffix}@example.com",
        name=name,
        is_active=is_active,
    )
    if role is not None:
        org_type = (
            OrganizationType.PLATFORM
            if role == MembershipRole.PLATFORM_ADMIN
            else OrganizationType.COMPANY
        )
        organization = Organization(name=f"Org {suffix}", type=org_type)
        db.add(organization)
        await db.flush()
        user.memberships = [Membership(organization_id=organization.id, role=role)]
    db.add(user)
    await db.commit()
    return user


async def create_recruiter(
    db: AsyncSession,
    name: str = "Riley Recruiter",
    stripe_connect_account_id: str | None = "acct_test123",
    status: RecruiterStatus = RecruiterStatus.ACTIVE,
) -> Recruiter:
    user = await create_user(db, MembershipRole.RECRUITER, name=name)
    recruiter = Recruiter(
        user_id=user.id,
        status=status,
        stripe_connect_account_id=stripe_connect_account_id,
    )
    db.add(recruiter)
    await db.flush()
    db.add(RecruiterReputation(recruiter_id=recruiter.id))
    await db.commit()
    return recruiter


async def create_job(
    db: AsyncSession,
    fee_percentage: float = 20.0,
    title: str = "Senior Engineer",
) -> Job:
    company = Company(name="Acme Corp")
    db.add(company)
    await db.flush()
    job = Job(company_id=company.id, title=title, fee_percentage=fee_percentage)
    db.add(job)
    await db.commit()
    return job


async def create_candidate(db: AsyncSession, full_name: str = "Casey Candidate") -> Candidate:
    candidate = Candidate(email=f"{os.urandom(4).hex()}@example.com", full_name=full_name)
    db.add(candidate)
    await db.commit()
    return candidate


@pytest.fixture
async def marketplace(db):
    """A job, a candidate, an active recruiter and an application tying them together."""
    job = await create_job(db)
    candidate = await create_candidate(db)
    recruiter = await create_recruiter(db)
    application = Application(
        job_id=job.id, candidate_id=candidate.id, recruiter_id=recruiter.id
    )
    db.add(application)
    await db.commit()
    return SimpleNamespace(
        job=job, candidate=candidate, recruiter=recruiter, application=application
    )


def make_token(subject: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Sign a token the way the identity provider would."""
    return jwt.encode(
        {"sub": subject, "exp": now() + expires_in},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user.clerk_user_id)}"}


@pytest.fixture
async def api_client(session_factory, storage, transfer_client, billing_client):
    """HTTP client against the app with the test database and fakes wired in."""
    from api.dependencies import get_billing_client, get_document_storage, get_transfer_client
    from api.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_transfer_client] = lambda: transfer_client
    app.dependency_overrides[get_document_storage] = lambda: storage
    app.dependency_overrides[get_billing_client] = lambda: billing_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def admin(db):
    return await create_user(db, MembershipRole.PLATFORM_ADMIN, name="Avery Admin")
