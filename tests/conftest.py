"""
Pytest configuration and fixtures for testing.

Tests run against an in-memory SQLite database (aiosqlite). Each test gets a
fresh schema created from the SQLModel metadata, so tests never see each
other's rows. The rate limiter is replaced with an in-memory store driven by
a controllable clock.
"""

import os

# Settings are read at import time, so the environment must be in place
# before anything from authserver is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production-use-0123456789")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import authserver.models  # noqa: E402, F401
from authserver.core.database import get_db  # noqa: E402
from authserver.main import app as main_app  # noqa: E402
from authserver.models.api_credential import ApiCredentials  # noqa: E402
from authserver.models.authorization_code import AuthorizationCodes  # noqa: E402
from authserver.models.user import Users  # noqa: E402
from authserver.services.credentials import create_credential  # noqa: E402
from authserver.services.oauth_sessions import create_session, mark_authorized  # noqa: E402
from authserver.services.rate_limit import InMemoryRateLimitStore, RateLimiter, get_rate_limiter  # noqa: E402
from authserver.services.tokens import create_authorization_code, issue_token_pair  # noqa: E402

TEST_REDIRECT_URI = "https://app.example/cb"
TEST_SCOPES = ["openid", "profile", "email"]


class FakeClock:
    """Deterministic clock for the rate limiter (seconds since the epoch)."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
async def engine():
    """
    Create a fresh in-memory database for each test.

    StaticPool keeps a single connection open, so every session in the test
    sees the same in-memory database.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a new database session for each test.

    The same session is handed to the application, so rows created by a test
    are visible to the endpoint it calls and vice versa.
    """
    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_limiter(clock: FakeClock) -> RateLimiter:
    """Limiter over a fresh in-memory store; advance `clock` to move windows."""
    return RateLimiter(InMemoryRateLimitStore(), clock=clock)


@pytest.fixture(scope="function")
def app(db_session: AsyncSession, rate_limiter: RateLimiter) -> FastAPI:
    """
    Create FastAPI app with test database session and rate limiter.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    yield main_app

    main_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
async def user(db_session: AsyncSession) -> Users:
    """An end user who has signed in before."""
    test_user = Users(
        id="user-ada",
        email="ada@example.com",
        display_name="Ada Lovelace",
        photo_url="https://img.example/ada.png",
        provider="google",
        email_verified=True,
    )
    db_session.add(test_user)
    await db_session.commit()
    return test_user


@pytest.fixture
async def credential(db_session: AsyncSession) -> ApiCredentials:
    """
    A registered client application.

    Redirect URI: https://app.example/cb
    Scopes: openid, profile, email
    """
    test_credential = await create_credential(
        db_session,
        user_id="developer-1",
        name="Test App",
        redirect_uris=[TEST_REDIRECT_URI],
        scopes=TEST_SCOPES,
        description="Client used by the test suite",
    )
    await db_session.commit()
    return test_credential


@pytest.fixture
def make_code(db_session: AsyncSession, credential: ApiCredentials, user: Users):
    """
    Factory for authorization codes, as /auth/complete would mint them.

    Usage:
        code = await make_code(scopes=["openid"], code_challenge=challenge)
    """

    async def _make_code(
        scopes: list[str] | None = None,
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
        redirect_uri: str = TEST_REDIRECT_URI,
        for_credential: ApiCredentials | None = None,
    ) -> AuthorizationCodes:
        session = await create_session(
            db_session,
            for_credential or credential,
            redirect_uri=redirect_uri,
            scopes=scopes or list(TEST_SCOPES),
            state="xyz",
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )
        await mark_authorized(db_session, session.session_id, user.id)
        code = await create_authorization_code(db_session, session, user.id)
        await db_session.commit()
        return code

    return _make_code


@pytest.fixture
def make_tokens(db_session: AsyncSession, credential: ApiCredentials, user: Users):
    """
    Factory for access/refresh token pairs bound to an authorized session.

    Usage:
        access_token, refresh_token = await make_tokens(scopes=["openid"])
    """

    async def _make_tokens(scopes: list[str] | None = None):
        granted = scopes or list(TEST_SCOPES)
        session = await create_session(
            db_session, credential, redirect_uri=TEST_REDIRECT_URI, scopes=granted
        )
        await mark_authorized(db_session, session.session_id, user.id)
        pair = await issue_token_pair(
            db_session,
            user_id=user.id,
            credential_id=credential.id,
            session_id=session.session_id,
            scopes=granted,
        )
        await db_session.commit()
        return pair

    return _make_tokens
