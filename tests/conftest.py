"""Shared test fixtures.

Tests run against an in-memory SQLite database (aiosqlite) shared through a
StaticPool, so every session in a test sees the same data. SQLite needs two
connection hooks to behave like PostgreSQL here: foreign keys on (ON DELETE
CASCADE) and explicit BEGIN so SAVEPOINTs work under the async driver.
"""

from collections.abc import AsyncGenerator, Iterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from account_service.core.auth import build_credential_encoder
from account_service.core.config import settings
from account_service.core.database import build_session_factory, create_schema
from account_service.core.email import EmailDeliveryError, EmailMessage
from account_service.core.passwords import BcryptPasswordHasher
from account_service.core.rate_limiting import limiter
from account_service.models import User, UserRole
from account_service.repositories.user_repository import UserRepository
from account_service.services.account_lifecycle import AccountLifecycleService
from account_service.services.expiration import ExpirationPolicy
from account_service.services.token_issuer import TokenIssuer

TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105

TEST_BACKEND_URL = "http://api.example.com"
TEST_FRONTEND_URL = "http://app.example.com"
TEST_EMAIL_FROM = "noreply@example.com"

# Minimum bcrypt cost; production uses settings.bcrypt_rounds.
_TEST_BCRYPT_ROUNDS = 4


class RecordingEmailSender:
    """Email sender that keeps messages in memory.

    Set ``fail`` to make every send raise EmailDeliveryError.
    """

    def __init__(self) -> None:
        self.messages: list[EmailMessage] = []
        self.fail = False

    async def send(self, message: EmailMessage) -> None:
        if self.fail:
            raise EmailDeliveryError("provider unavailable")
        self.messages.append(message)


def link_token(message: EmailMessage) -> str:
    """Extract the token from the link in an account email."""
    href = message.html.split('href="', 1)[1].split('"', 1)[0]
    return href.rstrip("/").rsplit("/", 1)[1]


@pytest.fixture(autouse=True)
def configure_test_settings() -> Iterator[None]:
    """Test secret, test URLs, and rate limiting off for every test."""
    original = {
        "auth_secret": settings.auth_secret,
        "frontend_url": settings.frontend_url,
        "backend_url": settings.backend_url,
    }
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.frontend_url = TEST_FRONTEND_URL
    settings.backend_url = TEST_BACKEND_URL
    limiter.enabled = False

    yield

    for key, value in original.items():
        setattr(settings, key, value)
    limiter.enabled = settings.rate_limit_enabled


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory database with the full schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        # Let SQLAlchemy emit BEGIN itself (needed for SAVEPOINT support)
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session.

    Do not hold this session open across HTTP calls made with ``client``:
    the database has a single shared connection.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def hasher() -> BcryptPasswordHasher:
    return BcryptPasswordHasher(rounds=_TEST_BCRYPT_ROUNDS)


@pytest.fixture
def mailer() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def account_service(
    hasher: BcryptPasswordHasher, mailer: RecordingEmailSender
) -> AccountLifecycleService:
    """Account service wired to the recording mailer and fast bcrypt."""
    return AccountLifecycleService(
        credentials=build_credential_encoder(),
        issuer=TokenIssuer(),
        hasher=hasher,
        mailer=mailer,
        reset_expiry=ExpirationPolicy.from_minutes(
            settings.password_reset_token_ttl_minutes
        ),
        verification_expiry=ExpirationPolicy(None),
        email_from=TEST_EMAIL_FROM,
        backend_url=TEST_BACKEND_URL,
    )


async def create_user(
    session_factory: async_sessionmaker[AsyncSession],
    hasher: BcryptPasswordHasher,
    *,
    username: str,
    email: str,
    password: str = "p",
    name: str = "Test User",
    role: UserRole = UserRole.STANDARD,
    verified: bool = True,
) -> User:
    """Insert and commit a user in its own short-lived session."""
    async with session_factory() as session:
        user = await UserRepository.create(
            session,
            username=username,
            email=email,
            password_hash=hasher.hash(password),
            name=name,
            role=role,
        )
        if verified:
            user = await UserRepository.update(session, user.id, verified=True)
        await session.commit()
    return user


@pytest_asyncio.fixture
async def test_user(
    session_factory: async_sessionmaker[AsyncSession], hasher: BcryptPasswordHasher
) -> User:
    """Verified standard user ``al`` / ``a@x.com`` / password ``p``."""
    return await create_user(
        session_factory, hasher, username="al", email="a@x.com", name="Al"
    )


@pytest_asyncio.fixture
async def admin_user(
    session_factory: async_sessionmaker[AsyncSession], hasher: BcryptPasswordHasher
) -> User:
    """Verified admin user."""
    return await create_user(
        session_factory,
        hasher,
        username="root",
        email="root@x.com",
        name="Root",
        role=UserRole.ADMIN,
    )


def session_token_for(user: User) -> str:
    """Issue a session credential for a user with the test secret."""
    return build_credential_encoder().encode(user)


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    account_service: AccountLifecycleService,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for API tests (no session cookie).

    Sets up:
    - Test database connection via dependency override
    - Account service with the recording mailer via dependency override
    - httpx.AsyncClient with ASGI transport, redirects not followed

    Yields:
        Configured AsyncClient.
    """
    from account_service.api.deps import get_account_service
    from account_service.core.database import get_db
    from account_service.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_account_service] = lambda: account_service

    # raise_app_exceptions=False: unhandled errors come back as the 500 envelope
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=False,
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def sign_in_as(client: AsyncClient, user: User) -> None:
    """Attach a session cookie for ``user`` to the client."""
    client.cookies.clear()
    client.cookies.set(settings.auth_cookie_name, session_token_for(user))
