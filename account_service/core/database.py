"""Async database engine and session management.

One engine per process. Request handlers get an AsyncSession through
``get_db``; the accounts schema is created from the ORM metadata with
``create_schema`` (there is no migration history for these two tables).
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from account_service.core.config import settings
from account_service.models import Base


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for an engine.

    Objects stay loaded after commit so handlers can read the committed
    user (id, username, role) without another round trip.
    """
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def create_schema(bind: AsyncEngine) -> None:
    """Create the users and auth_tokens tables if they do not exist."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine = create_async_engine(
    settings.database_url,
    echo=settings.environment == "development",
    pool_pre_ping=True,
)

async_session_factory = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session.

    Commits when the handler returns; rolls back and re-raises on error.
    Services commit their own units of work, so the final commit is usually
    a no-op.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
