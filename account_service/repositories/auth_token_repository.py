"""Repository for AuthToken CRUD operations.

Single-use verification and password-reset tokens, keyed by token value.
"""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.models.auth_token import AuthToken, TokenType

# SQLSTATE for unique_violation (PostgreSQL / asyncpg)
_PG_UNIQUE_VIOLATION = "23505"

_SQLITE_UNIQUE_ERRORS = frozenset(
    {"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"}
)


def is_unique_violation(exc: IntegrityError) -> bool:
    """Return True if an IntegrityError was caused by a unique constraint.

    Foreign-key and check-constraint violations are IntegrityErrors too;
    only a duplicate value is a collision worth retrying.
    """
    orig = exc.orig
    sqlstate = (
        getattr(orig, "sqlstate", None)
        or getattr(orig, "pgcode", None)
        or getattr(getattr(orig, "__cause__", None), "sqlstate", None)
    )
    if sqlstate is not None:
        return str(sqlstate) == _PG_UNIQUE_VIOLATION

    if getattr(orig, "sqlite_errorname", None) in _SQLITE_UNIQUE_ERRORS:
        return True
    return "UNIQUE constraint failed" in str(orig)


class AuthTokenRepository:
    """Stateless repository for AuthToken table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        token: str,
        token_type: TokenType,
    ) -> AuthToken:
        """Store a new token.

        Args:
            db: Async database session.
            user_id: Owning user.
            token: Token value.
            token_type: What the token authorizes.

        Returns:
            Created AuthToken.

        Raises:
            sqlalchemy.exc.IntegrityError: If the token value already exists
                (or the user does not).
        """
        auth_token = AuthToken(
            token=token,
            user_id=user_id,
            type=token_type.value,
        )
        db.add(auth_token)
        await db.flush()
        return auth_token

    @staticmethod
    async def get(
        db: AsyncSession,
        *,
        token: str,
        token_type: TokenType,
    ) -> AuthToken | None:
        """Look up a token by value, only if it has the expected type.

        A verification token presented to the password-reset flow (or the
        reverse) is treated as absent.

        Args:
            db: Async database session.
            token: Token value.
            token_type: Expected token type.

        Returns:
            AuthToken if found, None otherwise.
        """
        stmt = select(AuthToken).where(
            AuthToken.token == token,
            AuthToken.type == token_type.value,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        token_type: TokenType | None = None,
    ) -> list[AuthToken]:
        """List a user's outstanding tokens, oldest first.

        Inspection helper for tests and operator tooling; the account flows
        only look tokens up by value.
        """
        stmt = select(AuthToken).where(AuthToken.user_id == user_id)
        if token_type is not None:
            stmt = stmt.where(AuthToken.type == token_type.value)
        result = await db.execute(stmt.order_by(AuthToken.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def delete(db: AsyncSession, *, token: str) -> None:
        """Delete a token (single-use cleanup).

        Args:
            db: Async database session.
            token: Token value.
        """
        await db.execute(delete(AuthToken).where(AuthToken.token == token))

    @staticmethod
    async def delete_for_user(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        token_type: TokenType,
    ) -> int:
        """Delete every token of one type for a user.

        Args:
            db: Async database session.
            user_id: Owning user.
            token_type: Token type to clear.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(AuthToken).where(
            AuthToken.user_id == user_id,
            AuthToken.type == token_type.value,
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
