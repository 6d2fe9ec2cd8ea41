"""Token issuance with collision retry.

Generates random token strings and persists them, regenerating whenever the
store rejects a value as a duplicate. Each attempt runs in a SAVEPOINT so a
collision does not poison the caller's transaction (signup issues its
verification token inside the same transaction that created the user).
"""

import secrets
import uuid
from collections.abc import Callable
from enum import Enum

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.errors import TokenIssuanceError
from account_service.models.auth_token import TokenType
from account_service.repositories.auth_token_repository import (
    AuthTokenRepository,
    is_unique_violation,
)

logger = structlog.get_logger()

# 16 random bytes -> 22 URL-safe characters
_TOKEN_BYTES = 16

DEFAULT_MAX_ATTEMPTS = 10


def generate_short_token() -> str:
    """Return a fresh URL-safe random token."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


class AttemptOutcome(Enum):
    """Result of one persistence attempt."""

    ISSUED = "issued"
    COLLISION = "collision"


class TokenIssuer:
    """Issue unique account tokens.

    Args:
        generate: Token generator. Injected so tests can force collisions.
        max_attempts: Give up (and raise) after this many collisions.
        store: Token repository.
    """

    def __init__(
        self,
        *,
        generate: Callable[[], str] = generate_short_token,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        store: type[AuthTokenRepository] = AuthTokenRepository,
    ) -> None:
        if max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {max_attempts}"
            raise ValueError(msg)
        self._generate = generate
        self._max_attempts = max_attempts
        self._store = store

    async def issue(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        token_type: TokenType,
    ) -> str:
        """Generate and persist a token for a user.

        Runs in the caller's session; nothing is committed here.

        Args:
            db: Async database session (may already be inside a transaction).
            user_id: Owning user.
            token_type: What the token authorizes.

        Returns:
            The persisted token value.

        Raises:
            TokenIssuanceError: If every attempt collided.
            sqlalchemy.exc.IntegrityError: For any non-uniqueness violation
                (e.g. the user does not exist).
        """
        for attempt in range(1, self._max_attempts + 1):
            token = self._generate()
            outcome = await self._try_persist(db, user_id, token, token_type)
            if outcome is AttemptOutcome.ISSUED:
                return token
            logger.warning(
                "Token collision, regenerating",
                purpose=token_type.value,
                attempt=attempt,
            )

        raise TokenIssuanceError(self._max_attempts)

    async def _try_persist(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        token: str,
        token_type: TokenType,
    ) -> AttemptOutcome:
        try:
            async with db.begin_nested():
                await self._store.create(
                    db, user_id=user_id, token=token, token_type=token_type
                )
        except IntegrityError as exc:
            if is_unique_violation(exc):
                return AttemptOutcome.COLLISION
            raise
        return AttemptOutcome.ISSUED
