"""Token expiration policy.

A token is expired once its age reaches the TTL: a token exactly TTL old is
rejected. Expired tokens are not purged; they are refused at redemption.
"""

from datetime import UTC, datetime, timedelta
from typing import Protocol


class IssuedToken(Protocol):
    """Anything with an issue timestamp."""

    created_at: datetime


class ExpirationPolicy:
    """Decide whether a token has aged out.

    Args:
        ttl: Time window during which a token is redeemable. ``None`` means
            tokens never expire.
    """

    def __init__(self, ttl: timedelta | None) -> None:
        self.ttl = ttl

    @classmethod
    def from_minutes(cls, minutes: int | None) -> "ExpirationPolicy":
        """Build a policy from a TTL in minutes (``None`` for no expiry)."""
        return cls(timedelta(minutes=minutes) if minutes is not None else None)

    def is_expired(self, token: IssuedToken, now: datetime | None = None) -> bool:
        """Return True if ``now - token.created_at >= ttl``.

        Args:
            token: Token (or any object with ``created_at``).
            now: Reference time. Defaults to the current UTC time.
        """
        if self.ttl is None:
            return False

        created_at = token.created_at
        # Some drivers (SQLite) hand back naive datetimes; they are stored as UTC.
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)

        reference = now or datetime.now(UTC)
        return reference - created_at >= self.ttl
