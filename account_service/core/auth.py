"""Session credentials: signed JWTs carried in an httpOnly cookie.

Pipeline:
- SessionCredentialEncoder.encode: credential issuance after sign-in/recovery
- SessionCredentialEncoder.decode: signature + claim-schema check per request
- SessionCredentialEncoder.encode_with_updated_attributes: re-sign after a
  username change so the client's embedded username is not stale
- set_auth_cookie / clear_auth_cookie: cookie transport
"""

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Protocol

import jwt
from fastapi import Response

from account_service.core.config import settings
from account_service.models.user import UserRole

_ALGORITHM = "HS256"

# Claims every credential must carry; anything missing is a forgery or a
# credential from an older schema.
_REQUIRED_CLAIMS = ["sub", "usr", "role", "iat", "exp", "aud", "iss"]

# Identity attributes that may be re-signed in place after the owner changes
# them (or an admin changes their own role).
_UPDATABLE_CLAIMS: frozenset[str] = frozenset({"username", "role"})


class InvalidCredentialError(Exception):
    """Session credential is tampered, malformed, expired, or off-schema."""


class CredentialSubject(Protocol):
    """Anything carrying the identity fields a credential embeds."""

    id: uuid.UUID
    username: str
    role: str


@dataclass(frozen=True)
class SessionClaims:
    """Verified identity extracted from a session credential.

    Attributes:
        user_id: Account UUID (``sub`` claim).
        username: Username at issue time (``usr`` claim).
        role: Account role at issue time (``role`` claim).
        issued_at: Issue time (``iat`` claim).
    """

    user_id: uuid.UUID
    username: str
    role: UserRole
    issued_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


class SessionCredentialEncoder:
    """Builds and validates HS256 session credentials over a fixed claim schema.

    Args:
        secret: HMAC signing secret.
        issuer: Value for the ``iss`` claim.
        audience: Value for the ``aud`` claim.
        ttl: Credential lifetime; also the cookie max-age.
    """

    def __init__(
        self,
        *,
        secret: str,
        issuer: str,
        audience: str,
        ttl: timedelta,
    ) -> None:
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self.ttl = ttl

    def encode(self, user: CredentialSubject, *, issued_at: datetime | None = None) -> str:
        """Create a credential for a user.

        Deterministic for a given user, secret and ``issued_at``.

        Args:
            user: User (or any object with id, username, role).
            issued_at: Issue time. Defaults to now.

        Returns:
            Encoded JWT string.
        """
        return self._encode(
            user_id=user.id,
            username=user.username,
            role=UserRole(user.role),
            issued_at=issued_at,
        )

    def decode(self, credential: str) -> SessionClaims:
        """Verify a credential and extract its claims.

        Args:
            credential: Encoded JWT string from the cookie.

        Returns:
            Verified SessionClaims.

        Raises:
            InvalidCredentialError: On bad signature, expiry, wrong audience or
                issuer, missing claims, or claim values outside the schema.
        """
        try:
            payload = jwt.decode(
                credential,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidCredentialError("Credential failed verification") from exc

        try:
            user_id = uuid.UUID(payload["sub"])
            role = UserRole(payload["role"])
            issued_at = datetime.fromtimestamp(payload["iat"], UTC)
        except (KeyError, ValueError, TypeError, OverflowError) as exc:
            raise InvalidCredentialError("Credential claims are malformed") from exc

        username = payload["usr"]
        if not isinstance(username, str) or not username:
            raise InvalidCredentialError("Credential claims are malformed")

        return SessionClaims(
            user_id=user_id,
            username=username,
            role=role,
            issued_at=issued_at,
        )

    def encode_with_updated_attributes(
        self,
        claims: SessionClaims,
        changes: Mapping[str, str],
        *,
        issued_at: datetime | None = None,
    ) -> str:
        """Re-sign a credential after an in-place identity change.

        Args:
            claims: Claims of the caller's current (verified) credential.
            changes: Attribute names and new values. Only ``username`` and
                ``role``.
            issued_at: Issue time for the new credential. Defaults to now.

        Returns:
            Encoded JWT string reflecting the changes.

        Raises:
            ValueError: If ``changes`` names an attribute that cannot be
                updated without re-authentication.
        """
        unknown = set(changes) - _UPDATABLE_CLAIMS
        if unknown:
            msg = f"Cannot update credential attributes: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        updated = replace(claims, **changes)
        updated = replace(updated, role=UserRole(updated.role))
        return self._encode(
            user_id=updated.user_id,
            username=updated.username,
            role=updated.role,
            issued_at=issued_at,
        )

    def _encode(
        self,
        *,
        user_id: uuid.UUID,
        username: str,
        role: UserRole,
        issued_at: datetime | None,
    ) -> str:
        iat = (issued_at or datetime.now(UTC)).replace(microsecond=0)
        payload = {
            "sub": str(user_id),
            "usr": username,
            "role": role.value,
            "aud": self._audience,
            "iss": self._issuer,
            "iat": iat,
            "exp": iat + self.ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)


def build_credential_encoder() -> SessionCredentialEncoder:
    """Create an encoder from the current settings."""
    return SessionCredentialEncoder(
        secret=settings.auth_secret.get_secret_value(),
        issuer=settings.auth_issuer,
        audience=settings.auth_audience,
        ttl=timedelta(minutes=settings.session_ttl_minutes),
    )


def set_auth_cookie(response: Response, token: str) -> None:
    """Set httpOnly session cookie on response.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.

    Args:
        response: FastAPI response object.
        token: Encoded session credential.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=settings.session_ttl_minutes * 60,
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookie(response: Response) -> None:
    """Expire the session cookie.

    Attributes must match set_auth_cookie() for the browser to delete it.
    """
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )
