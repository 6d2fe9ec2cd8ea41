"""Shared dependencies for API endpoints.

Session credentials are read from the httpOnly cookie, verified, and then
checked against the stored account on every authenticated request. The
account service is built from settings once per process and can be replaced
via ``app.dependency_overrides`` in tests.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.auth import (
    InvalidCredentialError,
    SessionClaims,
    build_credential_encoder,
)
from account_service.core.config import settings
from account_service.core.database import get_db
from account_service.core.email import build_email_sender
from account_service.core.errors import UnauthorizedError
from account_service.core.passwords import BcryptPasswordHasher
from account_service.services.account_lifecycle import AccountLifecycleService
from account_service.services.expiration import ExpirationPolicy
from account_service.services.token_issuer import TokenIssuer


@lru_cache
def get_account_service() -> AccountLifecycleService:
    """Build the account service from settings (cached per process)."""
    return AccountLifecycleService(
        credentials=build_credential_encoder(),
        issuer=TokenIssuer(max_attempts=settings.token_issue_max_attempts),
        hasher=BcryptPasswordHasher(rounds=settings.bcrypt_rounds),
        mailer=build_email_sender(),
        reset_expiry=ExpirationPolicy.from_minutes(
            settings.password_reset_token_ttl_minutes
        ),
        verification_expiry=ExpirationPolicy.from_minutes(
            settings.verification_token_ttl_minutes
        ),
        email_from=settings.email_from,
        backend_url=settings.backend_url,
    )


DbSession = Annotated[AsyncSession, Depends(get_db)]
AccountService = Annotated[AccountLifecycleService, Depends(get_account_service)]


def read_session_claims(request: Request) -> SessionClaims:
    """Decode the session cookie into verified claims.

    Validation steps:
    1. Read credential from cookie
    2. Verify signature (HS256), exp, aud, iss
    3. Check the claim schema (sub, usr, role, iat)

    Args:
        request: HTTP request (injected by FastAPI).

    Returns:
        SessionClaims carried by the cookie.

    Raises:
        UnauthorizedError: 401 for any credential failure.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        raise UnauthorizedError()

    try:
        return build_credential_encoder().decode(token)
    except InvalidCredentialError as exc:
        # Security: never say WHY the credential failed.
        raise UnauthorizedError() from exc


async def get_current_claims(
    claims: Annotated[SessionClaims, Depends(read_session_claims)],
    db: DbSession,
    accounts: AccountService,
) -> SessionClaims:
    """Get the session claims of the caller, still valid for the stored account.

    Raises:
        UnauthorizedError: 401 when the cookie is invalid, or the account was
            deleted, renamed or had its role changed since the credential was
            issued.
    """
    await accounts.authenticate(db, claims)
    return claims


# Reusable type aliases for dependency injection
CurrentClaims = Annotated[SessionClaims, Depends(get_current_claims)]
