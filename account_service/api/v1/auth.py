"""Authentication endpoints: signup, sign-in, email verification, recovery.

Security considerations:
- signin: constant-time comparison via DUMMY_HASH prevents user enumeration
- signup: user, verification token and email are one transaction
- recovery: identical response whether or not the email is registered
- every token failure returns the same generic 400
"""

from fastapi import APIRouter, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from account_service.api.deps import AccountService, DbSession
from account_service.core.auth import clear_auth_cookie, set_auth_cookie
from account_service.core.config import settings
from account_service.core.passwords import check_password_length
from account_service.core.rate_limiting import limiter
from account_service.core.responses import DataResponse

router = APIRouter()


def _frontend_redirect(path: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{settings.frontend_url.rstrip('/')}{path}", status_code=302
    )


# ===================================================================
# Request models
# ===================================================================


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    name: str = Field(min_length=1, max_length=255)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return check_password_length(v)


class SigninRequest(BaseModel):
    """Request body for POST /auth/signin."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=128)


class RecoveryRequest(BaseModel):
    """Request body for POST /auth/recovery."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/recovery/{token}."""

    model_config = ConfigDict(extra="forbid")

    password: str = Field(min_length=1, max_length=128)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return check_password_length(v)


# ===================================================================
# Signup / sign-in / logout
# ===================================================================


@router.post("/signup", status_code=204)
@limiter.limit(settings.rate_limit_signup)
async def signup(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SignupRequest,
    db: DbSession,
    accounts: AccountService,
) -> None:
    """Create an account and send its verification email.

    Rate limit: settings.rate_limit_signup per IP.
    """
    await accounts.signup(
        db,
        username=body.username,
        email=body.email,
        password=body.password,
        name=body.name,
    )


@router.post("/signin")
@limiter.limit(settings.rate_limit_signin)
async def signin(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SigninRequest,
    response: Response,
    db: DbSession,
    accounts: AccountService,
) -> DataResponse[dict]:
    """Verify username + password and issue the session cookie.

    Rate limit: settings.rate_limit_signin per IP.
    """
    token = await accounts.sign_in(db, username=body.username, password=body.password)
    set_auth_cookie(response, token)
    return DataResponse(data={"token": token})


@router.post("/logout", status_code=204)
async def logout(response: Response) -> None:
    """Clear the session cookie. Always succeeds."""
    clear_auth_cookie(response)


# ===================================================================
# Email verification
# ===================================================================


@router.get("/verify/{token}")
async def verify_email(
    token: str,
    db: DbSession,
    accounts: AccountService,
) -> RedirectResponse:
    """Redeem a verification link, then send the browser to the login page.

    The redirect is the same whether or not the token was valid.
    """
    await accounts.verify_email(db, token)
    return _frontend_redirect("/login")


# ===================================================================
# Password recovery
# ===================================================================


@router.post("/recovery")
@limiter.limit(settings.rate_limit_recovery)
async def request_recovery(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RecoveryRequest,
    db: DbSession,
    accounts: AccountService,
) -> RedirectResponse:
    """Email a password-reset link if the address is registered.

    Security: the redirect is identical for known and unknown addresses.

    Rate limit: settings.rate_limit_recovery per IP.
    """
    await accounts.request_password_recovery(db, body.email)
    return _frontend_redirect("/recover/sent")


@router.get("/recovery/verify/{token}")
async def verify_recovery_token(
    token: str,
    db: DbSession,
    accounts: AccountService,
) -> RedirectResponse:
    """Check a reset link and forward to the frontend's new-password form."""
    await accounts.check_password_reset_token(db, token)
    return _frontend_redirect(f"/recover/{token}")


@router.post("/recovery/{token}")
@limiter.limit(settings.rate_limit_recovery)
async def reset_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    token: str,
    body: ResetPasswordRequest,
    response: Response,
    db: DbSession,
    accounts: AccountService,
) -> DataResponse[dict]:
    """Set a new password from a reset link and sign the user in."""
    credential = await accounts.complete_password_recovery(db, token, body.password)
    set_auth_cookie(response, credential)
    return DataResponse(data={"token": credential})
