"""Account lifecycle coordination.

Orchestrates the multi-step account flows on top of the repositories, the
token issuer, the session credential encoder, the password hasher and the
email sender:

- signup: user row + verification token + verification email, all-or-nothing
- sign_in: username/password check, session credential issuance
- verify_email: single-use verification token redemption
- request_password_recovery / check_password_reset_token /
  complete_password_recovery: reset-token issuance and redemption
- get_own_user / list_users / update_user / delete_user: user CRUD with
  ownership and role gates

The service holds no per-request state. Every method takes the request's
AsyncSession; collaborators are injected at construction so tests can swap
in fakes.
"""

import html
import uuid
from dataclasses import asdict, dataclass

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.auth import SessionClaims, SessionCredentialEncoder
from account_service.core.email import EmailDeliveryError, EmailMessage, EmailSender
from account_service.core.errors import (
    AuthError,
    DataIntegrityError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from account_service.core.passwords import BcryptPasswordHasher
from account_service.models.auth_token import AuthToken, TokenType
from account_service.models.user import User, UserRole
from account_service.repositories.auth_token_repository import AuthTokenRepository
from account_service.repositories.user_repository import UserRepository
from account_service.services.expiration import ExpirationPolicy
from account_service.services.token_issuer import TokenIssuer

logger = structlog.get_logger()

_SIGNIN_FAILED_MSG = "Invalid username or password"
_ACCOUNT_TAKEN_MSG = "Username or email is already registered"


@dataclass(frozen=True)
class UserPatch:
    """Typed set of user changes.

    ``username``, ``email``, ``name`` and ``password`` are profile fields the
    account owner may change. ``role`` may only be changed by an admin.
    ``None`` means "leave unchanged".
    """

    username: str | None = None
    email: str | None = None
    name: str | None = None
    password: str | None = None
    role: UserRole | None = None

    def profile_fields(self) -> dict[str, str]:
        """Profile fields that are being changed."""
        fields = asdict(self)
        fields.pop("role")
        return {key: value for key, value in fields.items() if value is not None}


class AccountLifecycleService:
    """Coordinates signup, verification, recovery and user updates.

    Args:
        credentials: Session credential encoder.
        issuer: Account token issuer.
        hasher: Password hasher.
        mailer: Email sender.
        reset_expiry: Expiration policy for password-reset tokens.
        verification_expiry: Expiration policy for verification tokens.
        email_from: From address for account emails.
        backend_url: Base URL of this API, used in email links.
    """

    def __init__(
        self,
        *,
        credentials: SessionCredentialEncoder,
        issuer: TokenIssuer,
        hasher: BcryptPasswordHasher,
        mailer: EmailSender,
        reset_expiry: ExpirationPolicy,
        verification_expiry: ExpirationPolicy,
        email_from: str,
        backend_url: str,
    ) -> None:
        self._credentials = credentials
        self._issuer = issuer
        self._hasher = hasher
        self._mailer = mailer
        self._reset_expiry = reset_expiry
        self._verification_expiry = verification_expiry
        self._email_from = email_from
        self._backend_url = backend_url.rstrip("/")

    # ---------------------------------------------------------------
    # Signup / sign-in
    # ---------------------------------------------------------------

    async def signup(
        self,
        db: AsyncSession,
        *,
        username: str,
        email: str,
        password: str,
        name: str,
    ) -> User:
        """Create an unverified account and email its verification link.

        User insert, token insert and email dispatch share one transaction:
        if any step fails, everything is rolled back, including the user.

        Returns:
            The committed User.

        Raises:
            ValidationError: Username or email already taken.
            TokenIssuanceError: Token generation kept colliding.
            EmailDeliveryError: Verification email could not be sent.
        """
        password_hash = self._hasher.hash(password)

        try:
            user = await UserRepository.create(
                db,
                username=username,
                email=email,
                password_hash=password_hash,
                name=name,
            )
        except IntegrityError as exc:
            await db.rollback()
            raise ValidationError(_ACCOUNT_TAKEN_MSG) from exc

        try:
            token = await self._issuer.issue(db, user.id, TokenType.VERIFICATION)
            await self._mailer.send(self._verification_email(user, token))
            await db.commit()
        except Exception:
            await db.rollback()
            logger.warning("Signup rolled back", username=username)
            raise

        logger.info("Account created", user_id=str(user.id))
        return user

    async def sign_in(self, db: AsyncSession, *, username: str, password: str) -> str:
        """Check a username/password pair and issue a session credential.

        Raises:
            AuthError: Unknown username or wrong password (same message).
        """
        user = await UserRepository.get_by_username(db, username)

        # Security: verify() still spends bcrypt time when the user is missing.
        digest = user.password_hash if user else None
        if not self._hasher.verify(password, digest) or user is None:
            raise AuthError(_SIGNIN_FAILED_MSG)

        return self._credentials.encode(user)

    async def authenticate(self, db: AsyncSession, claims: SessionClaims) -> User:
        """Check verified claims against the account as it is stored now.

        A credential outlives role changes, renames and deletion of its
        account; such a credential no longer identifies its bearer.

        Returns:
            The caller's User.

        Raises:
            UnauthorizedError: Account deleted, or its username or role
                differs from the claims.
        """
        user = await UserRepository.get_by_id(db, claims.user_id)
        if (
            user is None
            or user.username != claims.username
            or UserRole(user.role) is not claims.role
        ):
            logger.info("Stale session rejected", user_id=str(claims.user_id))
            raise UnauthorizedError()
        return user

    # ---------------------------------------------------------------
    # Email verification
    # ---------------------------------------------------------------

    async def verify_email(self, db: AsyncSession, token: str) -> bool:
        """Redeem a verification token.

        Returns:
            True if the token was redeemed, False if it was unknown (or
            expired, when verification tokens have a TTL). Replaying a
            redeemed token returns False.

        Raises:
            DataIntegrityError: The token's owner no longer exists.
        """
        auth_token = await AuthTokenRepository.get(
            db, token=token, token_type=TokenType.VERIFICATION
        )
        if auth_token is None or self._verification_expiry.is_expired(auth_token):
            return False

        user = await self._token_owner(db, auth_token)
        await UserRepository.update(db, user.id, verified=True)
        await AuthTokenRepository.delete(db, token=auth_token.token)
        await db.commit()

        logger.info("Email verified", user_id=str(user.id))
        return True

    # ---------------------------------------------------------------
    # Password recovery
    # ---------------------------------------------------------------

    async def request_password_recovery(self, db: AsyncSession, email: str) -> None:
        """Issue a password-reset token and email it, if the account exists.

        Security: returns normally whether or not the email is registered,
        and whether or not the email could be delivered, so callers respond
        identically in every case.
        """
        user = await UserRepository.get_by_email(db, email)
        if user is None:
            logger.info("Password recovery requested for unknown email")
            return

        token = await self._issuer.issue(db, user.id, TokenType.PASSWORD_RESET)
        await db.commit()

        try:
            await self._mailer.send(self._password_reset_email(user, token))
        except EmailDeliveryError:
            logger.exception("Password reset email failed", user_id=str(user.id))

    async def check_password_reset_token(self, db: AsyncSession, token: str) -> None:
        """Confirm a password-reset token is redeemable without consuming it.

        Raises:
            AuthError: Token unknown or expired.
        """
        await self._redeemable_reset_token(db, token)

    async def complete_password_recovery(
        self, db: AsyncSession, token: str, new_password: str
    ) -> str:
        """Set a new password using a reset token, then sign the user in.

        Consumes the token and every other outstanding reset token of the
        same user in the same transaction.

        Returns:
            A fresh session credential.

        Raises:
            AuthError: Token unknown or expired.
            DataIntegrityError: The token's owner no longer exists.
        """
        auth_token = await self._redeemable_reset_token(db, token)
        user = await self._token_owner(db, auth_token)

        await UserRepository.update(
            db, user.id, password_hash=self._hasher.hash(new_password)
        )
        await AuthTokenRepository.delete_for_user(
            db, user_id=user.id, token_type=TokenType.PASSWORD_RESET
        )
        await db.commit()

        logger.info("Password reset", user_id=str(user.id))
        return self._credentials.encode(user)

    # ---------------------------------------------------------------
    # User CRUD
    # ---------------------------------------------------------------

    async def get_own_user(
        self, db: AsyncSession, claims: SessionClaims, user_id: uuid.UUID
    ) -> User:
        """Fetch the caller's own account.

        Raises:
            ValidationError: ``user_id`` is not the caller.
            NotFoundError: The caller's account no longer exists.
        """
        if user_id != claims.user_id:
            raise ValidationError("Only your own account can be looked up")

        user = await UserRepository.get_by_id(db, user_id)
        if user is None:
            raise NotFoundError("User")
        return user

    async def list_users(self, db: AsyncSession, claims: SessionClaims) -> list[User]:
        """List every account (admin only).

        Raises:
            ForbiddenError: Caller is not an admin.
        """
        if not claims.is_admin:
            raise ForbiddenError("Admin access required")
        return await UserRepository.list_all(db)

    async def update_user(
        self,
        db: AsyncSession,
        claims: SessionClaims,
        user_id: uuid.UUID,
        patch: UserPatch,
    ) -> str | None:
        """Apply a patch to an account.

        Profile fields apply only to the caller's own account; ``role``
        only when the caller is an admin. The two sets are written in
        separate persistence calls.

        Returns:
            A refreshed session credential, built from the stored row, when
            the caller's own username or role changed; otherwise None.

        Raises:
            ValidationError: Empty patch, or username/email already taken.
            ForbiddenError: Profile change on someone else's account, or
                role change by a non-admin.
            UnauthorizedError: The caller's own account no longer exists.
            NotFoundError: Role change target does not exist.
        """
        profile = patch.profile_fields()
        if not profile and patch.role is None:
            raise ValidationError("No fields to update")

        is_self = user_id == claims.user_id
        if profile and not is_self:
            raise ForbiddenError("Profile fields can only be changed by the account owner")
        if patch.role is not None and not claims.is_admin:
            raise ForbiddenError("Admin access required")

        if profile:
            password = profile.pop("password", None)
            if password is not None:
                profile["password_hash"] = self._hasher.hash(password)
            try:
                user = await UserRepository.update(db, user_id, **profile)
            except IntegrityError as exc:
                raise ValidationError(_ACCOUNT_TAKEN_MSG) from exc
            if user is None:
                raise UnauthorizedError()

        if patch.role is not None:
            user = await UserRepository.set_role(db, user_id, role=patch.role)
            if user is None:
                raise NotFoundError("User", str(user_id))

        await db.commit()

        if not is_self:
            return None

        changes: dict[str, str] = {}
        if user.username != claims.username:
            changes["username"] = user.username
        if UserRole(user.role) is not claims.role:
            changes["role"] = user.role
        if not changes:
            return None
        return self._credentials.encode_with_updated_attributes(claims, changes)

    async def delete_user(
        self, db: AsyncSession, claims: SessionClaims, user_id: uuid.UUID
    ) -> None:
        """Delete an account (self or admin). Deleting a missing account is a no-op.

        Raises:
            ForbiddenError: Caller is neither the owner nor an admin.
        """
        if user_id != claims.user_id and not claims.is_admin:
            raise ForbiddenError()

        deleted = await UserRepository.delete(db, user_id)
        await db.commit()
        if deleted:
            logger.info("Account deleted", user_id=str(user_id))

    # ---------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------

    async def _redeemable_reset_token(self, db: AsyncSession, token: str) -> AuthToken:
        auth_token = await AuthTokenRepository.get(
            db, token=token, token_type=TokenType.PASSWORD_RESET
        )
        if auth_token is None or self._reset_expiry.is_expired(auth_token):
            raise AuthError()
        return auth_token

    async def _token_owner(self, db: AsyncSession, auth_token: AuthToken) -> User:
        user = await UserRepository.get_by_id(db, auth_token.user_id)
        if user is None:
            raise DataIntegrityError(
                f"{auth_token.type} token references missing user {auth_token.user_id}"
            )
        return user

    def _verification_email(self, user: User, token: str) -> EmailMessage:
        link = f"{self._backend_url}/api/v1/auth/verify/{token}"
        return EmailMessage(
            subject="Account Verification Request",
            to=user.email,
            sender=self._email_from,
            html=(
                f"<p>Hi {html.escape(user.username)}</p>"
                f'<p>Please click on the following <a href="{link}">link</a> '
                "to verify your account.</p>"
                "<p>If you did not request this, please ignore this email.</p>"
            ),
        )

    def _password_reset_email(self, user: User, token: str) -> EmailMessage:
        link = f"{self._backend_url}/api/v1/auth/recovery/verify/{token}"
        return EmailMessage(
            subject="Password Recovery Request",
            to=user.email,
            sender=self._email_from,
            html=(
                f"<p>Hi {html.escape(user.username)}</p>"
                f'<p>Please click on the following <a href="{link}">link</a> '
                "to reset your password.</p>"
                "<p>If you did not request this, please ignore this email and "
                "your password will remain unchanged.</p>"
            ),
        )
