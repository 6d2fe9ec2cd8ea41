"""Application configuration loaded from environment variables.

Settings for database, API, session credentials, account tokens, email and
rate limiting. Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "accounts_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "accounts"
    database_user: str = "accounts_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = False

    # Session credential (JWT in an httpOnly cookie)
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "account-service"
    auth_audience: str = "account-service"
    auth_cookie_name: str = "accounts.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict"] = "lax"
    auth_cookie_domain: str = ""
    session_ttl_minutes: int = 60

    # Account tokens
    # Verification tokens never expire unless a TTL is configured.
    password_reset_token_ttl_minutes: int = 60
    verification_token_ttl_minutes: int | None = None
    token_issue_max_attempts: int = 10

    # Password hashing
    bcrypt_rounds: int = 12

    # Email
    email_from: str = "noreply@accounts.local"
    resend_api_key: SecretStr = SecretStr("")

    # Browser-facing redirects (login, recovery pages) land on the frontend
    frontend_url: str = "http://localhost:3000"

    # Links in emails must hit the API directly
    backend_url: str = "http://localhost:8000"

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_signin: str = "5/15minute"
    rate_limit_signup: str = "3/hour"
    rate_limit_recovery: str = "5/hour"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate production security requirements.

        Checks:
        - Token TTLs and retry cap must be positive (all environments)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.session_ttl_minutes <= 0:
            msg = f"SESSION_TTL_MINUTES must be positive. Got: {self.session_ttl_minutes}"
            raise ValueError(msg)
        if self.password_reset_token_ttl_minutes <= 0:
            msg = (
                "PASSWORD_RESET_TOKEN_TTL_MINUTES must be positive. "
                f"Got: {self.password_reset_token_ttl_minutes}"
            )
            raise ValueError(msg)
        if (
            self.verification_token_ttl_minutes is not None
            and self.verification_token_ttl_minutes <= 0
        ):
            msg = (
                "VERIFICATION_TOKEN_TTL_MINUTES must be positive when set. "
                f"Got: {self.verification_token_ttl_minutes}"
            )
            raise ValueError(msg)
        if self.token_issue_max_attempts < 1:
            msg = (
                "TOKEN_ISSUE_MAX_ATTEMPTS must be at least 1. "
                f"Got: {self.token_issue_max_attempts}"
            )
            raise ValueError(msg)

        # CORS wildcard with credentials is invalid (all environments)
        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
