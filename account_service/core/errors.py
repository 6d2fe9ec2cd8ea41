"""API error classes.

HTTP status codes and machine-readable error codes for every failure the
service reports.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""

# Generic message for auth failures. Security: never reveal whether the
# account exists, the password was wrong, or the token was unknown/expired.
GENERIC_AUTH_MESSAGE = "Invalid or expired credentials"


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class AuthError(APIError):
    """Bad credentials or an invalid/expired account token (400).

    The message is deliberately generic so responses cannot be used to
    enumerate accounts or test token validity.
    """

    def __init__(self, message: str = GENERIC_AUTH_MESSAGE) -> None:
        super().__init__(
            code="AUTH_FAILED",
            message=message,
            status_code=400,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid session credential is provided.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to perform the operation (403).

    Use when the session is valid but the caller's role or identity does
    not permit the change.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )


class DataIntegrityError(InternalError):
    """Stored data contradicts itself, e.g. a token whose owner is gone (500).

    The client sees the generic internal-error message. ``detail`` is only
    for the log sink.
    """

    def __init__(self, detail: str) -> None:
        super().__init__()
        self.detail = detail


class TokenIssuanceError(InternalError):
    """Token generation kept colliding past the retry cap (500).

    Collisions are astronomically unlikely, so hitting the cap points at a
    broken generator or store rather than bad luck.
    """

    def __init__(self, attempts: int) -> None:
        super().__init__()
        self.attempts = attempts
        self.detail = f"Token issuance failed after {attempts} colliding attempts"
