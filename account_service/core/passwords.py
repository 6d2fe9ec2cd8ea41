"""Password hashing with bcrypt.

DUMMY_HASH lets sign-in spend the same bcrypt time whether or not the
username exists.
"""

import bcrypt

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"
_DUMMY_PASSWORD = b"dummy-password"

# bcrypt only reads the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72

_MSG_PASSWORD_TOO_LONG = f"password must be at most {MAX_PASSWORD_BYTES} bytes"


def check_password_length(plain: str) -> str:
    """Reject passwords bcrypt would silently cut short.

    Used by request models so over-long passwords fail with a 400.

    Raises:
        ValueError: Password is longer than MAX_PASSWORD_BYTES in UTF-8.
    """
    if len(plain.encode()) > MAX_PASSWORD_BYTES:
        raise ValueError(_MSG_PASSWORD_TOO_LONG)
    return plain


class BcryptPasswordHasher:
    """Hash and verify passwords with a fixed bcrypt cost factor.

    Args:
        rounds: bcrypt cost factor (log2 of the iteration count).
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        """Return the bcrypt digest of a plain-text password.

        Raises:
            ValueError: Password is longer than MAX_PASSWORD_BYTES.
        """
        secret = check_password_length(plain).encode()
        return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=self.rounds)).decode()

    def verify(self, plain: str, digest: str | None) -> bool:
        """Check a password against a stored digest.

        A missing digest or an over-long password is still compared against
        DUMMY_HASH so the call costs the same either way, then reported as a
        mismatch.
        """
        secret = plain.encode()
        if not digest or len(secret) > MAX_PASSWORD_BYTES:
            bcrypt.checkpw(_DUMMY_PASSWORD, DUMMY_HASH)
            return False
        try:
            return bcrypt.checkpw(secret, digest.encode())
        except ValueError:
            # Stored value is not a bcrypt hash
            return False
