"""SQLAlchemy ORM models for the account service.

All models are exported from this module for convenient imports:
    from account_service.models import User, AuthToken

- user.py: User, UserRole
- auth_token.py: AuthToken, TokenType (FK to users)
"""

from account_service.models.auth_token import AuthToken, TokenType
from account_service.models.base import Base, TimestampMixin
from account_service.models.user import User, UserRole

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tier 0
    "User",
    "UserRole",
    # Tier 1
    "AuthToken",
    "TokenType",
]
