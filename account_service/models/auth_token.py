"""Account token model - email verification and password reset tokens.

Single-use tokens looked up by their value. A user may hold several tokens
of the same type at once; there is no uniqueness constraint on
(user_id, type).
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from account_service.models.base import Base, utcnow

if TYPE_CHECKING:
    from account_service.models.user import User


class TokenType(StrEnum):
    """What an account token authorizes its holder to do."""

    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


class AuthToken(Base):
    """Single-use account token.

    Attributes:
        token: Token value sent to the user (primary key).
        user_id: Owning user.
        type: ``"verification"`` or ``"password_reset"``.
        created_at: Issue time; expiry is computed from it at redemption.
    """

    __tablename__ = "auth_tokens"
    __table_args__ = (
        CheckConstraint(
            "type IN ('verification', 'password_reset')",
            name="ck_auth_tokens_type",
        ),
        Index("ix_auth_tokens_user_id_type", "user_id", "type"),
    )

    token: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="tokens")
