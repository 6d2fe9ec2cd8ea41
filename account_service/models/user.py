"""User model - account identity and credentials."""

import uuid
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from account_service.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from account_service.models.auth_token import AuthToken


class UserRole(StrEnum):
    """Role embedded in session credentials and checked by admin-only routes."""

    STANDARD = "standard"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    """User account.

    Attributes:
        id: UUID primary key.
        username: Unique login name.
        email: Unique email address, stored lowercase.
        name: Display name.
        password_hash: bcrypt hash.
        role: ``"standard"`` or ``"admin"``.
        verified: Whether the email address has been confirmed.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ('standard', 'admin')",
            name="ck_users_role",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    username: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.STANDARD.value,
        server_default=UserRole.STANDARD.value,
    )
    verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    # Relationships
    tokens: Mapped[list["AuthToken"]] = relationship(
        "AuthToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
