"""Repository for User CRUD operations.

Provides database access for the users table.
"""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.models.user import User, UserRole

# Fields that may be updated via UserRepository.update().
# Security: role is excluded to prevent mass-assignment privilege escalation.
# Use set_role() for explicit role changes.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "username",
        "email",
        "name",
        "password_hash",
        "verified",
    }
)

# Columns find() may filter on.
_FILTERABLE_FIELDS: frozenset[str] = frozenset(
    {"id", "username", "email", "role", "verified"}
)


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_username(db: AsyncSession, username: str) -> User | None:
        """Fetch a user by exact username."""
        stmt = select(User).where(User.username == username)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def find(db: AsyncSession, **filters: object) -> list[User]:
        """Fetch users matching every given column filter.

        Args:
            db: Async database session.
            **filters: Column names and the values they must equal.

        Returns:
            Matching users (possibly empty).

        Raises:
            ValueError: If a filter names an unknown column.
        """
        unknown = set(filters) - _FILTERABLE_FIELDS
        if unknown:
            msg = f"Unknown filter fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        stmt = select(User).filter_by(**filters).order_by(User.created_at)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_all(db: AsyncSession) -> list[User]:
        """Fetch every user, oldest first."""
        result = await db.execute(select(User).order_by(User.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        username: str,
        email: str,
        password_hash: str,
        name: str,
        role: UserRole = UserRole.STANDARD,
    ) -> User:
        """Create a new, unverified user.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            username: Unique login name.
            email: User email address.
            password_hash: bcrypt hash.
            name: Display name.
            role: Initial role.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If username or email already exists.
        """
        user = User(
            username=username,
            email=email.strip().lower(),
            password_hash=password_hash,
            name=name,
            role=role.value,
            verified=False,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | bool,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
            sqlalchemy.exc.IntegrityError: If a new username/email is taken.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            if field == "email" and isinstance(value, str):
                value = value.strip().lower()
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def set_role(
        db: AsyncSession, user_id: uuid.UUID, *, role: UserRole
    ) -> User | None:
        """Set the role for a user.

        Separated from update() to prevent mass-assignment privilege
        escalation. Only call from admin-gated paths.

        Args:
            db: Async database session.
            user_id: UUID of the user.
            role: New role.

        Returns:
            Updated User if found, None if user does not exist.
        """
        user = await db.get(User, user_id)
        if user is None:
            return None
        user.role = role.value
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def delete(db: AsyncSession, user_id: uuid.UUID) -> bool:
        """Delete a user. Their tokens go with them (ON DELETE CASCADE).

        Args:
            db: Async database session.
            user_id: UUID of the user.

        Returns:
            True if a row was deleted, False if the user did not exist.
        """
        result = await db.execute(delete(User).where(User.id == user_id))
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count > 0
