"""Tests for UserRepository.

CRUD operations, username/email uniqueness, field allow-lists, and
not-found cases.
"""

import uuid

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.models.auth_token import TokenType
from account_service.models.user import User, UserRole
from account_service.repositories.auth_token_repository import AuthTokenRepository
from account_service.repositories.user_repository import UserRepository

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")


async def _create(db: AsyncSession, username: str = "al", email: str = "a@x.com") -> User:
    return await UserRepository.create(
        db,
        username=username,
        email=email,
        password_hash="$2b$04$hash",
        name="Al",
    )


class TestCreate:
    """Test UserRepository.create()."""

    async def test_creates_unverified_standard_user(self, db_session: AsyncSession):
        """New users start unverified with the standard role."""
        user = await _create(db_session)

        assert user.id is not None
        assert user.username == "al"
        assert user.verified is False
        assert user.role == UserRole.STANDARD
        assert user.created_at is not None

    async def test_email_is_lowercased(self, db_session: AsyncSession):
        """Email is normalized before storage."""
        user = await _create(db_session, email="  A@X.COM ")
        assert user.email == "a@x.com"

    async def test_duplicate_username_raises(self, db_session: AsyncSession):
        """Usernames are unique."""
        await _create(db_session)
        with pytest.raises(IntegrityError):
            await _create(db_session, email="other@x.com")

    async def test_duplicate_email_raises(self, db_session: AsyncSession):
        """Emails are unique."""
        await _create(db_session)
        with pytest.raises(IntegrityError):
            await _create(db_session, username="bo")


class TestLookups:
    """Test get_by_id(), get_by_username(), get_by_email(), find()."""

    async def test_get_by_id(self, db_session: AsyncSession):
        user = await _create(db_session)
        found = await UserRepository.get_by_id(db_session, user.id)
        assert found is not None
        assert found.id == user.id

    async def test_get_by_id_missing(self, db_session: AsyncSession):
        assert await UserRepository.get_by_id(db_session, _MISSING_UUID) is None

    async def test_get_by_username(self, db_session: AsyncSession):
        user = await _create(db_session)
        found = await UserRepository.get_by_username(db_session, "al")
        assert found is not None
        assert found.id == user.id

    async def test_get_by_username_is_exact(self, db_session: AsyncSession):
        """Username lookup is case-sensitive."""
        await _create(db_session)
        assert await UserRepository.get_by_username(db_session, "AL") is None

    async def test_get_by_email_is_case_insensitive(self, db_session: AsyncSession):
        """Email lookup ignores case."""
        user = await _create(db_session)
        found = await UserRepository.get_by_email(db_session, "A@X.com")
        assert found is not None
        assert found.id == user.id

    async def test_find_by_attributes(self, db_session: AsyncSession):
        """find() matches every given filter."""
        await _create(db_session)
        await _create(db_session, username="bo", email="b@x.com")

        matches = await UserRepository.find(db_session, username="bo")
        assert [u.username for u in matches] == ["bo"]

        assert await UserRepository.find(db_session, username="bo", verified=True) == []

    async def test_find_rejects_unknown_filter(self, db_session: AsyncSession):
        with pytest.raises(ValueError, match="password_hash"):
            await UserRepository.find(db_session, password_hash="x")

    async def test_list_all(self, db_session: AsyncSession):
        await _create(db_session)
        await _create(db_session, username="bo", email="b@x.com")
        users = await UserRepository.list_all(db_session)
        assert {u.username for u in users} == {"al", "bo"}


class TestUpdate:
    """Test update() and set_role()."""

    async def test_updates_allowed_fields(self, db_session: AsyncSession):
        user = await _create(db_session)
        updated = await UserRepository.update(
            db_session, user.id, name="Albert", email="NEW@X.COM", verified=True
        )
        assert updated is not None
        assert updated.name == "Albert"
        assert updated.email == "new@x.com"
        assert updated.verified is True

    async def test_role_is_not_mass_assignable(self, db_session: AsyncSession):
        """update() refuses role; set_role() is the only way to change it."""
        user = await _create(db_session)
        with pytest.raises(ValueError, match="role"):
            await UserRepository.update(db_session, user.id, role="admin")

    async def test_update_missing_user_returns_none(self, db_session: AsyncSession):
        assert await UserRepository.update(db_session, _MISSING_UUID, name="x") is None

    async def test_set_role(self, db_session: AsyncSession):
        user = await _create(db_session)
        updated = await UserRepository.set_role(db_session, user.id, role=UserRole.ADMIN)
        assert updated is not None
        assert updated.role == UserRole.ADMIN

    async def test_set_role_missing_user_returns_none(self, db_session: AsyncSession):
        assert (
            await UserRepository.set_role(db_session, _MISSING_UUID, role=UserRole.ADMIN)
            is None
        )


class TestDelete:
    """Test UserRepository.delete()."""

    async def test_delete_removes_user_and_tokens(self, db_session: AsyncSession):
        """Deleting a user cascades to their tokens."""
        user = await _create(db_session)
        await AuthTokenRepository.create(
            db_session, user_id=user.id, token="t1", token_type=TokenType.VERIFICATION
        )
        await db_session.commit()
        db_session.expunge_all()

        assert await UserRepository.delete(db_session, user.id) is True
        await db_session.commit()

        assert await UserRepository.get_by_id(db_session, user.id) is None
        assert await AuthTokenRepository.list_for_user(db_session, user_id=user.id) == []

    async def test_delete_missing_user_returns_false(self, db_session: AsyncSession):
        assert await UserRepository.delete(db_session, _MISSING_UUID) is False
