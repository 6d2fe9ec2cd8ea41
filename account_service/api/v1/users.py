"""User account endpoints.

- GET    /users            admin only
- GET    /users/{user_id}  own account only
- PATCH  /users/{user_id}  profile fields by owner, role by admin
- DELETE /users/{user_id}  owner or admin
"""

import uuid

from fastapi import APIRouter, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from account_service.api.deps import AccountService, CurrentClaims, DbSession
from account_service.core.auth import clear_auth_cookie, set_auth_cookie
from account_service.core.passwords import check_password_length
from account_service.core.responses import DataResponse
from account_service.models.user import User, UserRole
from account_service.services.account_lifecycle import UserPatch

router = APIRouter()


class UpdateUserRequest(BaseModel):
    """Request body for PATCH /users/{user_id}.

    Omitted fields are left unchanged. Unknown fields are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(None, min_length=1, max_length=64)
    email: EmailStr | None = None
    name: str | None = Field(None, min_length=1, max_length=255)
    password: str | None = Field(None, min_length=1, max_length=128)
    role: UserRole | None = None

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str | None) -> str | None:
        return None if v is None else check_password_length(v)


def _user_summary(user: User) -> dict:
    return {
        "id": str(user.id),
        "username": user.username,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "verified": user.verified,
    }


@router.get("")
async def list_users(
    claims: CurrentClaims,
    db: DbSession,
    accounts: AccountService,
) -> DataResponse[list[dict]]:
    """List every account. Admin only."""
    users = await accounts.list_users(db, claims)
    return DataResponse(data=[_user_summary(user) for user in users])


@router.get("/{user_id}")
async def get_user(
    user_id: uuid.UUID,
    claims: CurrentClaims,
    db: DbSession,
    accounts: AccountService,
) -> DataResponse[dict]:
    """Return the caller's own profile."""
    user = await accounts.get_own_user(db, claims, user_id)
    return DataResponse(
        data={"email": user.email, "username": user.username, "name": user.name}
    )


@router.patch("/{user_id}", response_model=None)
async def update_user(
    user_id: uuid.UUID,
    body: UpdateUserRequest,
    response: Response,
    claims: CurrentClaims,
    db: DbSession,
    accounts: AccountService,
) -> DataResponse[dict] | Response:
    """Apply a partial update.

    Returns 204 normally. When the caller renames themselves, returns 200
    with a refreshed session credential (also set as the cookie) so the
    embedded username stays current.
    """
    patch = UserPatch(**body.model_dump())
    token = await accounts.update_user(db, claims, user_id, patch)
    if token is None:
        return Response(status_code=204)

    set_auth_cookie(response, token)
    return DataResponse(data={"token": token})


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: uuid.UUID,
    response: Response,
    claims: CurrentClaims,
    db: DbSession,
    accounts: AccountService,
) -> None:
    """Delete an account. Deleting your own account also signs you out."""
    await accounts.delete_user(db, claims, user_id)
    if user_id == claims.user_id:
        clear_auth_cookie(response)
