"""
User management (admin only)
============================

GET  /api/users  -- list users, newest first
POST /api/users  -- create a user with a role
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_db, require_admin
from backoffice.api.schemas import UserCreateRequest, UserResponse
from backoffice.infrastructure.repositories import UserRepository
from backoffice.services.audit import AuditService
from backoffice.services.auth import AuthService, Principal

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserResponse], summary="List users")
async def list_users(
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await UserRepository(db).list()


@router.post("", status_code=201, response_model=UserResponse, summary="Create a user")
async def create_user(
    body: UserCreateRequest,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await AuthService(db).create_user(body.email, body.password, body.role)
    AuditService(db).record(
        admin.id, "create", "user", user.id, {"email": user.email, "role": user.role}
    )
    return user
