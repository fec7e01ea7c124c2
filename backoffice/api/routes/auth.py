"""
Auth endpoints
==============

POST /api/auth/login    -- exchange email + password for a JWT (body and cookie)
POST /api/auth/logout   -- clear the session cookie
GET  /api/auth/me       -- the authenticated caller
PUT  /api/auth/profile  -- change own password
"""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import TOKEN_COOKIE, get_current_user, get_db
from backoffice.api.middleware import limiter
from backoffice.api.schemas import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    ProfileUpdateRequest,
    UserResponse,
)
from backoffice.config import settings
from backoffice.domain.errors import Forbidden
from backoffice.services.audit import AuditService
from backoffice.services.auth import AuthService, Principal

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse, summary="Log in")
@limiter.limit("10/minute")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    user, token = await AuthService(db).login(body.email, body.password)
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        max_age=settings.cookie_max_age_seconds,
        samesite=settings.cookie_same_site,
    )
    return LoginResponse(token=token, user=UserResponse.model_validate(user))


@router.post("/logout", summary="Log out")
async def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    return {"ok": True}


@router.get("/me", response_model=MeResponse, summary="Current user")
async def me(user: Principal = Depends(get_current_user)):
    return MeResponse(id=user.id, email=user.email, role=user.role)


@router.put("/profile", summary="Change own password")
async def update_profile(
    body: ProfileUpdateRequest,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if user.id is None:
        raise Forbidden("API keys have no profile")
    await AuthService(db).change_password(
        user.id, body.current_password, body.new_password
    )
    AuditService(db).record(user.id, "update", "user", user.id, {"password": "changed"})
    return {"ok": True, "message": "Password updated successfully"}
