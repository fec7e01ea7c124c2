"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.domain.enums import WRITER_ROLES, UserRole
from backoffice.domain.errors import Unauthorized
from backoffice.infrastructure.database import async_session_factory
from backoffice.services.agency import AgencySettingsService
from backoffice.services.auth import AuthService, Principal

TOKEN_COOKIE = "token"


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def _credential(request: Request, authorization: Optional[str], api_key: Optional[str]):
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    if api_key:
        return api_key.strip()
    return request.cookies.get(TOKEN_COOKIE)


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Resolve the caller from a bearer token, an API key or the session cookie."""
    credential = _credential(request, authorization, x_api_key)
    if not credential:
        raise Unauthorized()
    return await AuthService(db).authenticate(credential)


async def require_writer(user: Principal = Depends(get_current_user)) -> Principal:
    user.require(*WRITER_ROLES)
    return user


async def require_admin(user: Principal = Depends(get_current_user)) -> Principal:
    user.require(UserRole.ADMIN)
    return user


async def get_agency_settings(
    db: AsyncSession = Depends(get_db),
) -> AgencySettingsService:
    return AgencySettingsService(db)
