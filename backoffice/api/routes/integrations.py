"""
Integration API keys (admin only)
=================================

GET    /api/integrations/api-keys       -- list keys (never the secret)
POST   /api/integrations/api-keys       -- create a key; the raw token is returned once
DELETE /api/integrations/api-keys/{id}  -- revoke a key
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_db, require_admin
from backoffice.api.schemas import (
    ApiKeyCreatedResponse,
    ApiKeyCreateRequest,
    ApiKeyResponse,
)
from backoffice.domain.errors import NotFound
from backoffice.infrastructure.repositories import ApiKeyRepository
from backoffice.services.audit import AuditService
from backoffice.services.auth import AuthService, Principal

router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.get("/api-keys", response_model=list[ApiKeyResponse], summary="List API keys")
async def list_api_keys(
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ApiKeyRepository(db).list()


@router.post(
    "/api-keys",
    status_code=201,
    response_model=ApiKeyCreatedResponse,
    summary="Create an API key",
)
async def create_api_key(
    body: ApiKeyCreateRequest,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    key, raw = await AuthService(db).create_api_key(body.name)
    AuditService(db).record(admin.id, "create", "api_key", key.id, {"name": key.name})
    return ApiKeyCreatedResponse(
        id=key.id,
        name=key.name,
        created_at=key.created_at,
        last_used_at=key.last_used_at,
        token=raw,
    )


@router.delete("/api-keys/{key_id}", summary="Revoke an API key")
async def delete_api_key(
    key_id: int,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = ApiKeyRepository(db)
    key = await repo.get_by_id(key_id)
    if not key:
        raise NotFound("API key")
    await repo.delete(key)
    AuditService(db).record(admin.id, "delete", "api_key", key_id)
    return {"ok": True}
