"""
GET /api/audit?limit= -- recent audit entries, newest first (admin only)
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_db, require_admin
from backoffice.api.schemas import AuditLogResponse
from backoffice.infrastructure.repositories import AuditLogRepository
from backoffice.services.auth import Principal

router = APIRouter(prefix="/audit", tags=["audit"])

MAX_LIMIT = 500


@router.get("", response_model=list[AuditLogResponse], summary="Audit trail")
async def list_audit(
    limit: int = Query(100, ge=1),
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await AuditLogRepository(db).recent(min(limit, MAX_LIMIT))
