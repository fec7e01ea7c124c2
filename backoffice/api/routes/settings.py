"""
GET /api/settings -- agency name, currency, VAT and logo (admin)
PUT /api/settings -- partial update (admin)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_agency_settings, get_db, require_admin
from backoffice.api.schemas import SettingsResponse, SettingsUpdateRequest
from backoffice.services.agency import AgencySettingsService
from backoffice.services.audit import AuditService
from backoffice.services.auth import Principal

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse, summary="Agency settings")
async def get_settings(
    admin: Principal = Depends(require_admin),
    agency: AgencySettingsService = Depends(get_agency_settings),
):
    return await agency.get()


@router.put("", response_model=SettingsResponse, summary="Update agency settings")
async def update_settings(
    body: SettingsUpdateRequest,
    admin: Principal = Depends(require_admin),
    agency: AgencySettingsService = Depends(get_agency_settings),
    db: AsyncSession = Depends(get_db),
):
    changes = body.changes()
    row = await agency.update(changes)
    AuditService(db).record(admin.id, "update", "settings", row.id, changes)
    return row
