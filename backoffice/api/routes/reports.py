"""
Reporting endpoints
===================

GET /api/reports                  -- dashboard summary for today
GET /api/reports/export/{kind}    -- CSV download of bookings, cars or incidents
"""

from datetime import date

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_agency_settings, get_current_user, get_db
from backoffice.api.schemas import SummaryResponse
from backoffice.services.agency import AgencySettingsService
from backoffice.services.auth import Principal
from backoffice.services.reports import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("", response_model=SummaryResponse, summary="Dashboard summary")
async def get_summary(
    user: Principal = Depends(get_current_user),
    agency: AgencySettingsService = Depends(get_agency_settings),
    db: AsyncSession = Depends(get_db),
):
    currency = (await agency.get()).currency
    return await ReportService(db).summary(date.today(), currency)


@router.get("/export/{kind}", summary="CSV export")
async def export_csv(
    kind: str,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    body = await ReportService(db).export_csv(kind)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{kind}-export.csv"'},
    )
