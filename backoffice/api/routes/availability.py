"""
GET /api/availability?start=&end=&class=&branch_id=

Cars free for the whole half-open range ``[start, end)`` with a price
estimate for the stay.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_current_user, get_db
from backoffice.api.middleware import RATE_LIMIT, limiter
from backoffice.api.schemas import AvailableCarResponse, CarResponse
from backoffice.domain.intervals import DateRange
from backoffice.services.auth import Principal
from backoffice.services.availability import AvailabilityService

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get(
    "",
    response_model=list[AvailableCarResponse],
    summary="Cars available for a date range",
)
@limiter.limit(RATE_LIMIT)
async def get_availability(
    request: Request,
    start: date,
    end: date,
    car_class: Optional[str] = Query(None, alias="class"),
    branch_id: Optional[int] = None,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    found = await AvailabilityService(db).get_available_cars(
        DateRange(start, end), car_class=car_class, branch_id=branch_id
    )
    return [
        AvailableCarResponse(
            **CarResponse.model_validate(item.car).model_dump(),
            daily_rate=item.daily_rate,
            days=item.days,
            estimated_total=item.estimated_total,
        )
        for item in found
    ]
