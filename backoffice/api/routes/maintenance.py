"""
Maintenance windows
===================

GET    /api/maintenance            -- list blocks (filter: car_id), latest first
POST   /api/maintenance            -- block a car for ``[start_date, end_date)``
DELETE /api/maintenance/{block_id} -- lift a block

A block makes the car unavailable for overlapping dates; it does not
touch bookings that already exist.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_current_user, get_db, require_writer
from backoffice.api.schemas import MaintenanceCreateRequest, MaintenanceResponse
from backoffice.domain.errors import NotFound
from backoffice.domain.intervals import DateRange
from backoffice.infrastructure.models import MaintenanceBlockModel
from backoffice.infrastructure.repositories import CarRepository, MaintenanceRepository
from backoffice.services.audit import AuditService
from backoffice.services.auth import Principal

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.get("", response_model=list[MaintenanceResponse], summary="List maintenance blocks")
async def list_maintenance(
    car_id: Optional[int] = None,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await MaintenanceRepository(db).list(car_id=car_id)


@router.post(
    "",
    status_code=201,
    response_model=MaintenanceResponse,
    summary="Block a car for maintenance",
)
async def create_maintenance(
    body: MaintenanceCreateRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    period = DateRange(body.start_date, body.end_date)
    car = await CarRepository(db).get_by_id(body.car_id)
    if not car:
        raise NotFound("Car")

    block = await MaintenanceRepository(db).create(
        MaintenanceBlockModel(
            car=car,
            start_date=period.start,
            end_date=period.end,
            reason=body.reason,
        )
    )
    AuditService(db).record(
        user.id,
        "create",
        "maintenance",
        block.id,
        {"car_id": car.id, "start_date": period.start, "end_date": period.end},
    )
    return block


@router.delete("/{block_id}", summary="Remove a maintenance block")
async def delete_maintenance(
    block_id: int,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    repo = MaintenanceRepository(db)
    block = await repo.get_by_id(block_id)
    if not block:
        raise NotFound("Maintenance block")
    await repo.delete(block)
    AuditService(db).record(user.id, "delete", "maintenance", block_id)
    return {"ok": True}
