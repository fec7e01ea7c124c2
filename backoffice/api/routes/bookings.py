"""
Booking endpoints
=================

GET  /api/bookings                     -- list (filters: status, car_id, from, to, customer_id)
POST /api/bookings                     -- create a draft or reserved booking
GET  /api/bookings/{booking_id}        -- booking detail with extras
PUT  /api/bookings/{booking_id}        -- partial update
PUT  /api/bookings/{booking_id}/status -- move to another status

Edits of a completed or cancelled booking are refused with 409
``booking_locked`` before the payload is validated, so a locked booking
reports as locked even when the edit is also malformed, missing, or not
a JSON object at all.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional, Type, TypeVar

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_current_user, get_db, require_writer
from backoffice.api.middleware import RATE_LIMIT, limiter
from backoffice.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    BookingStatusRequest,
    BookingUpdateRequest,
)
from backoffice.domain.enums import BookingStatus
from backoffice.infrastructure.repositories import BookingRepository
from backoffice.services.auth import Principal
from backoffice.services.bookings import BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _parse(schema: Type[SchemaT], payload: Any) -> SchemaT:
    # any JSON value gets this far; non-objects fail model validation as 422
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False), body=payload) from exc


@router.get("", response_model=list[BookingResponse], summary="List bookings")
async def list_bookings(
    status: Optional[BookingStatus] = None,
    car_id: Optional[int] = None,
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    customer_id: Optional[int] = None,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await BookingRepository(db).list(
        status=status,
        car_id=car_id,
        date_from=date_from,
        date_to=date_to,
        customer_id=customer_id,
    )


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Create a booking",
    responses={409: {"description": "Car is not available for this date range."}},
)
@limiter.limit(RATE_LIMIT)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService(db).create(body.model_dump(), user)


@router.get("/{booking_id}", response_model=BookingResponse, summary="Booking detail")
async def get_booking(
    booking_id: int,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService(db).get(booking_id)


@router.put(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Update a booking",
    responses={409: {"description": "Booking is locked or the car is unavailable."}},
)
async def update_booking(
    booking_id: int,
    payload: Any = Body(None),
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    service = BookingService(db)
    await service.get_editable(booking_id)
    body = _parse(BookingUpdateRequest, payload)
    return await service.update(booking_id, body.changes(), user)


@router.put(
    "/{booking_id}/status",
    response_model=BookingResponse,
    summary="Change booking status",
)
async def update_booking_status(
    booking_id: int,
    payload: Any = Body(None),
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    service = BookingService(db)
    await service.get_editable(booking_id)
    body = _parse(BookingStatusRequest, payload)
    return await service.change_status(booking_id, body.status, user)
