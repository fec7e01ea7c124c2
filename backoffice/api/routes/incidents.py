"""
Incident endpoints
==================

GET  /api/incidents                      -- list (filters: status, car_id, severity)
POST /api/incidents                      -- report damage or a breakdown
GET  /api/incidents/{incident_id}        -- detail with photos
PUT  /api/incidents/{incident_id}/status -- open / under_review / resolved
POST /api/incidents/{incident_id}/images -- attach photos (multipart, field ``images``)

An open *major* incident takes the car out of availability searches
until it is moved out of ``open``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_current_user, get_db, require_writer
from backoffice.api.schemas import (
    IncidentCreateRequest,
    IncidentResponse,
    IncidentStatusRequest,
)
from backoffice.config import settings
from backoffice.domain.enums import IncidentSeverity, IncidentStatus
from backoffice.domain.errors import NotFound, ValidationFailed
from backoffice.infrastructure.models import IncidentImageModel, IncidentModel
from backoffice.infrastructure.repositories import (
    BookingRepository,
    CarRepository,
    IncidentRepository,
)
from backoffice.infrastructure.storage import save_upload
from backoffice.services.audit import AuditService
from backoffice.services.auth import Principal

router = APIRouter(prefix="/incidents", tags=["incidents"])

MAX_IMAGES_PER_UPLOAD = 5


async def _get_incident(repo: IncidentRepository, incident_id: int) -> IncidentModel:
    incident = await repo.get_by_id(incident_id)
    if not incident:
        raise NotFound("Incident")
    return incident


@router.get("", response_model=list[IncidentResponse], summary="List incidents")
async def list_incidents(
    status: Optional[IncidentStatus] = None,
    car_id: Optional[int] = None,
    severity: Optional[IncidentSeverity] = None,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await IncidentRepository(db).list(
        status=status, car_id=car_id, severity=severity
    )


@router.post("", status_code=201, response_model=IncidentResponse, summary="Report an incident")
async def create_incident(
    body: IncidentCreateRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    car = await CarRepository(db).get_by_id(body.car_id)
    if not car:
        raise NotFound("Car")
    if body.booking_id is not None and not await BookingRepository(db).get_by_id(
        body.booking_id
    ):
        raise NotFound("Booking")

    incident = await IncidentRepository(db).create(
        IncidentModel(**body.model_dump(exclude={"car_id"}), car=car, images=[])
    )
    AuditService(db).record(
        user.id, "create", "incident", incident.id, {"severity": incident.severity}
    )
    return incident


@router.get("/{incident_id}", response_model=IncidentResponse, summary="Incident detail")
async def get_incident(
    incident_id: int,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _get_incident(IncidentRepository(db), incident_id)


@router.put(
    "/{incident_id}/status",
    response_model=IncidentResponse,
    summary="Change incident status",
)
async def update_incident_status(
    incident_id: int,
    body: IncidentStatusRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    incident = await _get_incident(IncidentRepository(db), incident_id)
    incident.status = body.status
    await db.flush()
    AuditService(db).record(
        user.id, "status_change", "incident", incident.id, {"status": body.status}
    )
    return incident


@router.post(
    "/{incident_id}/images",
    status_code=201,
    response_model=IncidentResponse,
    summary="Attach incident photos",
)
async def upload_incident_images(
    incident_id: int,
    images: list[UploadFile] = File(...),
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    if len(images) > MAX_IMAGES_PER_UPLOAD:
        raise ValidationFailed(
            f"At most {MAX_IMAGES_PER_UPLOAD} images per upload", field="images"
        )
    incident = await _get_incident(IncidentRepository(db), incident_id)
    for upload in images:
        stored = await save_upload(upload, "incidents", settings.max_image_bytes)
        incident.images.append(IncidentImageModel(url_path=stored.url_path))
    await db.flush()
    AuditService(db).record(
        user.id, "upload", "incident_image", incident.id, {"count": len(images)}
    )
    return incident
