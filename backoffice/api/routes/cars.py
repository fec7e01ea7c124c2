"""
Fleet endpoints
===============

GET    /api/cars                      -- list cars (filters: status, class, branch_id)
POST   /api/cars                      -- add a car
GET    /api/cars/{car_id}             -- car detail with images and branch
PUT    /api/cars/{car_id}             -- partial update
DELETE /api/cars/{car_id}             -- archive (status -> inactive)
POST   /api/cars/bulk-delete          -- archive several cars at once
POST   /api/cars/{car_id}/images      -- upload photos (multipart, field ``images``)
GET    /api/cars/{car_id}/documents   -- registration / insurance paperwork
POST   /api/cars/{car_id}/documents   -- upload a document (multipart, field ``document``)
DELETE /api/cars/documents/{doc_id}   -- remove a document and its file

Cars are never hard-deleted: bookings, incidents and expenses keep
pointing at them.  Archival is refused while a car still holds a
reserved, confirmed or active booking.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import (
    get_current_user,
    get_db,
    require_admin,
    require_writer,
)
from backoffice.api.schemas import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    CarCreateRequest,
    CarImageResponse,
    CarResponse,
    CarUpdateRequest,
    VehicleDocumentResponse,
)
from backoffice.config import settings
from backoffice.domain.enums import CarStatus
from backoffice.domain.errors import Conflict, NotFound, ValidationFailed
from backoffice.infrastructure.models import (
    CarImageModel,
    CarModel,
    VehicleDocumentModel,
)
from backoffice.infrastructure.repositories import (
    BookingRepository,
    BranchRepository,
    CarRepository,
    VehicleDocumentRepository,
)
from backoffice.infrastructure.storage import delete_stored, save_upload
from backoffice.services.audit import AuditService
from backoffice.services.auth import Principal

router = APIRouter(prefix="/cars", tags=["cars"])

MAX_IMAGES_PER_UPLOAD = 10


async def _get_car(repo: CarRepository, car_id: int) -> CarModel:
    car = await repo.get_by_id(car_id)
    if not car:
        raise NotFound("Car")
    return car


async def _check_branch(db: AsyncSession, branch_id: Optional[int]) -> None:
    if branch_id is not None and not await BranchRepository(db).get_by_id(branch_id):
        raise NotFound("Branch")


async def _archive(db: AsyncSession, car_ids: list[int]) -> None:
    busy = await BookingRepository(db).car_ids_with_occupying(car_ids)
    if busy:
        raise Conflict(
            "Some selected cars have active or confirmed bookings and cannot be deleted."
        )
    await CarRepository(db).archive(car_ids)


@router.get("", response_model=list[CarResponse], summary="List cars")
async def list_cars(
    status: Optional[CarStatus] = None,
    car_class: Optional[str] = Query(None, alias="class"),
    branch_id: Optional[int] = None,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CarRepository(db).list(
        status=status, car_class=car_class, branch_id=branch_id
    )


@router.post("", status_code=201, response_model=CarResponse, summary="Add a car")
async def create_car(
    body: CarCreateRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    repo = CarRepository(db)
    if await repo.get_by_plate(body.plate_number):
        raise Conflict("Plate number already exists")
    await _check_branch(db, body.branch_id)

    car = await repo.create(CarModel(**body.model_dump(), images=[]))
    # load the branch for the response
    await db.refresh(car, attribute_names=["branch"])
    AuditService(db).record(
        user.id, "create", "car", car.id, {"plate_number": car.plate_number}
    )
    return car


@router.post(
    "/bulk-delete",
    response_model=BulkDeleteResponse,
    summary="Archive several cars",
)
async def bulk_delete_cars(
    body: BulkDeleteRequest,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    ids = sorted(set(body.ids))
    await _archive(db, ids)
    AuditService(db).record(admin.id, "bulk_archive", "car", None, {"ids": ids})
    return BulkDeleteResponse(archived=len(ids))


@router.delete("/documents/{doc_id}", summary="Delete a vehicle document")
async def delete_document(
    doc_id: int,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    repo = VehicleDocumentRepository(db)
    doc = await repo.get_by_id(doc_id)
    if not doc:
        raise NotFound("Document")
    await repo.delete(doc)
    await delete_stored(doc.url_path)
    AuditService(db).record(
        user.id, "delete", "vehicle_document", doc_id, {"car_id": doc.car_id}
    )
    return {"ok": True}


@router.get("/{car_id}", response_model=CarResponse, summary="Car detail")
async def get_car(
    car_id: int,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _get_car(CarRepository(db), car_id)


@router.put("/{car_id}", response_model=CarResponse, summary="Update a car")
async def update_car(
    car_id: int,
    body: CarUpdateRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    changes = body.changes()
    if not changes:
        raise ValidationFailed("No fields to update")

    repo = CarRepository(db)
    car = await _get_car(repo, car_id)
    plate = changes.get("plate_number")
    if plate and plate != car.plate_number and await repo.get_by_plate(plate):
        raise Conflict("Plate number already exists")
    if "branch_id" in changes:
        await _check_branch(db, changes["branch_id"])

    for key, value in changes.items():
        setattr(car, key, value)
    await db.flush()
    await db.refresh(car, attribute_names=["branch"])
    AuditService(db).record(user.id, "update", "car", car.id, changes)
    return car


@router.delete("/{car_id}", response_model=CarResponse, summary="Archive a car")
async def archive_car(
    car_id: int,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = CarRepository(db)
    car = await _get_car(repo, car_id)
    await _archive(db, [car.id])
    AuditService(db).record(admin.id, "archive", "car", car.id)
    return car


@router.post(
    "/{car_id}/images",
    status_code=201,
    response_model=list[CarImageResponse],
    summary="Upload car photos",
)
async def upload_images(
    car_id: int,
    images: list[UploadFile] = File(...),
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    if len(images) > MAX_IMAGES_PER_UPLOAD:
        raise ValidationFailed(
            f"At most {MAX_IMAGES_PER_UPLOAD} images per upload", field="images"
        )
    car = await _get_car(CarRepository(db), car_id)

    added = []
    for upload in images:
        stored = await save_upload(upload, "cars", settings.max_image_bytes)
        image = CarImageModel(url_path=stored.url_path)
        car.images.append(image)
        added.append(image)
    await db.flush()
    AuditService(db).record(
        user.id, "upload", "car_image", car.id, {"count": len(added)}
    )
    return added


@router.get(
    "/{car_id}/documents",
    response_model=list[VehicleDocumentResponse],
    summary="List vehicle documents",
)
async def list_documents(
    car_id: int,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    await _get_car(CarRepository(db), car_id)
    return await VehicleDocumentRepository(db).list_for_car(car_id)


@router.post(
    "/{car_id}/documents",
    status_code=201,
    response_model=VehicleDocumentResponse,
    summary="Upload a vehicle document",
)
async def upload_document(
    car_id: int,
    document: UploadFile = File(...),
    document_type: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    expiry_date: Optional[date] = Form(None),
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    car = await _get_car(CarRepository(db), car_id)
    stored = await save_upload(
        document, "vehicles", settings.max_document_bytes, prefix=f"{car.id}_"
    )
    doc = await VehicleDocumentRepository(db).create(
        VehicleDocumentModel(
            car_id=car.id,
            document_type=document_type,
            title=title,
            expiry_date=expiry_date,
            url_path=stored.url_path,
            file_size=stored.size,
            uploaded_by=user.id,
        )
    )
    AuditService(db).record(
        user.id, "upload", "vehicle_document", doc.id, {"car_id": car.id}
    )
    return doc
