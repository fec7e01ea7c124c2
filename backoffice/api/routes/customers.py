"""
Customer endpoints
==================

GET    /api/customers?search=      -- list, matched on name / email / phone / id number
POST   /api/customers              -- add a customer
GET    /api/customers/{id}         -- detail with the customer's bookings
PUT    /api/customers/{id}         -- partial update
DELETE /api/customers/{id}         -- remove (admin); bookings keep their copy of the name
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import (
    get_current_user,
    get_db,
    require_admin,
    require_writer,
)
from backoffice.api.schemas import (
    BookingResponse,
    CustomerCreateRequest,
    CustomerDetailResponse,
    CustomerResponse,
    CustomerUpdateRequest,
)
from backoffice.domain.errors import NotFound, ValidationFailed
from backoffice.infrastructure.models import CustomerModel
from backoffice.infrastructure.repositories import BookingRepository, CustomerRepository
from backoffice.services.audit import AuditService
from backoffice.services.auth import Principal

router = APIRouter(prefix="/customers", tags=["customers"])


async def _get_customer(repo: CustomerRepository, customer_id: int) -> CustomerModel:
    customer = await repo.get_by_id(customer_id)
    if not customer:
        raise NotFound("Customer")
    return customer


@router.get("", response_model=list[CustomerResponse], summary="List customers")
async def list_customers(
    search: Optional[str] = None,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CustomerRepository(db).search(search)


@router.post("", status_code=201, response_model=CustomerResponse, summary="Add a customer")
async def create_customer(
    body: CustomerCreateRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    customer = await CustomerRepository(db).create(CustomerModel(**body.model_dump()))
    AuditService(db).record(
        user.id, "create", "customer", customer.id, {"name": customer.name}
    )
    return customer


@router.get(
    "/{customer_id}",
    response_model=CustomerDetailResponse,
    summary="Customer detail with bookings",
)
async def get_customer(
    customer_id: int,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    customer = await _get_customer(CustomerRepository(db), customer_id)
    bookings = await BookingRepository(db).list(customer_id=customer.id)
    return CustomerDetailResponse(
        **CustomerResponse.model_validate(customer).model_dump(),
        bookings=[BookingResponse.model_validate(b) for b in bookings],
    )


@router.put("/{customer_id}", response_model=CustomerResponse, summary="Update a customer")
async def update_customer(
    customer_id: int,
    body: CustomerUpdateRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    changes = body.changes()
    if not changes:
        raise ValidationFailed("No fields to update")
    customer = await _get_customer(CustomerRepository(db), customer_id)
    for key, value in changes.items():
        setattr(customer, key, value)
    await db.flush()
    AuditService(db).record(user.id, "update", "customer", customer.id, changes)
    return customer


@router.delete("/{customer_id}", summary="Delete a customer")
async def delete_customer(
    customer_id: int,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = CustomerRepository(db)
    customer = await _get_customer(repo, customer_id)
    await repo.delete(customer)
    AuditService(db).record(admin.id, "delete", "customer", customer_id)
    return {"ok": True}
