"""
Expense endpoints
=================

GET    /api/expenses             -- list (filters: car_id, category, from, to)
POST   /api/expenses             -- record a cost against a car
GET    /api/expenses/{id}        -- detail
PUT    /api/expenses/{id}        -- partial update
DELETE /api/expenses/{id}        -- remove (admin)
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import (
    get_current_user,
    get_db,
    require_admin,
    require_writer,
)
from backoffice.api.schemas import (
    ExpenseCreateRequest,
    ExpenseResponse,
    ExpenseUpdateRequest,
)
from backoffice.domain.enums import ExpenseCategory
from backoffice.domain.errors import NotFound, ValidationFailed
from backoffice.infrastructure.models import CarModel, ExpenseModel
from backoffice.infrastructure.repositories import CarRepository, ExpenseRepository
from backoffice.services.audit import AuditService
from backoffice.services.auth import Principal

router = APIRouter(prefix="/expenses", tags=["expenses"])


async def _get_expense(repo: ExpenseRepository, expense_id: int) -> ExpenseModel:
    expense = await repo.get_by_id(expense_id)
    if not expense:
        raise NotFound("Expense")
    return expense


async def _get_car(db: AsyncSession, car_id: int) -> CarModel:
    car = await CarRepository(db).get_by_id(car_id)
    if not car:
        raise NotFound("Car")
    return car


@router.get("", response_model=list[ExpenseResponse], summary="List expenses")
async def list_expenses(
    car_id: Optional[int] = None,
    category: Optional[ExpenseCategory] = None,
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await ExpenseRepository(db).list(
        car_id=car_id, category=category, date_from=date_from, date_to=date_to
    )


@router.post("", status_code=201, response_model=ExpenseResponse, summary="Record an expense")
async def create_expense(
    body: ExpenseCreateRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    car = await _get_car(db, body.car_id)
    expense = await ExpenseRepository(db).create(
        ExpenseModel(**body.model_dump(exclude={"car_id"}), car=car)
    )
    AuditService(db).record(
        user.id,
        "create",
        "expense",
        expense.id,
        {"category": expense.category, "amount": expense.amount},
    )
    return expense


@router.get("/{expense_id}", response_model=ExpenseResponse, summary="Expense detail")
async def get_expense(
    expense_id: int,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _get_expense(ExpenseRepository(db), expense_id)


@router.put("/{expense_id}", response_model=ExpenseResponse, summary="Update an expense")
async def update_expense(
    expense_id: int,
    body: ExpenseUpdateRequest,
    user: Principal = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    changes = body.changes()
    if not changes:
        raise ValidationFailed("No fields to update")
    expense = await _get_expense(ExpenseRepository(db), expense_id)
    if "car_id" in changes:
        expense.car = await _get_car(db, changes.pop("car_id"))
    for key, value in changes.items():
        setattr(expense, key, value)
    await db.flush()
    AuditService(db).record(user.id, "update", "expense", expense.id, body.changes())
    return expense


@router.delete("/{expense_id}", summary="Delete an expense")
async def delete_expense(
    expense_id: int,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = ExpenseRepository(db)
    expense = await _get_expense(repo, expense_id)
    await repo.delete(expense)
    AuditService(db).record(admin.id, "delete", "expense", expense_id)
    return {"ok": True}
