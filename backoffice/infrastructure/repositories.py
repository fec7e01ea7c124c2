"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Optional list filters are composed as
``where()`` predicates: each supplied filter narrows the result (AND),
an absent one imposes nothing.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    AgencySettingsModel,
    ApiKeyModel,
    AuditLogModel,
    BookingModel,
    BranchModel,
    CarModel,
    CustomerModel,
    ExpenseModel,
    IncidentModel,
    MaintenanceBlockModel,
    NotificationModel,
    UserModel,
    VehicleDocumentModel,
)
from backoffice.domain.entities import Occupancy
from backoffice.domain.enums import (
    OCCUPYING_STATUSES,
    BookingStatus,
    CarStatus,
    IncidentSeverity,
    IncidentStatus,
    NotificationType,
    UserRole,
)

_OCCUPYING = [s for s in BookingStatus if s in OCCUPYING_STATUSES]


class CarRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, car: CarModel) -> CarModel:
        self.session.add(car)
        await self.session.flush()
        return car

    async def get_by_id(self, car_id: int) -> Optional[CarModel]:
        return await self.session.get(CarModel, car_id)

    async def get_for_update(self, car_id: int) -> Optional[CarModel]:
        """SELECT ... FOR UPDATE OF cars to serialise booking writers per car."""
        result = await self.session.execute(
            select(CarModel)
            .where(CarModel.id == car_id)
            .with_for_update(of=CarModel)
            .execution_options(populate_existing=True)
        )
        return result.unique().scalar_one_or_none()

    async def get_by_plate(self, plate_number: str) -> Optional[CarModel]:
        result = await self.session.execute(
            select(CarModel).where(CarModel.plate_number == plate_number)
        )
        return result.unique().scalar_one_or_none()

    async def list(
        self,
        *,
        status: CarStatus | None = None,
        car_class: str | None = None,
        branch_id: int | None = None,
    ) -> list[CarModel]:
        query = select(CarModel).order_by(CarModel.plate_number)
        if status:
            query = query.where(CarModel.status == status)
        if car_class:
            query = query.where(CarModel.car_class == car_class)
        if branch_id:
            query = query.where(CarModel.branch_id == branch_id)
        result = await self.session.execute(query)
        return list(result.unique().scalars().all())

    async def get_rentable(
        self, car_class: str | None = None, branch_id: int | None = None
    ) -> list[CarModel]:
        """Active cars ordered by class then plate number."""
        query = (
            select(CarModel)
            .where(CarModel.status == CarStatus.ACTIVE)
            .order_by(CarModel.car_class, CarModel.plate_number)
        )
        if car_class:
            query = query.where(CarModel.car_class == car_class)
        if branch_id:
            query = query.where(CarModel.branch_id == branch_id)
        result = await self.session.execute(query)
        return list(result.unique().scalars().all())

    async def get_many(self, car_ids: Iterable[int]) -> list[CarModel]:
        result = await self.session.execute(
            select(CarModel).where(CarModel.id.in_(list(car_ids)))
        )
        return list(result.unique().scalars().all())

    async def archive(self, car_ids: Iterable[int]) -> None:
        await self.session.execute(
            update(CarModel)
            .where(CarModel.id.in_(list(car_ids)))
            .values(status=CarStatus.INACTIVE)
            .execution_options(synchronize_session="fetch")
        )

    async def count_by_status(self, status: CarStatus) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(CarModel).where(CarModel.status == status)
        )
        return result.scalar() or 0

    async def get_expiring(self, until: date) -> list[CarModel]:
        result = await self.session.execute(
            select(CarModel)
            .where(
                or_(
                    CarModel.registration_expiry <= until,
                    CarModel.insurance_expiry <= until,
                )
            )
            .order_by(CarModel.registration_expiry, CarModel.insurance_expiry)
        )
        return list(result.unique().scalars().all())


class VehicleDocumentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, doc: VehicleDocumentModel) -> VehicleDocumentModel:
        self.session.add(doc)
        await self.session.flush()
        return doc

    async def get_by_id(self, doc_id: int) -> Optional[VehicleDocumentModel]:
        return await self.session.get(VehicleDocumentModel, doc_id)

    async def list_for_car(self, car_id: int) -> list[VehicleDocumentModel]:
        result = await self.session.execute(
            select(VehicleDocumentModel)
            .where(VehicleDocumentModel.car_id == car_id)
            .order_by(VehicleDocumentModel.created_at.desc(), VehicleDocumentModel.id.desc())
        )
        return list(result.scalars().all())

    async def delete(self, doc: VehicleDocumentModel) -> None:
        await self.session.delete(doc)
        await self.session.flush()


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_for_update(self, booking_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .with_for_update(of=BookingModel)
            .execution_options(populate_existing=True)
        )
        return result.unique().scalar_one_or_none()

    async def list(
        self,
        *,
        status: BookingStatus | None = None,
        car_id: int | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        customer_id: int | None = None,
    ) -> list[BookingModel]:
        query = select(BookingModel).order_by(
            BookingModel.start_date.desc(), BookingModel.id.desc()
        )
        if status:
            query = query.where(BookingModel.status == status)
        if car_id:
            query = query.where(BookingModel.car_id == car_id)
        if date_from:
            query = query.where(BookingModel.end_date >= date_from)
        if date_to:
            query = query.where(BookingModel.start_date <= date_to)
        if customer_id:
            query = query.where(BookingModel.customer_id == customer_id)
        result = await self.session.execute(query)
        return list(result.unique().scalars().all())

    async def get_occupancies(
        self,
        car_ids: Iterable[int],
        start: date,
        end: date,
    ) -> list[Occupancy]:
        """Occupying bookings of *car_ids* overlapping ``[start, end)``."""
        result = await self.session.execute(
            select(BookingModel.id, BookingModel.car_id,
                   BookingModel.start_date, BookingModel.end_date)
            .where(
                BookingModel.car_id.in_(list(car_ids)),
                BookingModel.status.in_(_OCCUPYING),
                BookingModel.start_date < end,
                BookingModel.end_date > start,
            )
        )
        return [
            Occupancy(car_id=row.car_id, start=row.start_date,
                      end=row.end_date, booking_id=row.id)
            for row in result
        ]

    async def car_ids_with_occupying(self, car_ids: Iterable[int]) -> list[int]:
        result = await self.session.execute(
            select(BookingModel.car_id)
            .where(
                BookingModel.car_id.in_(list(car_ids)),
                BookingModel.status.in_(_OCCUPYING),
            )
            .distinct()
        )
        return list(result.scalars().all())

    async def get_overdue(self, today: date) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.status.in_([BookingStatus.ACTIVE, BookingStatus.RESERVED]),
                BookingModel.end_date < today,
            )
            .order_by(BookingModel.end_date)
        )
        return list(result.unique().scalars().all())

    async def count_where(self, *criteria) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(BookingModel).where(*criteria)
        )
        return result.scalar() or 0

    async def revenue_completed(self) -> float:
        result = await self.session.execute(
            select(func.coalesce(func.sum(BookingModel.total_price), 0.0))
            .where(BookingModel.status == BookingStatus.COMPLETED)
        )
        return float(result.scalar() or 0.0)


class MaintenanceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, block: MaintenanceBlockModel) -> MaintenanceBlockModel:
        self.session.add(block)
        await self.session.flush()
        return block

    async def get_by_id(self, block_id: int) -> Optional[MaintenanceBlockModel]:
        return await self.session.get(MaintenanceBlockModel, block_id)

    async def list(self, car_id: int | None = None) -> list[MaintenanceBlockModel]:
        query = select(MaintenanceBlockModel).order_by(
            MaintenanceBlockModel.start_date.desc()
        )
        if car_id:
            query = query.where(MaintenanceBlockModel.car_id == car_id)
        result = await self.session.execute(query)
        return list(result.unique().scalars().all())

    async def get_occupancies(
        self, car_ids: Iterable[int], start: date, end: date
    ) -> list[Occupancy]:
        """Maintenance blocks of *car_ids* overlapping ``[start, end)``."""
        result = await self.session.execute(
            select(MaintenanceBlockModel.car_id,
                   MaintenanceBlockModel.start_date, MaintenanceBlockModel.end_date)
            .where(
                MaintenanceBlockModel.car_id.in_(list(car_ids)),
                MaintenanceBlockModel.start_date < end,
                MaintenanceBlockModel.end_date > start,
            )
        )
        return [
            Occupancy(car_id=row.car_id, start=row.start_date, end=row.end_date)
            for row in result
        ]

    async def car_ids_blocked_on(self, day: date) -> list[int]:
        result = await self.session.execute(
            select(MaintenanceBlockModel.car_id)
            .where(
                MaintenanceBlockModel.start_date <= day,
                MaintenanceBlockModel.end_date > day,
            )
            .distinct()
        )
        return list(result.scalars().all())

    async def delete(self, block: MaintenanceBlockModel) -> None:
        await self.session.delete(block)
        await self.session.flush()


class IncidentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, incident: IncidentModel) -> IncidentModel:
        self.session.add(incident)
        await self.session.flush()
        return incident

    async def get_by_id(self, incident_id: int) -> Optional[IncidentModel]:
        return await self.session.get(IncidentModel, incident_id)

    async def list(
        self,
        *,
        status: IncidentStatus | None = None,
        car_id: int | None = None,
        severity: IncidentSeverity | None = None,
    ) -> list[IncidentModel]:
        query = select(IncidentModel).order_by(
            IncidentModel.incident_date.desc(), IncidentModel.id.desc()
        )
        if status:
            query = query.where(IncidentModel.status == status)
        if car_id:
            query = query.where(IncidentModel.car_id == car_id)
        if severity:
            query = query.where(IncidentModel.severity == severity)
        result = await self.session.execute(query)
        return list(result.unique().scalars().all())

    async def held_car_ids(self, car_ids: Iterable[int] | None = None) -> set[int]:
        """Cars under a fleet-wide hold (open major incident)."""
        query = select(IncidentModel.car_id).where(
            IncidentModel.severity == IncidentSeverity.MAJOR,
            IncidentModel.status == IncidentStatus.OPEN,
        )
        if car_ids is not None:
            query = query.where(IncidentModel.car_id.in_(list(car_ids)))
        result = await self.session.execute(query.distinct())
        return set(result.scalars().all())

    async def count_open(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(IncidentModel)
            .where(IncidentModel.status == IncidentStatus.OPEN)
        )
        return result.scalar() or 0


class CustomerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, customer: CustomerModel) -> CustomerModel:
        self.session.add(customer)
        await self.session.flush()
        return customer

    async def get_by_id(self, customer_id: int) -> Optional[CustomerModel]:
        return await self.session.get(CustomerModel, customer_id)

    async def search(self, term: str | None = None) -> list[CustomerModel]:
        query = select(CustomerModel).order_by(CustomerModel.name)
        if term:
            pattern = f"%{term}%"
            query = query.where(
                or_(
                    CustomerModel.name.ilike(pattern),
                    CustomerModel.email.ilike(pattern),
                    CustomerModel.phone.ilike(pattern),
                    CustomerModel.id_number.ilike(pattern),
                )
            )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def delete(self, customer: CustomerModel) -> None:
        await self.session.delete(customer)
        await self.session.flush()


class ExpenseRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, expense: ExpenseModel) -> ExpenseModel:
        self.session.add(expense)
        await self.session.flush()
        return expense

    async def get_by_id(self, expense_id: int) -> Optional[ExpenseModel]:
        return await self.session.get(ExpenseModel, expense_id)

    async def list(
        self,
        *,
        car_id: int | None = None,
        category: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[ExpenseModel]:
        query = select(ExpenseModel).order_by(
            ExpenseModel.expense_date.desc(), ExpenseModel.id.desc()
        )
        if car_id:
            query = query.where(ExpenseModel.car_id == car_id)
        if category:
            query = query.where(ExpenseModel.category == category)
        if date_from:
            query = query.where(ExpenseModel.expense_date >= date_from)
        if date_to:
            query = query.where(ExpenseModel.expense_date <= date_to)
        result = await self.session.execute(query)
        return list(result.unique().scalars().all())

    async def delete(self, expense: ExpenseModel) -> None:
        await self.session.delete(expense)
        await self.session.flush()


class BranchRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, branch: BranchModel) -> BranchModel:
        self.session.add(branch)
        await self.session.flush()
        return branch

    async def get_by_id(self, branch_id: int) -> Optional[BranchModel]:
        return await self.session.get(BranchModel, branch_id)

    async def list(self) -> list[BranchModel]:
        result = await self.session.execute(select(BranchModel).order_by(BranchModel.name))
        return list(result.scalars().all())


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()

    async def list(self, role: UserRole | None = None) -> list[UserModel]:
        query = select(UserModel).order_by(UserModel.created_at.desc(), UserModel.id.desc())
        if role:
            query = query.where(UserModel.role == role)
        result = await self.session.execute(query)
        return list(result.scalars().all())


class ApiKeyRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, key: ApiKeyModel) -> ApiKeyModel:
        self.session.add(key)
        await self.session.flush()
        return key

    async def get_by_id(self, key_id: int) -> Optional[ApiKeyModel]:
        return await self.session.get(ApiKeyModel, key_id)

    async def get_by_hash(self, token_hash: str) -> Optional[ApiKeyModel]:
        result = await self.session.execute(
            select(ApiKeyModel).where(ApiKeyModel.token_hash == token_hash)
        )
        return result.scalar_one_or_none()

    async def list(self) -> list[ApiKeyModel]:
        result = await self.session.execute(
            select(ApiKeyModel).order_by(ApiKeyModel.created_at.desc(), ApiKeyModel.id.desc())
        )
        return list(result.scalars().all())

    async def delete(self, key: ApiKeyModel) -> None:
        await self.session.delete(key)
        await self.session.flush()


class AuditLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    def add(self, entry: AuditLogModel) -> None:
        self.session.add(entry)

    async def recent(self, limit: int) -> list[AuditLogModel]:
        result = await self.session.execute(
            select(AuditLogModel)
            .order_by(AuditLogModel.created_at.desc(), AuditLogModel.id.desc())
            .limit(limit)
        )
        return list(result.unique().scalars().all())


class NotificationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, notification: NotificationModel) -> NotificationModel:
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def list_for_user(
        self, user_id: int, unread_only: bool = False, limit: int = 50
    ) -> list[NotificationModel]:
        query = (
            select(NotificationModel)
            .where(NotificationModel.user_id == user_id)
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .limit(limit)
        )
        if unread_only:
            query = query.where(NotificationModel.is_read.is_(False))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_unread(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.is_read.is_(False),
            )
        )
        return result.scalar() or 0

    async def get_for_user(
        self, notification_id: int, user_id: int
    ) -> Optional[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.id == notification_id,
                NotificationModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def mark_all_read(self, user_id: int) -> None:
        await self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )

    async def exists_since(
        self,
        *,
        user_id: int,
        kind: NotificationType,
        entity_type: str,
        entity_id: int,
        since: datetime,
    ) -> bool:
        """Whether this recipient already got this notice after *since*."""
        result = await self.session.execute(
            select(NotificationModel.id)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.type == kind,
                NotificationModel.entity_type == entity_type,
                NotificationModel.entity_id == entity_id,
                NotificationModel.created_at > since,
            )
            .limit(1)
        )
        return result.first() is not None


class AgencySettingsRepository:
    SINGLETON_ID = 1

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_or_create(self) -> AgencySettingsModel:
        row = await self.session.get(AgencySettingsModel, self.SINGLETON_ID)
        if row is None:
            row = AgencySettingsModel(
                id=self.SINGLETON_ID,
                agency_name="My Rental Agency",
                currency="USD",
                vat_percent=0.0,
            )
            self.session.add(row)
            await self.session.flush()
        return row
