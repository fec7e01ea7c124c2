"""
Booking Lifecycle Controller
============================

Statuses: draft -> reserved -> confirmed -> active -> completed, with
cancelled reachable from any non-terminal status.  Direct status edits
are allowed; the hard rules are

1. completed / cancelled bookings are immutable,
2. a write that could make a car double-booked must pass the conflict
   checker first, and a rejected write leaves nothing behind.

Concurrency safety
------------------
Check and write run as one unit per car:

* ``car_locks`` (in-process ``asyncio.Lock`` per car id) is held across
  conflict check, write and commit.
* ``SELECT ... FOR UPDATE OF cars`` serialises writers on the same car
  across processes (PostgreSQL).
* The ``ex_bookings_no_overlap`` exclusion constraint is the backstop;
  its violation surfaces as ``CarUnavailable``, never as a 500.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.domain.entities import Booking
from backoffice.domain.enums import INITIAL_STATUSES, BookingStatus
from backoffice.domain.errors import (
    CarUnavailable,
    NotFound,
    ValidationFailed,
)
from backoffice.infrastructure.locks import KeyedLock, car_locks
from backoffice.infrastructure.models import BookingExtraModel, BookingModel, CarModel
from backoffice.infrastructure.repositories import (
    BookingRepository,
    CarRepository,
    CustomerRepository,
)
from backoffice.services.audit import AuditService
from backoffice.services.auth import Principal
from backoffice.services.availability import AvailabilityService

logger = logging.getLogger(__name__)

OVERLAP_CONSTRAINT = "ex_bookings_no_overlap"

# Plain columns a create/update payload may set directly.
BOOKING_FIELDS = (
    "car_id",
    "customer_id",
    "customer_name",
    "customer_phone",
    "customer_id_passport",
    "start_date",
    "end_date",
    "status",
    "total_price",
    "deposit",
    "notes",
    "start_mileage",
    "end_mileage",
)


def to_entity(model: BookingModel) -> Booking:
    return Booking(
        id=model.id,
        car_id=model.car_id,
        start_date=model.start_date,
        end_date=model.end_date,
        status=BookingStatus(model.status),
        start_mileage=model.start_mileage,
        end_mileage=model.end_mileage,
    )


def _extras(items: list[dict[str, Any]]) -> list[BookingExtraModel]:
    return [
        BookingExtraModel(extra_name=e["extra_name"], extra_price=e["extra_price"])
        for e in items
    ]


class BookingService:
    def __init__(self, session: AsyncSession, locks: KeyedLock = car_locks):
        self.session = session
        self.locks = locks
        self.bookings = BookingRepository(session)
        self.cars = CarRepository(session)
        self.customers = CustomerRepository(session)
        self.availability = AvailabilityService(session)
        self.audit = AuditService(session)

    # ── Reads ─────────────────────────────────────────────────────────

    async def get(self, booking_id: int) -> BookingModel:
        booking = await self.bookings.get_by_id(booking_id)
        if not booking:
            raise NotFound("Booking")
        return booking

    async def get_editable(self, booking_id: int) -> BookingModel:
        """Fetch a booking, refusing terminal ones before any validation."""
        booking = await self.get(booking_id)
        to_entity(booking).ensure_editable()
        return booking

    # ── Writes ────────────────────────────────────────────────────────

    async def create(self, data: dict[str, Any], actor: Principal) -> BookingModel:
        status = BookingStatus(data.get("status") or BookingStatus.DRAFT)
        if status not in INITIAL_STATUSES:
            raise ValidationFailed(
                "A booking must be created as draft or reserved", field="status"
            )
        draft = Booking(
            car_id=data["car_id"],
            start_date=data["start_date"],
            end_date=data["end_date"],
            status=status,
            start_mileage=data.get("start_mileage"),
            end_mileage=data.get("end_mileage"),
        )
        period = draft.period
        miles = draft.miles_driven()
        await self._check_customer(data.get("customer_id"))

        async with self.locks.hold(draft.car_id):
            car = await self._lock_car(draft.car_id)
            if await self.availability.has_conflict(car.id, period):
                raise CarUnavailable()

            booking = BookingModel(
                **{k: data.get(k) for k in BOOKING_FIELDS if k in data},
                car=car,
                extras=_extras(data.get("extras") or []),
            )
            booking.status = status
            booking.total_price = data.get("total_price") or 0.0
            booking.deposit = data.get("deposit") or 0.0
            booking.miles_driven = miles
            if draft.start_mileage is not None:
                car.current_mileage = draft.start_mileage
            if miles is not None:
                car.current_mileage = draft.end_mileage

            await self._save(self.bookings.create(booking))
            self.audit.record(
                actor.id, "create", "booking", booking.id, {"status": status.value}
            )
            await self._commit()

        logger.info(
            "Booking %s created for car %s [%s, %s) as %s",
            booking.id, car.id, period.start, period.end, status.value,
        )
        return booking

    async def update(
        self,
        booking_id: int,
        changes: dict[str, Any],
        actor: Principal,
        action: str = "update",
    ) -> BookingModel:
        if not changes:
            raise ValidationFailed("No fields to update")
        while True:
            booking = await self.get_editable(booking_id)
            held = {booking.car_id, changes.get("car_id") or booking.car_id}
            async with self.locks.hold(*held):
                # Re-read under the lock: another writer may have moved it.
                booking = await self.bookings.get_for_update(booking_id)
                if not booking:
                    raise NotFound("Booking")
                if booking.car_id in held:
                    return await self._apply_update(booking, changes, actor, action)
            logger.info(
                "Booking %s moved to car %s while waiting; retrying", booking_id, booking.car_id
            )

    async def _apply_update(
        self,
        booking: BookingModel,
        changes: dict[str, Any],
        actor: Principal,
        action: str,
    ) -> BookingModel:
        """Check and write an update; the caller holds the booking's car locks."""
        before = to_entity(booking)
        after = before.apply(changes)
        miles = after.miles_driven()
        await self._check_customer(changes.get("customer_id"))

        car = await self._lock_car(after.car_id)
        if after.requires_conflict_check(before) and await self.availability.has_conflict(
            after.car_id, after.period, exclude_booking_id=booking.id
        ):
            raise CarUnavailable()

        for key in BOOKING_FIELDS:
            if key in changes:
                setattr(booking, key, changes[key])
        booking.status = after.status
        if after.car_id != before.car_id:
            booking.car = car
        if changes.get("extras") is not None:
            booking.extras = _extras(changes["extras"])
        # derived only: clearing either reading clears it too
        booking.miles_driven = miles
        if miles is not None and {"start_mileage", "end_mileage"} & changes.keys():
            car.current_mileage = after.end_mileage

        await self._save(self.session.flush())
        self.audit.record(actor.id, action, "booking", booking.id, changes)
        await self._commit()

        logger.info("Booking %s %s by %s", booking.id, action, actor.email)
        return booking

    async def change_status(
        self, booking_id: int, status: BookingStatus, actor: Principal
    ) -> BookingModel:
        return await self.update(
            booking_id, {"status": status}, actor, action="status_change"
        )

    # ── Internals ─────────────────────────────────────────────────────

    async def _lock_car(self, car_id: int) -> CarModel:
        car = await self.cars.get_for_update(car_id)
        if not car:
            raise NotFound("Car")
        return car

    async def _check_customer(self, customer_id: Optional[int]) -> None:
        if customer_id is not None and not await self.customers.get_by_id(customer_id):
            raise NotFound("Customer")

    async def _save(self, pending) -> None:
        try:
            await pending
        except IntegrityError as exc:
            await self._translate(exc)

    async def _commit(self) -> None:
        await self._save(self.session.commit())

    async def _translate(self, exc: IntegrityError) -> None:
        await self.session.rollback()
        if OVERLAP_CONSTRAINT in str(exc.orig):
            logger.warning("Overlap constraint rejected a booking write: %s", exc.orig)
            raise CarUnavailable() from exc
        raise exc
