"""
Conflict Checker and Availability Scanner
=========================================

Both are stateless reads over the current store snapshot; they hold no
state between calls and never write.

* ``has_conflict``: does an occupying booking or a maintenance block of
  one car overlap ``[start, end)``?
* ``get_available_cars``: every active car (optionally of one class /
  branch) that has no conflict and no open major incident, ordered by
  class then plate number.  Bookings and maintenance for the whole
  candidate set are read in one query each and grouped by car.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.domain import availability as rules
from backoffice.domain.intervals import DateRange
from backoffice.infrastructure.models import CarModel
from backoffice.infrastructure.repositories import (
    BookingRepository,
    CarRepository,
    IncidentRepository,
    MaintenanceRepository,
)


@dataclass(frozen=True)
class AvailableCar:
    car: CarModel
    days: int

    @property
    def daily_rate(self) -> float:
        return float(self.car.base_daily_rate or 0.0)

    @property
    def estimated_total(self) -> float:
        return round(self.daily_rate * self.days, 2)


class AvailabilityService:
    def __init__(self, session: AsyncSession):
        self.cars = CarRepository(session)
        self.bookings = BookingRepository(session)
        self.maintenance = MaintenanceRepository(session)
        self.incidents = IncidentRepository(session)

    async def has_conflict(
        self,
        car_id: int,
        period: DateRange,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        occupancies = [
            *await self.bookings.get_occupancies([car_id], period.start, period.end),
            *await self.maintenance.get_occupancies([car_id], period.start, period.end),
        ]
        return rules.has_conflict(period, occupancies, exclude_booking_id)

    async def get_available_cars(
        self,
        period: DateRange,
        car_class: Optional[str] = None,
        branch_id: Optional[int] = None,
    ) -> list[AvailableCar]:
        candidates = await self.cars.get_rentable(car_class, branch_id)
        if not candidates:
            return []

        ids = [car.id for car in candidates]
        occupancies = [
            *await self.bookings.get_occupancies(ids, period.start, period.end),
            *await self.maintenance.get_occupancies(ids, period.start, period.end),
        ]
        held = await self.incidents.held_car_ids(ids)

        free = rules.scan_available(candidates, period, occupancies, held)
        return [AvailableCar(car=car, days=period.days) for car in free]
