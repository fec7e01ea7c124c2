"""Dashboard summary and CSV exports."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.domain.enums import OCCUPYING_STATUSES, BookingStatus, CarStatus
from backoffice.domain.errors import ValidationFailed
from backoffice.domain.intervals import DateRange
from backoffice.infrastructure.models import BookingModel
from backoffice.infrastructure.repositories import (
    BookingRepository,
    CarRepository,
    IncidentRepository,
)
from backoffice.services.availability import AvailabilityService

EXPORT_COLUMNS = {
    "bookings": (
        "id", "customer_name", "customer_phone", "start_date", "end_date",
        "status", "total_price", "deposit", "plate_number",
    ),
    "cars": (
        "id", "plate_number", "make", "model", "year", "class", "status",
        "base_daily_rate",
    ),
    "incidents": (
        "id", "incident_date", "severity", "description", "estimated_cost",
        "status", "plate_number",
    ),
}


@dataclass
class Summary:
    cars_total: int
    available_today: int
    bookings_today: int
    active_rentals: int
    pending_incidents: int
    revenue_total: float
    utilization_percent: int
    currency: str


class ReportService:
    def __init__(self, session: AsyncSession):
        self.cars = CarRepository(session)
        self.bookings = BookingRepository(session)
        self.incidents = IncidentRepository(session)
        self.availability = AvailabilityService(session)

    async def summary(self, today: date, currency: str) -> Summary:
        cars_total = await self.cars.count_by_status(CarStatus.ACTIVE)
        free = await self.availability.get_available_cars(
            DateRange(today, today + timedelta(days=1))
        )
        bookings_today = await self.bookings.count_where(
            BookingModel.status.in_(list(OCCUPYING_STATUSES)),
            BookingModel.start_date <= today,
            BookingModel.end_date > today,
        )
        active = await self.bookings.count_where(
            BookingModel.status == BookingStatus.ACTIVE
        )
        utilization = round(active / cars_total * 100) if cars_total else 0
        return Summary(
            cars_total=cars_total,
            available_today=len(free),
            bookings_today=bookings_today,
            active_rentals=active,
            pending_incidents=await self.incidents.count_open(),
            revenue_total=await self.bookings.revenue_completed(),
            utilization_percent=utilization,
            currency=currency,
        )

    async def export_csv(self, kind: str) -> str:
        if kind not in EXPORT_COLUMNS:
            raise ValidationFailed(
                "Invalid type. Use bookings, cars, or incidents.", field="type"
            )
        rows = await getattr(self, f"_{kind}_rows")()
        buffer = io.StringIO()
        writer = csv.DictWriter(
            buffer, fieldnames=EXPORT_COLUMNS[kind], lineterminator="\n"
        )
        writer.writeheader()
        writer.writerows(rows)
        return buffer.getvalue()

    async def _bookings_rows(self) -> list[dict]:
        return [
            {
                "id": b.id,
                "customer_name": b.customer_name,
                "customer_phone": b.customer_phone or "",
                "start_date": b.start_date.isoformat(),
                "end_date": b.end_date.isoformat(),
                "status": BookingStatus(b.status).value,
                "total_price": b.total_price,
                "deposit": b.deposit,
                "plate_number": b.car.plate_number if b.car else "",
            }
            for b in await self.bookings.list()
        ]

    async def _cars_rows(self) -> list[dict]:
        return [
            {
                "id": c.id,
                "plate_number": c.plate_number,
                "make": c.make,
                "model": c.model,
                "year": c.year,
                "class": c.car_class,
                "status": CarStatus(c.status).value,
                "base_daily_rate": c.base_daily_rate,
            }
            for c in await self.cars.list()
        ]

    async def _incidents_rows(self) -> list[dict]:
        return [
            {
                "id": i.id,
                "incident_date": i.incident_date.isoformat(),
                "severity": i.severity.value,
                "description": i.description or "",
                "estimated_cost": "" if i.estimated_cost is None else i.estimated_cost,
                "status": i.status.value,
                "plate_number": i.car.plate_number if i.car else "",
            }
            for i in await self.incidents.list()
        ]
