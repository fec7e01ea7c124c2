"""
Daily fleet checks that turn into in-app notifications for admins.

* Overdue: active/reserved bookings whose end date has passed.
* Expiring documents: registration or insurance expiring within the
  warning window.

Each check is idempotent: before writing, it looks for the same notice
(recipient, type, entity) created after the relevant cut-off, so running
it twice in a day, or daily for a week, notifies once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.domain.enums import NotificationType, UserRole
from backoffice.infrastructure.models import BookingModel, CarModel, NotificationModel
from backoffice.infrastructure.repositories import (
    BookingRepository,
    CarRepository,
    NotificationRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    overdue: int = 0
    expiring: int = 0

    @property
    def total(self) -> int:
        return self.overdue + self.expiring


class NotificationService:
    def __init__(self, session: AsyncSession, warning_days: int = 30):
        self.session = session
        self.warning_days = warning_days
        self.notifications = NotificationRepository(session)
        self.bookings = BookingRepository(session)
        self.cars = CarRepository(session)
        self.users = UserRepository(session)

    async def run_daily_checks(self, today: date) -> CheckResult:
        recipients = [u.id for u in await self.users.list(role=UserRole.ADMIN)]
        if not recipients:
            logger.warning("No admin users to notify; skipping daily checks")
            return CheckResult()
        result = CheckResult(
            overdue=await self.notify_overdue(today, recipients),
            expiring=await self.notify_expiring(today, recipients),
        )
        logger.info(
            "Daily checks: %d overdue, %d expiring notifications",
            result.overdue, result.expiring,
        )
        return result

    async def notify_overdue(self, today: date, recipients: list[int]) -> int:
        overdue = await self.bookings.get_overdue(today)
        logger.info("Found %d overdue bookings", len(overdue))
        created = 0
        for booking in overdue:
            since = datetime.combine(booking.end_date, time.min)
            for user_id in recipients:
                created += await self._notify_once(
                    user_id,
                    NotificationType.OVERDUE,
                    "booking",
                    booking.id,
                    since,
                    title=f"Overdue Booking: {booking.customer_name}",
                    message=_overdue_message(booking),
                )
        return created

    async def notify_expiring(self, today: date, recipients: list[int]) -> int:
        horizon = today + timedelta(days=self.warning_days)
        cars = await self.cars.get_expiring(horizon)
        logger.info("Found %d cars with expiring documents", len(cars))
        created = 0
        for car in cars:
            for kind, label, expiry in (
                (NotificationType.REGISTRATION_EXPIRING, "Registration", car.registration_expiry),
                (NotificationType.INSURANCE_EXPIRING, "Insurance", car.insurance_expiry),
            ):
                if expiry is None or not today <= expiry <= horizon:
                    continue
                window_start = datetime.combine(
                    expiry - timedelta(days=self.warning_days + 1), time.min
                )
                for user_id in recipients:
                    created += await self._notify_once(
                        user_id,
                        kind,
                        "car",
                        car.id,
                        window_start,
                        title=f"{label} Expiring: {car.plate_number}",
                        message=_expiry_message(car, label, expiry, today),
                    )
        return created

    async def _notify_once(
        self,
        user_id: int,
        kind: NotificationType,
        entity_type: str,
        entity_id: int,
        since: datetime,
        *,
        title: str,
        message: str,
    ) -> int:
        if await self.notifications.exists_since(
            user_id=user_id,
            kind=kind,
            entity_type=entity_type,
            entity_id=entity_id,
            since=since,
        ):
            return 0
        await self.notifications.create(
            NotificationModel(
                user_id=user_id,
                type=kind,
                title=title,
                message=message,
                entity_type=entity_type,
                entity_id=entity_id,
                is_read=False,
            )
        )
        return 1


def _overdue_message(booking: BookingModel) -> str:
    plate = booking.car.plate_number if booking.car else f"car #{booking.car_id}"
    return (
        f"Booking #{booking.id} for {plate} is overdue. "
        f"It was due on {booking.end_date.isoformat()}."
    )


def _expiry_message(car: CarModel, label: str, expiry: date, today: date) -> str:
    days_left = (expiry - today).days
    return (
        f"Vehicle {label.lower()} for {car.make} {car.model} ({car.plate_number}) "
        f"expires on {expiry.isoformat()} ({days_left} days left)."
    )
