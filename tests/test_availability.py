"""
Conflict checker and availability scanner.

Pure rule tests use ``Occupancy`` values directly; service tests run the
same rules against rows in SQLite.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

import pytest

from backoffice.domain import availability as rules
from backoffice.domain.entities import Occupancy
from backoffice.domain.enums import BookingStatus, CarStatus, IncidentSeverity, IncidentStatus
from backoffice.domain.intervals import DateRange
from backoffice.infrastructure.models import IncidentModel
from backoffice.services.availability import AvailabilityService


@dataclass
class _Car:
    id: int


def rng(start: str, end: str) -> DateRange:
    return DateRange(date.fromisoformat(start), date.fromisoformat(end))


# ── Pure rules ────────────────────────────────────────────────────────


class TestConflictRules:
    def test_overlapping_occupancy_conflicts(self):
        occ = [Occupancy(car_id=1, start=date(2025, 3, 1), end=date(2025, 3, 5), booking_id=7)]
        assert rules.has_conflict(rng("2025-03-04", "2025-03-06"), occ)

    def test_adjacent_occupancy_is_free(self):
        occ = [Occupancy(car_id=1, start=date(2025, 3, 1), end=date(2025, 3, 5), booking_id=7)]
        assert not rules.has_conflict(rng("2025-03-05", "2025-03-07"), occ)

    def test_excluded_booking_is_ignored(self):
        occ = [Occupancy(car_id=1, start=date(2025, 3, 1), end=date(2025, 3, 5), booking_id=7)]
        assert not rules.has_conflict(rng("2025-03-02", "2025-03-08"), occ, exclude_booking_id=7)

    def test_exclusion_does_not_hide_maintenance(self):
        occ = [Occupancy(car_id=1, start=date(2025, 3, 1), end=date(2025, 3, 5))]
        assert occ[0].is_maintenance
        assert rules.has_conflict(rng("2025-03-02", "2025-03-03"), occ, exclude_booking_id=7)

    def test_find_conflict_returns_the_blocking_occupancy(self):
        block = Occupancy(car_id=1, start=date(2025, 3, 10), end=date(2025, 3, 12))
        occ = [
            Occupancy(car_id=1, start=date(2025, 3, 1), end=date(2025, 3, 5), booking_id=7),
            block,
        ]
        assert rules.find_conflict(rng("2025-03-11", "2025-03-13"), occ) == block


class TestScanRules:
    def test_keeps_candidate_order(self):
        cars = [_Car(3), _Car(1), _Car(2)]
        free = rules.scan_available(cars, rng("2025-03-01", "2025-03-02"), [], set())
        assert [c.id for c in free] == [3, 1, 2]

    def test_drops_conflicting_and_held_cars(self):
        cars = [_Car(1), _Car(2), _Car(3)]
        occ = [Occupancy(car_id=1, start=date(2025, 3, 1), end=date(2025, 3, 5), booking_id=9)]
        free = rules.scan_available(cars, rng("2025-03-02", "2025-03-03"), occ, {3})
        assert [c.id for c in free] == [2]

    def test_occupancy_of_other_car_does_not_block(self):
        occ = [Occupancy(car_id=2, start=date(2025, 3, 1), end=date(2025, 3, 5), booking_id=9)]
        free = rules.scan_available([_Car(1)], rng("2025-03-02", "2025-03-03"), occ, set())
        assert [c.id for c in free] == [1]


# ── Service against the database ──────────────────────────────────────


class TestHasConflict:
    @pytest.mark.asyncio
    async def test_occupying_booking_creates_conflict(self, db_session, make_car, make_booking):
        car = await make_car()
        period = rng("2025-05-01", "2025-05-04")
        service = AvailabilityService(db_session)
        assert not await service.has_conflict(car.id, period)

        await make_booking(car, period.start, status=BookingStatus.CONFIRMED)
        assert await service.has_conflict(car.id, period)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.DRAFT]
    )
    async def test_non_occupying_booking_is_ignored(
        self, db_session, make_car, make_booking, status
    ):
        car = await make_car()
        await make_booking(car, date(2025, 5, 1), status=status)
        service = AvailabilityService(db_session)
        assert not await service.has_conflict(car.id, rng("2025-05-01", "2025-05-04"))

    @pytest.mark.asyncio
    async def test_only_overlap_is_the_excluded_booking(
        self, db_session, make_car, make_booking
    ):
        car = await make_car()
        booking = await make_booking(car, date(2025, 5, 1), status=BookingStatus.ACTIVE)
        service = AvailabilityService(db_session)
        period = rng("2025-05-01", "2025-05-06")
        assert await service.has_conflict(car.id, period)
        assert not await service.has_conflict(car.id, period, exclude_booking_id=booking.id)

    @pytest.mark.asyncio
    async def test_maintenance_block_conflicts(self, db_session, make_car, make_block):
        car = await make_car()
        await make_block(car, date(2025, 4, 10), days=2)
        service = AvailabilityService(db_session)
        assert await service.has_conflict(car.id, rng("2025-04-11", "2025-04-13"))
        assert not await service.has_conflict(car.id, rng("2025-04-12", "2025-04-13"))

    @pytest.mark.asyncio
    async def test_other_cars_bookings_do_not_conflict(
        self, db_session, make_car, make_booking
    ):
        car, other = await make_car(), await make_car()
        await make_booking(other, date(2025, 5, 1))
        service = AvailabilityService(db_session)
        assert not await service.has_conflict(car.id, rng("2025-05-01", "2025-05-04"))


class TestGetAvailableCars:
    @pytest.mark.asyncio
    async def test_adjacent_booking_keeps_car_available(
        self, db_session, make_car, make_booking
    ):
        car = await make_car()
        await make_booking(car, date(2025, 3, 1), days=4, status=BookingStatus.CONFIRMED)
        service = AvailabilityService(db_session)

        overlapping = await service.get_available_cars(rng("2025-03-04", "2025-03-06"))
        assert car.id not in [a.car.id for a in overlapping]

        adjacent = await service.get_available_cars(rng("2025-03-05", "2025-03-07"))
        assert car.id in [a.car.id for a in adjacent]

    @pytest.mark.asyncio
    async def test_open_major_incident_holds_car_for_any_dates(
        self, db_session, make_car, make_incident
    ):
        car = await make_car()
        incident = await make_incident(car)
        service = AvailabilityService(db_session)
        far_future = date.today() + timedelta(days=400)

        for period in (
            DateRange(date.today(), date.today() + timedelta(days=1)),
            DateRange(far_future, far_future + timedelta(days=3)),
        ):
            found = await service.get_available_cars(period)
            assert car.id not in [a.car.id for a in found]

        row = await db_session.get(IncidentModel, incident.id)
        row.status = IncidentStatus.RESOLVED
        await db_session.commit()

        found = await service.get_available_cars(
            DateRange(far_future, far_future + timedelta(days=3))
        )
        assert car.id in [a.car.id for a in found]

    @pytest.mark.asyncio
    async def test_minor_or_reviewed_incident_does_not_hold(
        self, db_session, make_car, make_incident
    ):
        minor = await make_car()
        reviewed = await make_car()
        await make_incident(minor, severity=IncidentSeverity.MINOR)
        await make_incident(reviewed, status=IncidentStatus.UNDER_REVIEW)
        service = AvailabilityService(db_session)
        found = await service.get_available_cars(rng("2025-06-01", "2025-06-02"))
        assert {minor.id, reviewed.id} <= {a.car.id for a in found}

    @pytest.mark.asyncio
    async def test_only_active_cars_are_candidates(self, db_session, make_car):
        active = await make_car()
        await make_car(status=CarStatus.MAINTENANCE)
        await make_car(status=CarStatus.INACTIVE)
        service = AvailabilityService(db_session)
        found = await service.get_available_cars(rng("2025-06-01", "2025-06-02"))
        assert [a.car.id for a in found] == [active.id]

    @pytest.mark.asyncio
    async def test_sorted_by_class_then_plate_and_filtered(self, db_session, make_car):
        await make_car(plate_number="B-2", car_class="SUV")
        await make_car(plate_number="A-1", car_class="SUV")
        await make_car(plate_number="C-3", car_class="Economy")
        service = AvailabilityService(db_session)

        found = await service.get_available_cars(rng("2025-06-01", "2025-06-02"))
        assert [a.car.plate_number for a in found] == ["C-3", "A-1", "B-2"]

        suvs = await service.get_available_cars(rng("2025-06-01", "2025-06-02"), car_class="SUV")
        assert [a.car.plate_number for a in suvs] == ["A-1", "B-2"]

    @pytest.mark.asyncio
    async def test_price_estimate(self, db_session, make_car):
        await make_car(base_daily_rate=55.5)
        service = AvailabilityService(db_session)
        [found] = await service.get_available_cars(rng("2025-06-01", "2025-06-04"))
        assert found.days == 3
        assert found.daily_rate == 55.5
        assert found.estimated_total == 166.5

    @pytest.mark.asyncio
    async def test_empty_fleet(self, db_session):
        service = AvailabilityService(db_session)
        assert await service.get_available_cars(rng("2025-06-01", "2025-06-02")) == []
