"""
Concurrency safety tests.

Demonstrates:
1. ``KeyedLock`` serialises writers per car and never deadlocks on
   multi-car holds.
2. Two simultaneous bookings of the same car for the same dates: exactly
   one succeeds.
3. A violation of the database exclusion constraint surfaces as
   ``CarUnavailable``.
4. Distributed lock prevents simultaneous acquire.
"""

from __future__ import annotations

import asyncio
from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from backoffice.domain.enums import BookingStatus, UserRole
from backoffice.domain.errors import CarUnavailable
from backoffice.infrastructure.locks import DistributedLock, KeyedLock
from backoffice.infrastructure.models import BookingModel
from backoffice.services.auth import Principal
from backoffice.services.bookings import BookingService

STAFF = Principal(id=2, email="staff@test.com", role=UserRole.STAFF)


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_is_serialised(self):
        locks = KeyedLock()
        events: list[str] = []

        async def writer(name: str):
            async with locks.hold(7):
                events.append(f"{name}:in")
                await asyncio.sleep(0.01)
                events.append(f"{name}:out")

        await asyncio.gather(writer("a"), writer("b"))
        assert events in (
            ["a:in", "a:out", "b:in", "b:out"],
            ["b:in", "b:out", "a:in", "a:out"],
        )

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        release = asyncio.Event()

        async def holder():
            async with locks.hold(1):
                await release.wait()

        task = asyncio.create_task(holder())
        await asyncio.sleep(0)
        assert locks.locked(1)

        async with locks.hold(2):
            assert locks.locked(2)

        release.set()
        await task

    @pytest.mark.asyncio
    async def test_opposite_key_order_does_not_deadlock(self):
        locks = KeyedLock()

        async def move(a: int, b: int):
            async with locks.hold(a, b):
                await asyncio.sleep(0.01)

        await asyncio.wait_for(asyncio.gather(move(1, 2), move(2, 1)), timeout=2)

    @pytest.mark.asyncio
    async def test_locks_are_dropped_when_idle(self):
        locks = KeyedLock()
        async with locks.hold(1, 1, 2):
            assert locks.locked(1) and locks.locked(2)
        assert not locks.locked(1)
        assert locks._locks == {}


class TestSimultaneousBookings:
    @pytest.mark.asyncio
    async def test_exactly_one_of_two_overlapping_creates_wins(
        self, session_factory, make_car
    ):
        car = await make_car()
        locks = KeyedLock()

        async def attempt(name: str):
            async with session_factory() as session:
                return await BookingService(session, locks=locks).create(
                    {
                        "car_id": car.id,
                        "customer_name": name,
                        "start_date": date(2025, 7, 1),
                        "end_date": date(2025, 7, 5),
                        "status": BookingStatus.RESERVED,
                    },
                    STAFF,
                )

        results = await asyncio.gather(
            attempt("first"), attempt("second"), return_exceptions=True
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], CarUnavailable)

        async with session_factory() as session:
            rows = (await session.execute(select(BookingModel))).unique().scalars().all()
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_exclusion_violation_maps_to_car_unavailable(self, db_session):
        service = BookingService(db_session, locks=KeyedLock())

        async def rejected_insert():
            raise IntegrityError(
                "INSERT INTO bookings ...",
                {},
                Exception(
                    'conflicting key value violates exclusion constraint '
                    '"ex_bookings_no_overlap"'
                ),
            )

        with pytest.raises(CarUnavailable):
            await service._save(rejected_insert())

    @pytest.mark.asyncio
    async def test_other_integrity_errors_propagate(self, db_session):
        service = BookingService(db_session, locks=KeyedLock())

        async def rejected_insert():
            raise IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed"))

        with pytest.raises(IntegrityError):
            await service._save(rejected_insert())


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "daily", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:daily", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "daily", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_calls_eval_with_own_token(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "daily", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "lock:daily", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "daily", ttl_seconds=10)
        with pytest.raises(RuntimeError, match="Could not acquire lock"):
            async with lock:
                pass
