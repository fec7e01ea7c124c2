"""
Shared test fixtures.

Uses a per-test SQLite file (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are used as-is; the
PostgreSQL exclusion constraint lives only in the migration, so on SQLite
the in-process lock and the conflict check are what keep bookings apart.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backoffice.api.middleware import limiter
from backoffice.config import settings
from backoffice.domain.enums import (
    BookingStatus,
    CarStatus,
    IncidentSeverity,
    IncidentStatus,
    UserRole,
)
from backoffice.infrastructure.database import Base
from backoffice.infrastructure.models import (
    AgencySettingsModel,
    BookingModel,
    CarModel,
    IncidentModel,
    MaintenanceBlockModel,
    UserModel,
)
from backoffice.services.auth import Principal, hash_password

TEST_PASSWORD = "secret-pass"

ADMIN = Principal(id=1, email="admin@test.com", role=UserRole.ADMIN)
STAFF = Principal(id=2, email="staff@test.com", role=UserRole.STAFF)
READONLY = Principal(id=3, email="viewer@test.com", role=UserRole.READONLY)
API_CLIENT = Principal(id=None, email="api:erp", role=UserRole.STAFF)


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch, tmp_path):
    """Fast hashing, no scheduler, no rate limits, uploads under tmp."""
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)
    monkeypatch.setattr(settings, "scheduler_enabled", False)
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(limiter, "enabled", False)


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(session_factory) -> list[UserModel]:
    """Admin, staff and read-only accounts matching the test principals."""
    password_hash = hash_password(TEST_PASSWORD)
    rows = [
        UserModel(id=p.id, email=p.email, password_hash=password_hash, role=p.role)
        for p in (ADMIN, STAFF, READONLY)
    ]
    async with session_factory() as session:
        session.add_all(rows)
        session.add(AgencySettingsModel(id=1, agency_name="Test Rentals", currency="EUR"))
        await session.commit()
    return rows


# ── Factories ─────────────────────────────────────────────────────────


@pytest.fixture
def make_car(session_factory):
    counter = iter(range(1, 10_000))

    async def _make(**overrides) -> CarModel:
        n = next(counter)
        values = dict(
            plate_number=f"TST-{n:03d}",
            make="Toyota",
            model="Corolla",
            year=2022,
            car_class="Economy",
            status=CarStatus.ACTIVE,
            base_daily_rate=40.0,
            current_mileage=1000,
        )
        values.update(overrides)
        async with session_factory() as session:
            car = CarModel(**values, images=[])
            session.add(car)
            await session.commit()
        return car

    return _make


@pytest.fixture
def make_booking(session_factory):
    async def _make(car: CarModel, start: date, days: int = 3, **overrides) -> BookingModel:
        values = dict(
            car_id=car.id,
            customer_name="Jane Doe",
            start_date=start,
            end_date=start + timedelta(days=days),
            status=BookingStatus.RESERVED,
            total_price=120.0,
            deposit=0.0,
        )
        values.update(overrides)
        async with session_factory() as session:
            booking = BookingModel(**values, extras=[])
            session.add(booking)
            await session.commit()
        return booking

    return _make


@pytest.fixture
def make_block(session_factory):
    async def _make(car: CarModel, start: date, days: int = 2) -> MaintenanceBlockModel:
        async with session_factory() as session:
            block = MaintenanceBlockModel(
                car_id=car.id, start_date=start, end_date=start + timedelta(days=days)
            )
            session.add(block)
            await session.commit()
        return block

    return _make


@pytest.fixture
def make_incident(session_factory):
    async def _make(
        car: CarModel,
        severity: IncidentSeverity = IncidentSeverity.MAJOR,
        status: IncidentStatus = IncidentStatus.OPEN,
    ) -> IncidentModel:
        async with session_factory() as session:
            incident = IncidentModel(
                car_id=car.id,
                incident_date=date.today(),
                severity=severity,
                status=status,
                images=[],
            )
            session.add(incident)
            await session.commit()
        return incident

    return _make


# ── HTTP client ───────────────────────────────────────────────────────


class Caller:
    """Who the overridden auth dependency says is calling."""

    def __init__(self) -> None:
        self.principal = ADMIN


@pytest.fixture
def caller() -> Caller:
    return Caller()


@pytest.fixture
def app(session_factory, users):
    from backoffice.api.app import create_app
    from backoffice.api.dependencies import get_db

    async def _test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db] = _test_db
    return app


@pytest_asyncio.fixture
async def anon_client(app):
    """Client going through the real auth dependency."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def client(app, caller):
    """Client authenticated as ``caller.principal`` (admin by default)."""
    from backoffice.api.dependencies import get_current_user

    app.dependency_overrides[get_current_user] = lambda: caller.principal
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
