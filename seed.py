"""
Seed script -- populates the database with demo data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - an admin (SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD) and a staff user
  - 1 branch and 8 cars across four classes
  - 3 bookings (completed, active, confirmed)
  - 1 maintenance block and 1 open major incident
"""

import asyncio
from datetime import date, timedelta

from sqlalchemy import text

from backoffice.config import settings
from backoffice.domain.enums import (
    BookingStatus,
    CarStatus,
    IncidentSeverity,
    IncidentStatus,
    UserRole,
)
from backoffice.infrastructure.database import async_session_factory, engine
from backoffice.infrastructure.models import (
    AgencySettingsModel,
    BookingModel,
    BranchModel,
    CarModel,
    IncidentModel,
    MaintenanceBlockModel,
    UserModel,
)
from backoffice.services.auth import hash_password

CAR_CLASSES = ["Economy", "Sedan", "SUV", "Luxury"]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        password_hash = hash_password(settings.seed_admin_password)
        session.add_all(
            [
                UserModel(
                    email=settings.seed_admin_email,
                    password_hash=password_hash,
                    role=UserRole.ADMIN,
                ),
                UserModel(
                    email="staff@demo.com",
                    password_hash=password_hash,
                    role=UserRole.STAFF,
                ),
            ]
        )
        print(f"  Created admin {settings.seed_admin_email} and staff@demo.com")

        if await session.get(AgencySettingsModel, 1) is None:
            session.add(AgencySettingsModel(id=1))

        # ── Fleet ─────────────────────────────────────────────────────
        branch = BranchModel(name="Main Branch", address="123 Main St", phone="+1234567890")
        session.add(branch)
        await session.flush()

        cars = []
        for i in range(1, 9):
            car = CarModel(
                plate_number=f"DEMO-{100 + i}",
                make=f"Make{i}",
                model=f"Model{i}",
                year=2020 + i % 4,
                car_class=CAR_CLASSES[i % 4],
                branch_id=branch.id,
                status=CarStatus.ACTIVE,
                base_daily_rate=50 + i * 10,
                current_mileage=0,
                images=[],
            )
            session.add(car)
            cars.append(car)
        await session.flush()
        print(f"  Created {len(cars)} cars")

        # ── Bookings ──────────────────────────────────────────────────
        today = date.today()
        session.add_all(
            [
                BookingModel(
                    car_id=cars[0].id,
                    customer_name="Past Customer",
                    customer_phone="+111",
                    start_date=today - timedelta(days=14),
                    end_date=today - timedelta(days=10),
                    status=BookingStatus.COMPLETED,
                    total_price=200,
                    deposit=50,
                ),
                BookingModel(
                    car_id=cars[1].id,
                    customer_name="Current Customer",
                    customer_phone="+222",
                    start_date=today,
                    end_date=today + timedelta(days=7),
                    status=BookingStatus.ACTIVE,
                    total_price=300,
                    deposit=75,
                ),
                BookingModel(
                    car_id=cars[2].id,
                    customer_name="Future Customer",
                    customer_phone="+333",
                    start_date=today + timedelta(days=7),
                    end_date=today + timedelta(days=10),
                    status=BookingStatus.CONFIRMED,
                    total_price=250,
                    deposit=50,
                ),
            ]
        )
        print("  Created 3 bookings")

        # ── Holds ─────────────────────────────────────────────────────
        session.add(
            MaintenanceBlockModel(
                car_id=cars[0].id,
                start_date=today + timedelta(days=14),
                end_date=today + timedelta(days=16),
                reason="Scheduled service",
            )
        )
        session.add(
            IncidentModel(
                car_id=cars[1].id,
                incident_date=today,
                severity=IncidentSeverity.MAJOR,
                status=IncidentStatus.OPEN,
                description="Demo incident",
                estimated_cost=500,
            )
        )
        print("  Created 1 maintenance block and 1 major incident")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
