"""
SQLAlchemy ORM models  (maps to PostgreSQL; SQLite works for dev/tests).

Tables
------
* ``branches``, ``cars``, ``car_images``, ``vehicle_documents``  -- the fleet
* ``customers``, ``bookings``, ``booking_extras``                -- rentals
* ``maintenance_blocks``, ``incidents``, ``incident_images``     -- holds
* ``expenses``                                                   -- costs
* ``users``, ``api_keys``, ``audit_logs``, ``notifications``     -- back-office
* ``agency_settings``                                            -- single row

Indexes
-------
* **B-Tree** on ``(car_id, status)`` and ``(car_id, start_date, end_date)``
  for the conflict checker's per-car range reads.
* The "no two occupying bookings overlap for one car" exclusion constraint
  is PostgreSQL-only and lives in the Alembic migration.

Relationships read by API responses are eager (``joined`` for many-to-one,
``selectin`` for collections) so async sessions never lazy-load.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base
from backoffice.domain.enums import (
    BookingStatus,
    CarStatus,
    ExpenseCategory,
    IncidentSeverity,
    IncidentStatus,
    NotificationType,
    UserRole,
)


def _enum(enum_cls, name: str) -> Enum:
    """Store enum *values* (``"reserved"``), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class BranchModel(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    address = Column(String(255), nullable=True)
    phone = Column(String(40), nullable=True)


class CarModel(Base):
    __tablename__ = "cars"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plate_number = Column(String(20), unique=True, nullable=False)
    make = Column(String(60), nullable=False)
    model = Column(String(60), nullable=False)
    year = Column(Integer, nullable=False)
    car_class = Column("class", String(40), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    status = Column(_enum(CarStatus, "carstatus"), default=CarStatus.ACTIVE, nullable=False)
    base_daily_rate = Column(Float, nullable=False, default=0.0)
    vin = Column(String(40), nullable=True)
    notes = Column(Text, nullable=True)
    current_mileage = Column(Integer, nullable=False, default=0)
    registration_expiry = Column(Date, nullable=True)
    insurance_expiry = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    branch = relationship(BranchModel, lazy="joined")
    images = relationship(
        "CarImageModel",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="CarImageModel.id",
    )

    __table_args__ = (
        Index("idx_cars_status", "status"),
        Index("idx_cars_branch", "branch_id"),
    )

    @property
    def branch_name(self):
        return self.branch.name if self.branch else None


class CarImageModel(Base):
    __tablename__ = "car_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    car_id = Column(Integer, ForeignKey("cars.id", ondelete="CASCADE"), nullable=False)
    url_path = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class VehicleDocumentModel(Base):
    __tablename__ = "vehicle_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    car_id = Column(Integer, ForeignKey("cars.id", ondelete="CASCADE"), nullable=False)
    document_type = Column(String(40), nullable=True)
    title = Column(String(120), nullable=True)
    expiry_date = Column(Date, nullable=True)
    url_path = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_vehicle_documents_car", "car_id"),)


class _CarLabelMixin:
    """Read-only car labels for rows that belong to one car."""

    @property
    def plate_number(self):
        return self.car.plate_number if self.car else None

    @property
    def car_label(self):
        return f"{self.car.make} {self.car.model}" if self.car else None


class CustomerModel(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(String(500), nullable=True)
    id_number = Column(String(50), nullable=True)
    license_expiry = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_customers_name", "name"),)


class BookingModel(_CarLabelMixin, Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    car_id = Column(Integer, ForeignKey("cars.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    customer_name = Column(String(120), nullable=False)
    customer_phone = Column(String(40), nullable=True)
    customer_id_passport = Column(String(60), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(
        _enum(BookingStatus, "bookingstatus"),
        default=BookingStatus.DRAFT,
        nullable=False,
    )
    total_price = Column(Float, nullable=False, default=0.0)
    deposit = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    start_mileage = Column(Integer, nullable=True)
    end_mileage = Column(Integer, nullable=True)
    miles_driven = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    car = relationship(CarModel, lazy="joined")
    extras = relationship(
        "BookingExtraModel",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="BookingExtraModel.id",
    )

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_bookings_range"),
        Index("idx_bookings_car_status", "car_id", "status"),
        Index("idx_bookings_car_range", "car_id", "start_date", "end_date"),
        Index("idx_bookings_customer", "customer_id"),
    )


class BookingExtraModel(Base):
    __tablename__ = "booking_extras"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    extra_name = Column(String(120), nullable=False)
    extra_price = Column(Float, nullable=False, default=0.0)


class MaintenanceBlockModel(_CarLabelMixin, Base):
    __tablename__ = "maintenance_blocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    car_id = Column(Integer, ForeignKey("cars.id", ondelete="CASCADE"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    car = relationship(CarModel, lazy="joined")

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_maintenance_range"),
        Index("idx_maintenance_car_range", "car_id", "start_date", "end_date"),
    )


class IncidentModel(_CarLabelMixin, Base):
    __tablename__ = "incidents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    car_id = Column(Integer, ForeignKey("cars.id", ondelete="CASCADE"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)
    incident_date = Column(Date, nullable=False)
    severity = Column(_enum(IncidentSeverity, "incidentseverity"), nullable=False)
    status = Column(
        _enum(IncidentStatus, "incidentstatus"),
        default=IncidentStatus.OPEN,
        nullable=False,
    )
    description = Column(Text, nullable=True)
    estimated_cost = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    car = relationship(CarModel, lazy="joined")
    images = relationship(
        "IncidentImageModel",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="IncidentImageModel.id",
    )

    __table_args__ = (
        Index("idx_incidents_car_hold", "car_id", "severity", "status"),
        Index("idx_incidents_status", "status"),
    )


class IncidentImageModel(Base):
    __tablename__ = "incident_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    incident_id = Column(
        Integer, ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False
    )
    url_path = Column(String(255), nullable=False)


class ExpenseModel(_CarLabelMixin, Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    car_id = Column(Integer, ForeignKey("cars.id"), nullable=False)
    category = Column(_enum(ExpenseCategory, "expensecategory"), nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    expense_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    car = relationship(CarModel, lazy="joined")

    __table_args__ = (
        Index("idx_expenses_car", "car_id"),
        Index("idx_expenses_date", "expense_date"),
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(_enum(UserRole, "userrole"), default=UserRole.STAFF, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ApiKeyModel(Base):
    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    token_hash = Column(String(64), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_used_at = Column(DateTime(timezone=True), nullable=True)


class AuditLogModel(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(40), nullable=False)
    entity_type = Column(String(40), nullable=False)
    entity_id = Column(String(64), nullable=True)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship(UserModel, lazy="joined")

    __table_args__ = (Index("idx_audit_created", "created_at"),)

    @property
    def user_email(self):
        return self.user.email if self.user else None


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(_enum(NotificationType, "notificationtype"), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    entity_type = Column(String(40), nullable=True)
    entity_id = Column(Integer, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "is_read"),
        Index("idx_notifications_entity", "type", "entity_type", "entity_id"),
    )


class AgencySettingsModel(Base):
    __tablename__ = "agency_settings"

    id = Column(Integer, primary_key=True)
    agency_name = Column(String(120), nullable=False, default="My Rental Agency")
    currency = Column(String(8), nullable=False, default="USD")
    vat_percent = Column(Float, nullable=False, default=0.0)
    logo_path = Column(String(255), nullable=True)
