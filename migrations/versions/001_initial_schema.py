"""Initial schema: fleet, bookings, back-office tables and the overlap guard.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = {
    "carstatus": ("active", "maintenance", "inactive"),
    "bookingstatus": (
        "draft", "reserved", "confirmed", "active", "completed", "cancelled",
    ),
    "incidentseverity": ("minor", "major"),
    "incidentstatus": ("open", "under_review", "resolved"),
    "expensecategory": (
        "maintenance", "insurance", "registration", "cleaning", "misc", "fuel",
    ),
    "userrole": ("admin", "staff", "readonly"),
    "notificationtype": ("overdue", "registration_expiring", "insurance_expiring"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*ENUMS[name], name=name)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
    )


def upgrade() -> None:
    # gist index over (integer =, daterange &&) needs btree_gist
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # ── branches / users ──────────────────────────────────────────────
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(40), nullable=True),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", _enum("userrole"), nullable=False, server_default="staff"),
        _created_at(),
    )

    # ── cars ──────────────────────────────────────────────────────────
    op.create_table(
        "cars",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("plate_number", sa.String(20), unique=True, nullable=False),
        sa.Column("make", sa.String(60), nullable=False),
        sa.Column("model", sa.String(60), nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("class", sa.String(40), nullable=False),
        sa.Column("branch_id", sa.Integer, sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("status", _enum("carstatus"), nullable=False, server_default="active"),
        sa.Column("base_daily_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("vin", sa.String(40), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("current_mileage", sa.Integer, nullable=False, server_default="0"),
        sa.Column("registration_expiry", sa.Date, nullable=True),
        sa.Column("insurance_expiry", sa.Date, nullable=True),
        _created_at(),
    )
    op.create_index("idx_cars_status", "cars", ["status"])
    op.create_index("idx_cars_branch", "cars", ["branch_id"])

    op.create_table(
        "car_images",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "car_id", sa.Integer,
            sa.ForeignKey("cars.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("url_path", sa.String(255), nullable=False),
        _created_at(),
    )
    op.create_table(
        "vehicle_documents",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "car_id", sa.Integer,
            sa.ForeignKey("cars.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("document_type", sa.String(40), nullable=True),
        sa.Column("title", sa.String(120), nullable=True),
        sa.Column("expiry_date", sa.Date, nullable=True),
        sa.Column("url_path", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer, nullable=True),
        sa.Column("uploaded_by", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
    )
    op.create_index("idx_vehicle_documents_car", "vehicle_documents", ["car_id"])

    # ── customers / bookings ──────────────────────────────────────────
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("id_number", sa.String(50), nullable=True),
        sa.Column("license_expiry", sa.Date, nullable=True),
        _created_at(),
    )
    op.create_index("idx_customers_name", "customers", ["name"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("car_id", sa.Integer, sa.ForeignKey("cars.id"), nullable=False),
        sa.Column(
            "customer_id", sa.Integer,
            sa.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("customer_name", sa.String(120), nullable=False),
        sa.Column("customer_phone", sa.String(40), nullable=True),
        sa.Column("customer_id_passport", sa.String(60), nullable=True),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column(
            "status", _enum("bookingstatus"), nullable=False, server_default="draft"
        ),
        sa.Column("total_price", sa.Float, nullable=False, server_default="0"),
        sa.Column("deposit", sa.Float, nullable=False, server_default="0"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("start_mileage", sa.Integer, nullable=True),
        sa.Column("end_mileage", sa.Integer, nullable=True),
        sa.Column("miles_driven", sa.Integer, nullable=True),
        _created_at(),
        sa.CheckConstraint("start_date < end_date", name="ck_bookings_range"),
    )
    op.create_index("idx_bookings_car_status", "bookings", ["car_id", "status"])
    op.create_index(
        "idx_bookings_car_range", "bookings", ["car_id", "start_date", "end_date"]
    )
    op.create_index("idx_bookings_customer", "bookings", ["customer_id"])

    # No two occupying bookings of one car may share a day.
    op.execute(
        """
        ALTER TABLE bookings
        ADD CONSTRAINT ex_bookings_no_overlap
        EXCLUDE USING gist (
            car_id WITH =,
            daterange(start_date, end_date, '[)') WITH &&
        )
        WHERE (status IN ('reserved', 'confirmed', 'active'))
        """
    )

    op.create_table(
        "booking_extras",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id", sa.Integer,
            sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("extra_name", sa.String(120), nullable=False),
        sa.Column("extra_price", sa.Float, nullable=False, server_default="0"),
    )

    # ── holds: maintenance / incidents ────────────────────────────────
    op.create_table(
        "maintenance_blocks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "car_id", sa.Integer,
            sa.ForeignKey("cars.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        _created_at(),
        sa.CheckConstraint("start_date < end_date", name="ck_maintenance_range"),
    )
    op.create_index(
        "idx_maintenance_car_range",
        "maintenance_blocks",
        ["car_id", "start_date", "end_date"],
    )

    op.create_table(
        "incidents",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "car_id", sa.Integer,
            sa.ForeignKey("cars.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "booking_id", sa.Integer,
            sa.ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("incident_date", sa.Date, nullable=False),
        sa.Column("severity", _enum("incidentseverity"), nullable=False),
        sa.Column(
            "status", _enum("incidentstatus"), nullable=False, server_default="open"
        ),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("estimated_cost", sa.Float, nullable=True),
        _created_at(),
    )
    op.create_index(
        "idx_incidents_car_hold", "incidents", ["car_id", "severity", "status"]
    )
    op.create_index("idx_incidents_status", "incidents", ["status"])

    op.create_table(
        "incident_images",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "incident_id", sa.Integer,
            sa.ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("url_path", sa.String(255), nullable=False),
    )

    # ── expenses ──────────────────────────────────────────────────────
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("car_id", sa.Integer, sa.ForeignKey("cars.id"), nullable=False),
        sa.Column("category", _enum("expensecategory"), nullable=False),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("expense_date", sa.Date, nullable=False),
        _created_at(),
    )
    op.create_index("idx_expenses_car", "expenses", ["car_id"])
    op.create_index("idx_expenses_date", "expenses", ["expense_date"])

    # ── back-office ───────────────────────────────────────────────────
    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("token_hash", sa.String(64), unique=True, nullable=False),
        _created_at(),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("action", sa.String(40), nullable=False),
        sa.Column("entity_type", sa.String(40), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=True),
        sa.Column("metadata_json", sa.JSON, nullable=True),
        _created_at(),
    )
    op.create_index("idx_audit_created", "audit_logs", ["created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", _enum("notificationtype"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("entity_type", sa.String(40), nullable=True),
        sa.Column("entity_id", sa.Integer, nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index(
        "idx_notifications_user_read", "notifications", ["user_id", "is_read"]
    )
    op.create_index(
        "idx_notifications_entity",
        "notifications",
        ["type", "entity_type", "entity_id"],
    )

    op.create_table(
        "agency_settings",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "agency_name", sa.String(120), nullable=False,
            server_default="My Rental Agency",
        ),
        sa.Column("currency", sa.String(8), nullable=False, server_default="USD"),
        sa.Column("vat_percent", sa.Float, nullable=False, server_default="0"),
        sa.Column("logo_path", sa.String(255), nullable=True),
    )
    op.execute("INSERT INTO agency_settings (id) VALUES (1)")


def downgrade() -> None:
    for table in (
        "agency_settings",
        "notifications",
        "audit_logs",
        "api_keys",
        "expenses",
        "incident_images",
        "incidents",
        "maintenance_blocks",
        "booking_extras",
        "bookings",
        "customers",
        "vehicle_documents",
        "car_images",
        "cars",
        "users",
        "branches",
    ):
        op.drop_table(table)
    for name in ENUMS:
        op.execute(f"DROP TYPE IF EXISTS {name}")
