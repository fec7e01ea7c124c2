"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, ClassVar, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator

from backoffice.config import settings
from backoffice.domain.enums import (
    BookingStatus,
    CarStatus,
    ExpenseCategory,
    IncidentSeverity,
    IncidentStatus,
    NotificationType,
    UserRole,
)


def _url_paths(value: Any) -> Any:
    """Image relationships serialise as their public URLs."""
    if isinstance(value, list):
        return [getattr(v, "url_path", v) for v in value]
    return value


class PartialUpdate(BaseModel):
    """Base for PUT bodies where every field is optional."""

    # columns a client may clear by sending null
    nullable: ClassVar[frozenset[str]] = frozenset()

    def changes(self) -> dict[str, Any]:
        """The fields the client actually sent, minus nulls it may not set."""
        return {
            k: v
            for k, v in self.model_dump(exclude_unset=True).items()
            if v is not None or k in self.nullable
        }


# ── Auth / users ──────────────────────────────────────────────────────


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    id: int
    email: str
    role: UserRole
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class MeResponse(BaseModel):
    id: Optional[int] = None
    email: str
    role: UserRole


class ProfileUpdateRequest(BaseModel):
    current_password: str
    new_password: str


class UserCreateRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: UserRole = UserRole.STAFF


# ── Branches ──────────────────────────────────────────────────────────


class BranchCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    address: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=40)


class BranchResponse(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None

    model_config = {"from_attributes": True}


# ── Cars ──────────────────────────────────────────────────────────────


class _CarFields(BaseModel):
    @field_validator("year", check_fields=False)
    @classmethod
    def _year_in_range(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and not settings.car_year_min <= value <= settings.car_year_max:
            raise ValueError(
                f"year must be between {settings.car_year_min} and {settings.car_year_max}"
            )
        return value

    model_config = {"populate_by_name": True}


class CarCreateRequest(_CarFields):
    plate_number: str = Field(..., min_length=1, max_length=20)
    make: str = Field(..., min_length=1, max_length=60)
    model: str = Field(..., min_length=1, max_length=60)
    year: int
    car_class: str = Field(..., alias="class", min_length=1, max_length=40)
    branch_id: Optional[int] = None
    status: CarStatus = CarStatus.ACTIVE
    base_daily_rate: float = Field(0.0, ge=0)
    vin: Optional[str] = Field(None, max_length=40)
    notes: Optional[str] = None
    current_mileage: int = Field(0, ge=0)
    registration_expiry: Optional[date] = None
    insurance_expiry: Optional[date] = None


class CarUpdateRequest(_CarFields, PartialUpdate):
    nullable: ClassVar[frozenset[str]] = frozenset(
        {"branch_id", "vin", "notes", "registration_expiry", "insurance_expiry"}
    )

    plate_number: Optional[str] = Field(None, min_length=1, max_length=20)
    make: Optional[str] = Field(None, min_length=1, max_length=60)
    model: Optional[str] = Field(None, min_length=1, max_length=60)
    year: Optional[int] = None
    car_class: Optional[str] = Field(None, alias="class", min_length=1, max_length=40)
    branch_id: Optional[int] = None
    status: Optional[CarStatus] = None
    base_daily_rate: Optional[float] = Field(None, ge=0)
    vin: Optional[str] = Field(None, max_length=40)
    notes: Optional[str] = None
    current_mileage: Optional[int] = Field(None, ge=0)
    registration_expiry: Optional[date] = None
    insurance_expiry: Optional[date] = None


class CarResponse(BaseModel):
    id: int
    plate_number: str
    make: str
    model: str
    year: int
    car_class: str = Field(
        validation_alias=AliasChoices("car_class", "class"),
        serialization_alias="class",
    )
    branch_id: Optional[int] = None
    branch_name: Optional[str] = None
    status: CarStatus
    base_daily_rate: float
    vin: Optional[str] = None
    notes: Optional[str] = None
    current_mileage: int = 0
    registration_expiry: Optional[date] = None
    insurance_expiry: Optional[date] = None
    images: list[str] = []
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    images_as_urls = field_validator("images", mode="before")(_url_paths)


class AvailableCarResponse(CarResponse):
    daily_rate: float
    days: int
    estimated_total: float


class CarImageResponse(BaseModel):
    id: int
    url_path: str

    model_config = {"from_attributes": True}


class BulkDeleteRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1)


class BulkDeleteResponse(BaseModel):
    archived: int


class VehicleDocumentResponse(BaseModel):
    id: int
    car_id: int
    document_type: Optional[str] = None
    title: Optional[str] = None
    expiry_date: Optional[date] = None
    url_path: str
    file_size: Optional[int] = None
    uploaded_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ── Bookings ──────────────────────────────────────────────────────────


class BookingExtra(BaseModel):
    extra_name: str = Field(..., min_length=1, max_length=120)
    extra_price: float = Field(0.0, ge=0)

    model_config = {"from_attributes": True}


class BookingCreateRequest(BaseModel):
    car_id: int
    customer_id: Optional[int] = None
    customer_name: str = Field(..., min_length=1, max_length=120)
    customer_phone: Optional[str] = Field(None, max_length=40)
    customer_id_passport: Optional[str] = Field(None, max_length=60)
    start_date: date
    end_date: date
    status: BookingStatus = BookingStatus.DRAFT
    total_price: float = Field(0.0, ge=0)
    deposit: float = Field(0.0, ge=0)
    notes: Optional[str] = None
    start_mileage: Optional[int] = Field(None, ge=0)
    end_mileage: Optional[int] = Field(None, ge=0)
    extras: list[BookingExtra] = []


class BookingUpdateRequest(PartialUpdate):
    nullable: ClassVar[frozenset[str]] = frozenset(
        {"customer_id", "customer_phone", "customer_id_passport", "notes",
         "start_mileage", "end_mileage"}
    )

    car_id: Optional[int] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = Field(None, min_length=1, max_length=120)
    customer_phone: Optional[str] = Field(None, max_length=40)
    customer_id_passport: Optional[str] = Field(None, max_length=60)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[BookingStatus] = None
    total_price: Optional[float] = Field(None, ge=0)
    deposit: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    start_mileage: Optional[int] = Field(None, ge=0)
    end_mileage: Optional[int] = Field(None, ge=0)
    extras: Optional[list[BookingExtra]] = None


class BookingStatusRequest(BaseModel):
    status: BookingStatus


class BookingResponse(BaseModel):
    id: int
    car_id: int
    plate_number: Optional[str] = None
    car_label: Optional[str] = None
    customer_id: Optional[int] = None
    customer_name: str
    customer_phone: Optional[str] = None
    customer_id_passport: Optional[str] = None
    start_date: date
    end_date: date
    status: BookingStatus
    total_price: float
    deposit: float
    notes: Optional[str] = None
    start_mileage: Optional[int] = None
    end_mileage: Optional[int] = None
    miles_driven: Optional[int] = None
    extras: list[BookingExtra] = []
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ── Maintenance ───────────────────────────────────────────────────────


class MaintenanceCreateRequest(BaseModel):
    car_id: int
    start_date: date
    end_date: date
    reason: Optional[str] = None


class MaintenanceResponse(BaseModel):
    id: int
    car_id: int
    plate_number: Optional[str] = None
    car_label: Optional[str] = None
    start_date: date
    end_date: date
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ── Incidents ─────────────────────────────────────────────────────────


class IncidentCreateRequest(BaseModel):
    car_id: int
    booking_id: Optional[int] = None
    incident_date: date = Field(default_factory=date.today)
    severity: IncidentSeverity
    description: Optional[str] = None
    estimated_cost: Optional[float] = Field(None, ge=0)
    status: IncidentStatus = IncidentStatus.OPEN


class IncidentStatusRequest(BaseModel):
    status: IncidentStatus


class IncidentResponse(BaseModel):
    id: int
    car_id: int
    plate_number: Optional[str] = None
    car_label: Optional[str] = None
    booking_id: Optional[int] = None
    incident_date: date
    severity: IncidentSeverity
    status: IncidentStatus
    description: Optional[str] = None
    estimated_cost: Optional[float] = None
    images: list[str] = []
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    images_as_urls = field_validator("images", mode="before")(_url_paths)


# ── Customers ─────────────────────────────────────────────────────────


class CustomerCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=10, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    id_number: Optional[str] = Field(None, max_length=50)
    license_expiry: Optional[date] = None


class CustomerUpdateRequest(PartialUpdate):
    nullable: ClassVar[frozenset[str]] = frozenset(
        {"email", "phone", "address", "id_number", "license_expiry"}
    )

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=10, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    id_number: Optional[str] = Field(None, max_length=50)
    license_expiry: Optional[date] = None


class CustomerResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    id_number: Optional[str] = None
    license_expiry: Optional[date] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CustomerDetailResponse(CustomerResponse):
    bookings: list[BookingResponse] = []


# ── Expenses ──────────────────────────────────────────────────────────


class ExpenseCreateRequest(BaseModel):
    car_id: int
    category: ExpenseCategory
    amount: float = Field(..., ge=0)
    description: Optional[str] = None
    expense_date: date = Field(default_factory=date.today)


class ExpenseUpdateRequest(PartialUpdate):
    nullable: ClassVar[frozenset[str]] = frozenset({"description"})

    car_id: Optional[int] = None
    category: Optional[ExpenseCategory] = None
    amount: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    expense_date: Optional[date] = None


class ExpenseResponse(BaseModel):
    id: int
    car_id: int
    plate_number: Optional[str] = None
    category: ExpenseCategory
    amount: float
    description: Optional[str] = None
    expense_date: date
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ── Reports ───────────────────────────────────────────────────────────


class SummaryResponse(BaseModel):
    cars_total: int
    available_today: int
    bookings_today: int
    active_rentals: int
    pending_incidents: int
    revenue_total: float
    utilization_percent: int
    currency: str

    model_config = {"from_attributes": True}


# ── Notifications ─────────────────────────────────────────────────────


class NotificationResponse(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    is_read: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    count: int


# ── Settings ──────────────────────────────────────────────────────────


class SettingsResponse(BaseModel):
    agency_name: str
    currency: str
    vat_percent: float
    logo_path: Optional[str] = None

    model_config = {"from_attributes": True}


class SettingsUpdateRequest(PartialUpdate):
    nullable: ClassVar[frozenset[str]] = frozenset({"logo_path"})

    agency_name: Optional[str] = Field(None, min_length=1, max_length=120)
    currency: Optional[str] = Field(None, min_length=1, max_length=8)
    vat_percent: Optional[float] = Field(None, ge=0, le=100)
    logo_path: Optional[str] = None


# ── Integrations / audit ──────────────────────────────────────────────


class ApiKeyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


class ApiKeyResponse(BaseModel):
    id: int
    name: str
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ApiKeyCreatedResponse(ApiKeyResponse):
    token: str = Field(..., description="Shown once; store it now.")


class AuditLogResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = Field(None, validation_alias="metadata_json")
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ── Misc ──────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None
