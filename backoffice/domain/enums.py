"""Domain enumerations and booking lifecycle rules."""

import enum


class CarStatus(str, enum.Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


class BookingStatus(str, enum.Enum):
    DRAFT = "draft"
    RESERVED = "reserved"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that hold the car for their date range.  Draft does not.
OCCUPYING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.RESERVED, BookingStatus.CONFIRMED, BookingStatus.ACTIVE}
)

# No field of a booking may change once it reaches one of these.
TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
)

# Statuses a booking may be created in.
INITIAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.DRAFT, BookingStatus.RESERVED}
)


class IncidentSeverity(str, enum.Enum):
    MINOR = "minor"
    MAJOR = "major"


class IncidentStatus(str, enum.Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"


class ExpenseCategory(str, enum.Enum):
    MAINTENANCE = "maintenance"
    INSURANCE = "insurance"
    REGISTRATION = "registration"
    CLEANING = "cleaning"
    MISC = "misc"
    FUEL = "fuel"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    STAFF = "staff"
    READONLY = "readonly"


# Roles allowed to create or edit fleet records.
WRITER_ROLES: frozenset[UserRole] = frozenset({UserRole.ADMIN, UserRole.STAFF})


class NotificationType(str, enum.Enum):
    OVERDUE = "overdue"
    REGISTRATION_EXPIRING = "registration_expiring"
    INSURANCE_EXPIRING = "insurance_expiring"
