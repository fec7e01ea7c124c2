"""
Domain error taxonomy.

Every error here is a recoverable client error.  The API layer maps each
class to an HTTP status and a stable ``code`` so callers can tell "bad
input" apart from "no capacity" without parsing messages.
"""

from __future__ import annotations

from typing import Optional


class DomainError(Exception):
    status_code = 400
    code = "bad_request"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(DomainError):
    """Input passed schema checks but violates a business rule."""

    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class CarUnavailable(DomainError):
    """The car is already held for part of the requested range."""

    status_code = 409
    code = "car_unavailable"

    def __init__(self, message: str = "Car is not available for this date range"):
        super().__init__(message)


class NotFound(DomainError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str):
        super().__init__(f"{entity} not found")
        self.entity = entity


class BookingLocked(DomainError):
    """Raised on any edit of a completed or cancelled booking."""

    status_code = 409
    code = "booking_locked"

    def __init__(self, status: str):
        super().__init__(f"Cannot edit a booking in status {status}")
        self.status = status


class Conflict(DomainError):
    """Write refused because of existing state (duplicates, archival)."""

    status_code = 409
    code = "conflict"


class Unauthorized(DomainError):
    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Forbidden(DomainError):
    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class PayloadTooLarge(DomainError):
    status_code = 413
    code = "payload_too_large"
