"""
Domain entities with business logic.

Patterns used
-------------
- ``Booking`` encapsulates the lifecycle rules: terminal statuses are
  immutable, and a write that moves dates, switches car or enters an
  occupying status must be re-checked for conflicts.
- ``Occupancy`` is a value object for anything that holds a car over a
  date range (an occupying booking or a maintenance block).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Optional

from .enums import OCCUPYING_STATUSES, TERMINAL_STATUSES, BookingStatus
from .errors import BookingLocked, ValidationFailed
from .intervals import DateRange


# ── Value Object ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Occupancy:
    car_id: int
    start: date
    end: date
    booking_id: Optional[int] = None  # None for maintenance blocks

    @property
    def is_maintenance(self) -> bool:
        return self.booking_id is None

    def overlaps(self, requested: DateRange) -> bool:
        return self.start < requested.end and requested.start < self.end


# ── Entities ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Booking:
    car_id: int
    start_date: date
    end_date: date
    status: BookingStatus = BookingStatus.DRAFT
    id: Optional[int] = None
    start_mileage: Optional[int] = None
    end_mileage: Optional[int] = None

    @property
    def period(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)

    @property
    def occupies(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def ensure_editable(self) -> None:
        """Reject any edit once the booking is completed or cancelled."""
        if self.is_terminal:
            raise BookingLocked(self.status.value)

    def apply(self, changes: dict[str, Any]) -> Booking:
        """Return the booking as it would look after a partial update.

        Validates the merged date range and mileage pair; raises
        ``BookingLocked`` first if the current state is terminal.
        """
        self.ensure_editable()
        known = {
            k: v
            for k, v in changes.items()
            if k in {"car_id", "start_date", "end_date", "status",
                     "start_mileage", "end_mileage"}
        }
        if "status" in known:
            known["status"] = BookingStatus(known["status"])
        updated = replace(self, **known)
        updated.period  # raises on an inverted range
        updated.miles_driven()
        return updated

    def requires_conflict_check(self, before: Booking) -> bool:
        """Whether moving from *before* to this state needs a conflict check.

        Moving dates or switching car is checked like a creation (drafts
        included); otherwise only entering an occupying status is.
        """
        if self.is_terminal:
            return False
        moved = (
            self.car_id != before.car_id
            or self.start_date != before.start_date
            or self.end_date != before.end_date
        )
        return moved or (self.occupies and not before.occupies)

    def miles_driven(self) -> Optional[int]:
        if self.start_mileage is None or self.end_mileage is None:
            return None
        if self.end_mileage < self.start_mileage:
            raise ValidationFailed(
                "end_mileage cannot be lower than start_mileage",
                field="end_mileage",
            )
        return self.end_mileage - self.start_mileage
