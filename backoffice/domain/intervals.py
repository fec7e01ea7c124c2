"""
Half-open calendar date ranges.

A range ``[start, end)`` includes ``start`` and excludes ``end``, so a
booking returned on day X and another picked up on day X do not overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from .errors import ValidationFailed


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValidationFailed(
                "end_date must be after start_date", field="end_date"
            )

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def overlaps(self, other: DateRange) -> bool:
        return overlaps(self.start, self.end, other.start, other.end)


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """True iff ``[a_start, a_end)`` and ``[b_start, b_end)`` share a day."""
    return a_start < b_end and b_start < a_end
