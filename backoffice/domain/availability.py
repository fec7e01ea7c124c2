"""
Availability Rules
==================

Pure functions over store snapshots.  No I/O happens here; the service
layer loads the relevant rows and hands them over as ``Occupancy`` values.

A car is free for ``[start, end)`` when

1. no occupancy (booking in reserved/confirmed/active, or maintenance
   block) for that car overlaps the range, ignoring an optionally
   excluded booking id, and
2. for fleet scans only, it is not under a fleet-wide hold (an open
   major incident), whatever the dates.

Complexity
----------
Grouping is O(B + M) for B bookings and M maintenance blocks; the scan
is then O(C + B + M) for C candidate cars.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional, Sequence, TypeVar

from .entities import Occupancy
from .intervals import DateRange

CarT = TypeVar("CarT")


def find_conflict(
    requested: DateRange,
    occupancies: Iterable[Occupancy],
    exclude_booking_id: Optional[int] = None,
) -> Optional[Occupancy]:
    """Return the first occupancy overlapping *requested*, if any."""
    for occ in occupancies:
        if exclude_booking_id is not None and occ.booking_id == exclude_booking_id:
            continue
        if occ.overlaps(requested):
            return occ
    return None


def has_conflict(
    requested: DateRange,
    occupancies: Iterable[Occupancy],
    exclude_booking_id: Optional[int] = None,
) -> bool:
    return find_conflict(requested, occupancies, exclude_booking_id) is not None


def group_by_car(occupancies: Iterable[Occupancy]) -> dict[int, list[Occupancy]]:
    grouped: dict[int, list[Occupancy]] = defaultdict(list)
    for occ in occupancies:
        grouped[occ.car_id].append(occ)
    return grouped


def scan_available(
    candidates: Sequence[CarT],
    requested: DateRange,
    occupancies: Iterable[Occupancy],
    held_car_ids: set[int],
    car_id=lambda car: car.id,
) -> list[CarT]:
    """Keep the candidates with no conflict and no fleet-wide hold.

    Candidate order is preserved, so callers control the sort.
    """
    by_car = group_by_car(occupancies)
    available = []
    for car in candidates:
        cid = car_id(car)
        if cid in held_car_ids:
            continue
        if has_conflict(requested, by_car.get(cid, ())):
            continue
        available.append(car)
    return available
