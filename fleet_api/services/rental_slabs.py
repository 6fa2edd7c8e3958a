# fleet_api/services/rental_slabs.py
"""
Company rental slabs and the rate resolver.

Each company charges a daily rental for a vehicle that depends on how many
trips the vehicle ran in the settlement week. The tiers are fixed business
constants; they are listed best rate first (highest ``min_trips`` first).

    PMV      140+ -> 150/day ... 0-64 -> 949/day
    Letzryd  140+ -> 260/day ... 0-64 -> 950/day

Everything here is pure: no DB, no app context.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from fleet_api.common.errors import UnknownCompanyError

DAYS_PER_WEEK = 7


class Company(str, Enum):
    PMV = "PMV"
    LETZRYD = "Letzryd"

    @classmethod
    def parse(cls, value: Union[str, "Company"]) -> "Company":
        if isinstance(value, cls):
            return value
        raw = (value or "").strip().lower() if isinstance(value, str) else ""
        for c in cls:
            if c.value.lower() == raw:
                return c
        raise UnknownCompanyError(value)


@dataclass(frozen=True)
class RentalSlab:
    min_trips: int
    max_trips: Optional[int]  # None = no upper bound
    rate: int                 # currency per day

    def contains(self, trip_count: int) -> bool:
        if trip_count < self.min_trips:
            return False
        return self.max_trips is None or trip_count <= self.max_trips

    def to_dict(self) -> dict:
        return {"min_trips": self.min_trips, "max_trips": self.max_trips, "rate": self.rate}


@dataclass(frozen=True)
class NextSlab:
    rate: int
    trips_needed: int

    def to_dict(self) -> dict:
        return {"rate": self.rate, "trips_needed": self.trips_needed}


@dataclass(frozen=True)
class RentalInfo:
    current_rate: int
    next_better_slab: Optional[NextSlab]
    weekly_cost: int
    optimization_tip: str

    def to_dict(self) -> dict:
        return {
            "current_rate": self.current_rate,
            "next_better_slab": self.next_better_slab.to_dict() if self.next_better_slab else None,
            "weekly_cost": self.weekly_cost,
            "optimization_tip": self.optimization_tip,
        }


_SLABS: Dict[Company, Tuple[RentalSlab, ...]] = {
    Company.PMV: (
        RentalSlab(140, None, 150),
        RentalSlab(135, 139, 249),
        RentalSlab(120, 134, 444),
        RentalSlab(80, 119, 640),
        RentalSlab(65, 79, 750),
        RentalSlab(0, 64, 949),
    ),
    Company.LETZRYD: (
        RentalSlab(140, None, 260),
        RentalSlab(125, 139, 380),
        RentalSlab(110, 124, 470),
        RentalSlab(80, 109, 600),
        RentalSlab(65, 79, 710),
        RentalSlab(0, 64, 950),
    ),
}

# driver rent per day, keyed by has_accommodation
DRIVER_DAILY_RENT = {True: 600, False: 500}

# substitute flat charge per shift length (hours)
SUBSTITUTE_CHARGES = {6: 250, 8: 350, 12: 500}


def _slabs(company) -> Tuple[RentalSlab, ...]:
    return _SLABS[Company.parse(company)]


def _worst_slab(slabs: Tuple[RentalSlab, ...]) -> RentalSlab:
    return min(slabs, key=lambda s: s.min_trips)


def get_all_slabs(company) -> List[RentalSlab]:
    return list(_slabs(company))


def get_rental_rate(company, trip_count: int) -> int:
    """
    Daily rate for ``trip_count`` trips in a week.

    If nothing matches (negative count) the lowest tier's rate is returned:
    pricing never blocks a settlement, it falls back to the expensive tier.
    """
    slabs = _slabs(company)
    for slab in slabs:
        if slab.contains(trip_count):
            return slab.rate
    return _worst_slab(slabs).rate


def get_rental_info(company, trip_count: int) -> RentalInfo:
    slabs = _slabs(company)
    current_rate = get_rental_rate(company, trip_count)

    # nearest cheaper tier above the current count, not the absolute best one
    next_slab = None
    for slab in sorted(slabs, key=lambda s: s.min_trips):
        if slab.rate < current_rate and slab.min_trips > trip_count:
            next_slab = NextSlab(rate=slab.rate, trips_needed=slab.min_trips - trip_count)
            break

    if next_slab:
        tip = (
            f"{next_slab.trips_needed} more trips needed to reach ₹{next_slab.rate}/day slab. "
            f"Current: {trip_count} trips, Target: {trip_count + next_slab.trips_needed} trips."
        )
    else:
        tip = "You've reached the best slab!"

    return RentalInfo(
        current_rate=current_rate,
        next_better_slab=next_slab,
        weekly_cost=current_rate * DAYS_PER_WEEK,
        optimization_tip=tip,
    )


def get_driver_rent(has_accommodation: bool) -> int:
    return DRIVER_DAILY_RENT[bool(has_accommodation)]


def get_substitute_charge(shift_hours: int) -> int:
    try:
        return SUBSTITUTE_CHARGES[int(shift_hours)]
    except (KeyError, TypeError, ValueError):
        raise ValueError(f"shift_hours must be one of {sorted(SUBSTITUTE_CHARGES)}, got {shift_hours!r}")
