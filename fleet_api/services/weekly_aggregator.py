# fleet_api/services/weekly_aggregator.py
"""
Weekly aggregation of a vehicle's (or the whole fleet's) activity.

For one ISO week this folds the trip logs and substitute-driver rows into:

  - trip totals (regular + substitute) that pick the company rate slab
  - per-driver rent: daily rent (accommodation flag) x distinct days worked
  - substitute charges (flat per shift-length tier)
  - total income = driver rent + substitute charges

It only reads through the repository; nothing is written here.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from fleet_api.common.errors import NotFoundError
from fleet_api.models.activity import Shift, ShiftKey, SubstituteDriver, TripLog
from fleet_api.repositories.fleet_repository import FleetRepository
from fleet_api.services.rental_slabs import DAYS_PER_WEEK
from fleet_api.services.week_window import WeekWindow, week_window

log = logging.getLogger(__name__)

TRIP_COUNT_MODES = ("sum", "rows")
DRIVER_RENT_MODES = ("per_day", "flat_week")

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SettlementPolicy:
    """
    trip_count_mode      "sum"  -> regular trips = sum of trip_count
                         "rows" -> regular trips = number of trip-log rows
    driver_rent_mode     "per_day"   -> daily rent x distinct days worked
                         "flat_week" -> (deprecated) daily rent x 7 for each
                                        driver assigned to a shift
    include_substitutes  count substitute trips and charges
    """
    trip_count_mode: str = "sum"
    driver_rent_mode: str = "per_day"
    include_substitutes: bool = True

    def __post_init__(self):
        if self.trip_count_mode not in TRIP_COUNT_MODES:
            raise ValueError(f"trip_count_mode must be one of {TRIP_COUNT_MODES}")
        if self.driver_rent_mode not in DRIVER_RENT_MODES:
            raise ValueError(f"driver_rent_mode must be one of {DRIVER_RENT_MODES}")

    @classmethod
    def from_config(cls, config) -> "SettlementPolicy":
        inc = config.get("SETTLEMENT_INCLUDE_SUBSTITUTES", True)
        if isinstance(inc, str):
            inc = inc.strip().lower() in _TRUE
        return cls(
            trip_count_mode=(config.get("SETTLEMENT_TRIP_COUNT_MODE") or "sum").strip().lower(),
            driver_rent_mode=(config.get("SETTLEMENT_DRIVER_RENT_MODE") or "per_day").strip().lower(),
            include_substitutes=bool(inc),
        )


DEFAULT_POLICY = SettlementPolicy()


@dataclass
class DriverWeek:
    driver_id: int
    name: str
    days_worked: int
    daily_rent: int
    total_rent: int
    trips: int = 0
    paid: bool = False
    logged_rent: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.driver_id,
            "name": self.name,
            "days_worked": self.days_worked,
            "daily_rent": self.daily_rent,
            "total_rent": self.total_rent,
            "trips": self.trips,
            "paid": self.paid,
            "logged_rent": self.logged_rent,
        }


@dataclass
class SubstituteWeek:
    substitute_id: int
    name: str
    vehicle_id: int
    work_date: date
    shift: str
    shift_hours: int
    charge: int
    trip_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.substitute_id,
            "name": self.name,
            "vehicle_id": self.vehicle_id,
            "date": self.work_date.isoformat(),
            "shift": self.shift,
            "shift_hours": self.shift_hours,
            "charge": self.charge,
            "trip_count": self.trip_count,
        }


@dataclass
class WeeklyAggregate:
    window: WeekWindow
    vehicle_id: Optional[int] = None
    regular_trips: int = 0
    substitute_trips: int = 0
    drivers: List[DriverWeek] = field(default_factory=list)
    substitutes: List[SubstituteWeek] = field(default_factory=list)
    collected_cash: int = 0
    fuel_expense: int = 0
    trip_log_count: int = 0
    duplicates_dropped: int = 0

    @property
    def total_trips(self) -> int:
        return self.regular_trips + self.substitute_trips

    @property
    def driver_rent(self) -> int:
        return sum(d.total_rent for d in self.drivers)

    @property
    def substitute_rent(self) -> int:
        return sum(s.charge for s in self.substitutes)

    @property
    def total_income(self) -> int:
        return self.driver_rent + self.substitute_rent

    @property
    def has_activity(self) -> bool:
        return bool(self.trip_log_count or self.substitutes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.window.to_dict(),
            "vehicle_id": self.vehicle_id,
            "regular_trips": self.regular_trips,
            "substitute_trips": self.substitute_trips,
            "total_trips": self.total_trips,
            "driver_rent": self.driver_rent,
            "substitute_rent": self.substitute_rent,
            "total_income": self.total_income,
            "collected_cash": self.collected_cash,
            "fuel_expense": self.fuel_expense,
            "drivers": [d.to_dict() for d in self.drivers],
            "substitutes": [s.to_dict() for s in self.substitutes],
            "duplicates_dropped": self.duplicates_dropped,
        }


# ---------- helpers ----------

def _dedupe(rows: Iterable[TripLog]) -> tuple[List[TripLog], int]:
    """Keep the first row per (driver, date, shift); report how many were dropped."""
    seen: Set[ShiftKey] = set()
    kept: List[TripLog] = []
    dropped = 0
    for r in rows:
        k = ShiftKey.of(r)
        if k in seen:
            dropped += 1
            continue
        seen.add(k)
        kept.append(r)
    return kept, dropped


def _driver_or_404(repo: FleetRepository, driver_id: int):
    d = repo.get_driver(driver_id)
    if d is None:
        raise NotFoundError("Driver", driver_id)
    return d


def _per_day_drivers(repo: FleetRepository, rows: List[TripLog]) -> List[DriverWeek]:
    by_driver: "OrderedDict[int, List[TripLog]]" = OrderedDict()
    for r in rows:
        by_driver.setdefault(int(r.driver_id), []).append(r)

    out: List[DriverWeek] = []
    for driver_id, logs in by_driver.items():
        d = _driver_or_404(repo, driver_id)
        days = len({ShiftKey.of(r).work_date for r in logs})
        out.append(DriverWeek(
            driver_id=d.id,
            name=d.name,
            days_worked=days,
            daily_rent=d.daily_rent,
            total_rent=d.daily_rent * days,
            trips=sum(int(r.trip_count or 0) for r in logs),
            paid=all(r.paid for r in logs),
            logged_rent=sum(int(r.rent or 0) for r in logs),
        ))
    return out


def _flat_week_drivers(repo: FleetRepository, vehicle_ids: List[int], rows: List[TripLog]) -> List[DriverWeek]:
    """Weekly flat rent per assigned shift; an empty shift contributes nothing."""
    out: List[DriverWeek] = []
    for vid in vehicle_ids:
        a = repo.get_assignment(vid)
        if a is None:
            continue
        for driver_id in (a.morning_driver_id, a.evening_driver_id):
            if driver_id is None:
                continue
            d = repo.get_driver(driver_id)
            if d is None:
                continue
            mine = [r for r in rows if int(r.driver_id) == d.id and int(r.vehicle_id) == vid]
            out.append(DriverWeek(
                driver_id=d.id,
                name=d.name,
                days_worked=DAYS_PER_WEEK,
                daily_rent=d.daily_rent,
                total_rent=d.daily_rent * DAYS_PER_WEEK,
                trips=sum(int(r.trip_count or 0) for r in mine),
                paid=bool(mine) and all(r.paid for r in mine),
                logged_rent=sum(int(r.rent or 0) for r in mine),
            ))
    return out


def _substitute_rows(subs: Iterable[SubstituteDriver]) -> List[SubstituteWeek]:
    return [
        SubstituteWeek(
            substitute_id=s.id,
            name=s.name,
            vehicle_id=s.vehicle_id,
            work_date=s.work_date,
            shift=Shift.normalize(s.shift) or s.shift,
            shift_hours=int(s.shift_hours),
            charge=int(s.charge or 0),
            trip_count=s.effective_trips,
        )
        for s in subs
    ]


# ---------- public API ----------

def resolve_window(week_start) -> WeekWindow:
    """Snap any date inside a week to that week's Monday..Sunday window."""
    window = week_window(week_start)
    given = week_start.date() if isinstance(week_start, datetime) else week_start
    if given != window.start:
        log.debug("[weekly] week_start %s normalized to Monday %s", given, window.start)
    return window


def aggregate_week(
    repo: FleetRepository,
    week_start,
    vehicle_id: Optional[int] = None,
    policy: Optional[SettlementPolicy] = None,
) -> WeeklyAggregate:
    """
    Fold one week of activity for ``vehicle_id`` (or every vehicle when None).

    Raises NotFoundError for an unknown vehicle or a trip log whose driver
    no longer exists.
    """
    policy = policy or DEFAULT_POLICY
    window = resolve_window(week_start)

    if vehicle_id is not None:
        if repo.get_vehicle(vehicle_id) is None:
            raise NotFoundError("Vehicle", vehicle_id)
        vehicle_ids = [int(vehicle_id)]
    else:
        vehicle_ids = [v.id for v in repo.list_vehicles()]

    rows, dropped = _dedupe(repo.trip_logs_between(window.start, window.end, vehicle_id))
    if dropped:
        log.warning("[weekly] dropped %d duplicate trip log(s) for vehicle=%s week=%s",
                    dropped, vehicle_id, window.start)

    subs = repo.substitutes_between(window.start, window.end, vehicle_id) if policy.include_substitutes else []

    agg = WeeklyAggregate(window=window, vehicle_id=vehicle_id)
    agg.trip_log_count = len(rows)
    agg.duplicates_dropped = dropped
    if policy.trip_count_mode == "rows":
        agg.regular_trips = len(rows)
    else:
        agg.regular_trips = sum(int(r.trip_count or 0) for r in rows)

    agg.substitutes = _substitute_rows(subs)
    agg.substitute_trips = sum(s.trip_count for s in agg.substitutes)

    if policy.driver_rent_mode == "flat_week":
        agg.drivers = _flat_week_drivers(repo, vehicle_ids, rows)
    else:
        agg.drivers = _per_day_drivers(repo, rows)

    agg.collected_cash = sum(int(r.collected_cash or 0) for r in rows)
    agg.fuel_expense = sum(int(r.fuel_expense or 0) for r in rows)
    return agg
