# fleet_api/services/settlement_service.py
"""
Weekly settlement: aggregated income against the company's slab rent.

    rate          = get_rental_rate(vehicle.company, total_trips)
    company_rent  = rate * 7
    profit        = total_income - company_rent

``compute_weekly_settlement`` is a pure read over the repository. Persisting
is a separate, explicit step (``process_settlement``) that upserts one row per
(scope, week); re-processing a week overwrites it (status "resettled").
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from fleet_api.common.errors import NotFoundError
from fleet_api.models.settlement import FLEET_SCOPE, WeeklySettlement, scope_key
from fleet_api.repositories.fleet_repository import FleetRepository
from fleet_api.services.rental_slabs import (
    DAYS_PER_WEEK,
    RentalInfo,
    get_rental_info,
    get_rental_rate,
)
from fleet_api.services.week_window import WeekWindow, current_week, week_window
from fleet_api.services.weekly_aggregator import (
    SettlementPolicy,
    WeeklyAggregate,
    aggregate_week,
    resolve_window,
)

log = logging.getLogger(__name__)

UNSETTLED = "unsettled"
SETTLED = "settled"
RESETTLED = "resettled"


@dataclass
class WeeklySettlementResult:
    scope_key: str
    window: WeekWindow
    total_trips: int
    rental_rate: Optional[int]
    company_rent: int
    driver_rent: int
    substitute_rent: int
    vehicle_id: Optional[int] = None
    vehicle_number: Optional[str] = None
    company: Optional[str] = None
    rental_info: Optional[RentalInfo] = None
    aggregate: Optional[WeeklyAggregate] = None
    vehicles: List["WeeklySettlementResult"] = field(default_factory=list)

    @property
    def total_income(self) -> int:
        return self.driver_rent + self.substitute_rent

    @property
    def profit(self) -> int:
        return self.total_income - self.company_rent

    def driver_details(self) -> List[Dict[str, Any]]:
        if self.aggregate is not None:
            return [d.to_dict() for d in self.aggregate.drivers]
        return [d for v in self.vehicles for d in v.driver_details()]

    def substitute_details(self) -> List[Dict[str, Any]]:
        if self.aggregate is not None:
            return [s.to_dict() for s in self.aggregate.substitutes]
        return [s for v in self.vehicles for s in v.substitute_details()]

    def to_row(self) -> Dict[str, Any]:
        """Column values for WeeklySettlement."""
        return {
            "scope_key": self.scope_key,
            "vehicle_id": self.vehicle_id,
            "week_start": self.window.start,
            "week_end": self.window.end,
            "total_trips": self.total_trips,
            "rental_rate": self.rental_rate,
            "company_rent": self.company_rent,
            "driver_rent": self.driver_rent,
            "substitute_rent": self.substitute_rent,
            "total_income": self.total_income,
            "profit": self.profit,
            "driver_details": self.driver_details(),
            "substitute_details": self.substitute_details(),
        }

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "scope": self.scope_key,
            **self.window.to_dict(),
            "vehicle_id": self.vehicle_id,
            "vehicle_number": self.vehicle_number,
            "company": self.company,
            "total_trips": self.total_trips,
            "rental_rate": self.rental_rate,
            "company_rent": self.company_rent,
            "driver_rent": self.driver_rent,
            "substitute_rent": self.substitute_rent,
            "total_income": self.total_income,
            "profit": self.profit,
            "drivers": self.driver_details(),
            "substitutes": self.substitute_details(),
            "rental_info": self.rental_info.to_dict() if self.rental_info else None,
        }
        if self.aggregate is not None:
            out["regular_trips"] = self.aggregate.regular_trips
            out["substitute_trips"] = self.aggregate.substitute_trips
            out["collected_cash"] = self.aggregate.collected_cash
            out["fuel_expense"] = self.aggregate.fuel_expense
        if self.vehicles:
            out["vehicles"] = [v.to_dict() for v in self.vehicles]
        return out


@dataclass
class BatchResult:
    window: WeekWindow
    processed: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.window.to_dict(),
            "processed": self.processed,
            "failed": self.failed,
            "processed_count": len(self.processed),
            "failed_count": len(self.failed),
        }


# ---------- compute ----------

def _vehicle_settlement(repo, vehicle, week_start, policy) -> WeeklySettlementResult:
    agg = aggregate_week(repo, week_start, vehicle.id, policy)
    rate = get_rental_rate(vehicle.company, agg.total_trips)
    return WeeklySettlementResult(
        scope_key=scope_key(vehicle.id),
        window=agg.window,
        total_trips=agg.total_trips,
        rental_rate=rate,
        company_rent=rate * DAYS_PER_WEEK,
        driver_rent=agg.driver_rent,
        substitute_rent=agg.substitute_rent,
        vehicle_id=vehicle.id,
        vehicle_number=vehicle.vehicle_number,
        company=vehicle.company,
        rental_info=get_rental_info(vehicle.company, agg.total_trips),
        aggregate=agg,
    )


def compute_weekly_settlement(
    repo: FleetRepository,
    week_start,
    vehicle_id: Optional[int] = None,
    policy: Optional[SettlementPolicy] = None,
) -> WeeklySettlementResult:
    """
    Settle one vehicle, or the whole fleet when ``vehicle_id`` is None.

    Fleet scope settles every active vehicle on its own slab (company and trip
    count are per vehicle) and sums the figures; its ``rental_rate`` is None.
    """
    if vehicle_id is not None:
        vehicle = repo.get_vehicle(vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehicle", vehicle_id)
        return _vehicle_settlement(repo, vehicle, week_start, policy)

    window = resolve_window(week_start)
    parts = [_vehicle_settlement(repo, v, window.start, policy) for v in repo.list_vehicles()]
    return WeeklySettlementResult(
        scope_key=FLEET_SCOPE,
        window=window,
        total_trips=sum(p.total_trips for p in parts),
        rental_rate=None,
        company_rent=sum(p.company_rent for p in parts),
        driver_rent=sum(p.driver_rent for p in parts),
        substitute_rent=sum(p.substitute_rent for p in parts),
        vehicles=parts,
    )


# ---------- persist ----------

@dataclass
class ProcessedSettlement:
    """Stored row plus what the archive step did."""
    row: WeeklySettlement
    archived_trip_logs: int = 0
    next_week_start: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.row.to_dict(),
            "archived_trip_logs": self.archived_trip_logs,
            "next_week_start": self.next_week_start.isoformat() if self.next_week_start else None,
        }


def process_weekly_settlement(
    repo: FleetRepository,
    week_start,
    vehicle_id: Optional[int] = None,
    processed_by: Optional[str] = None,
    notes: Optional[str] = None,
    archive: bool = False,
    policy: Optional[SettlementPolicy] = None,
) -> ProcessedSettlement:
    """
    Compute and upsert the settlement row for (scope, week).

    archive=True also marks the week's trip logs (and the row) as paid;
    the outcome reports how many logs that touched.
    """
    result = compute_weekly_settlement(repo, week_start, vehicle_id, policy)
    existing = repo.get_settlement(result.scope_key, result.window.start)

    values = result.to_row()
    values["status"] = RESETTLED if existing is not None else SETTLED
    values["processed_by"] = processed_by or "System"
    if notes is not None:
        values["notes"] = notes
    if archive:
        values["paid"] = True

    archived = 0
    try:
        row = repo.save_settlement(values)
        if archive:
            logs = repo.trip_logs_between(result.window.start, result.window.end, vehicle_id)
            archived = repo.mark_trip_logs_paid(logs)
            log.info("[settlement] archived %d trip log(s) for %s week=%s", archived, result.scope_key, result.window.start)
        repo.commit()
    except Exception:
        repo.rollback()
        raise

    log.info(
        "[settlement] %s %s week=%s trips=%d rate=%s profit=%d",
        values["status"], result.scope_key, result.window.start,
        result.total_trips, result.rental_rate, result.profit,
    )
    return ProcessedSettlement(row, archived, result.window.next().start)


def process_settlement(
    repo: FleetRepository,
    week_start,
    vehicle_id: Optional[int] = None,
    processed_by: Optional[str] = None,
    notes: Optional[str] = None,
    archive: bool = False,
    policy: Optional[SettlementPolicy] = None,
) -> WeeklySettlement:
    """Compute and upsert the settlement row for (scope, week); returns the row."""
    return process_weekly_settlement(repo, week_start, vehicle_id, processed_by, notes, archive, policy).row


def process_all_settlements(
    repo: FleetRepository,
    week_start,
    policy: Optional[SettlementPolicy] = None,
) -> BatchResult:
    """
    Settle every active vehicle for the week, one at a time.

    A vehicle that fails is logged, rolled back and reported in ``failed``;
    the rest of the batch carries on.
    """
    window = resolve_window(week_start)
    batch = BatchResult(window=window)

    # plain values: every commit/rollback below expires the loaded Vehicle rows
    targets = [(v.id, v.vehicle_number) for v in repo.list_vehicles()]

    for vid, number in targets:
        try:
            row = process_settlement(repo, window.start, vid, policy=policy)
            batch.processed.append({
                "vehicle_id": vid,
                "vehicle_number": number,
                "settlement_id": row.id,
                "status": row.status,
                "profit": row.profit,
            })
        except Exception as e:
            log.exception("[settlement.batch] vehicle %s (%s) failed for week %s", number, vid, window.start)
            repo.rollback()
            batch.failed.append({"vehicle_id": vid, "vehicle_number": number, "error": str(e)})

    log.info("[settlement.batch] week=%s processed=%d failed=%d",
             window.start, len(batch.processed), len(batch.failed))
    return batch


# ---------- reads over stored / live data ----------

def settlement_status(repo: FleetRepository, vehicle_id: Optional[int], week_start=None) -> Dict[str, Any]:
    """Unsettled / settled / resettled for a (scope, week), plus whether it has anything to settle."""
    window = resolve_window(week_start) if week_start is not None else current_week()
    if vehicle_id is not None and repo.get_vehicle(vehicle_id) is None:
        raise NotFoundError("Vehicle", vehicle_id)

    row = repo.get_settlement(scope_key(vehicle_id), window.start)
    has_activity = bool(
        repo.trip_logs_between(window.start, window.end, vehicle_id)
        or repo.substitutes_between(window.start, window.end, vehicle_id)
    )
    return {
        **window.to_dict(),
        "state": row.status if row is not None else UNSETTLED,
        "is_settled": row is not None,
        "can_settle": has_activity,
        "settlement": row.to_dict() if row is not None else None,
    }


def available_weeks(repo: FleetRepository, vehicle_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Every week that has a trip log or substitute entry, newest first."""
    windows = {week_window(d) for d in repo.activity_dates(vehicle_id)}
    return [w.to_dict() for w in sorted(windows, key=lambda w: w.start, reverse=True)]


def weekly_summary(
    repo: FleetRepository,
    vehicle_id: int,
    week_start=None,
    policy: Optional[SettlementPolicy] = None,
) -> Dict[str, Any]:
    vehicle = repo.get_vehicle(vehicle_id)
    if vehicle is None:
        raise NotFoundError("Vehicle", vehicle_id)

    start = week_start if week_start is not None else current_week().start
    result = compute_weekly_settlement(repo, start, vehicle_id, policy)

    a = repo.get_assignment(vehicle_id)
    morning = repo.get_driver(a.morning_driver_id) if a and a.morning_driver_id else None
    evening = repo.get_driver(a.evening_driver_id) if a and a.evening_driver_id else None

    return {
        "vehicle": {"id": vehicle.id, "vehicle_number": vehicle.vehicle_number, "company": vehicle.company},
        "morning_driver": {"id": morning.id, "name": morning.name} if morning else None,
        "evening_driver": {"id": evening.id, "name": evening.name} if evening else None,
        "current_week": result.to_dict(),
        "breakdown": settlement_breakdown(result),
        "available_weeks": available_weeks(repo, vehicle_id),
    }


def settlement_breakdown(result: WeeklySettlementResult) -> Dict[str, Any]:
    """Revenue / expenses / net view of a computed settlement."""
    return {
        "revenue": {
            "drivers": result.driver_details(),
            "substitutes": result.substitute_details(),
            "total_driver_rent": result.driver_rent,
            "total_substitute_charges": result.substitute_rent,
        },
        "expenses": {
            "slab_rent_per_day": result.rental_rate,
            "total_days": DAYS_PER_WEEK,
            "total_company_rent": result.company_rent,
            "company": result.company,
        },
        "calculation": {
            "total_revenue": result.total_income,
            "total_expenses": result.company_rent,
            "net_profit": result.profit,
        },
    }


def get_settlement_details(repo: FleetRepository, settlement_id: int) -> Dict[str, Any]:
    row = repo.get_settlement_by_id(settlement_id)
    if row is None:
        raise NotFoundError("Settlement", settlement_id)
    return row.to_dict()


def list_settlements(repo: FleetRepository, vehicle_id: Optional[int] = None) -> List[WeeklySettlement]:
    return repo.list_settlements(vehicle_id)
