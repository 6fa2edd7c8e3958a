"""
Fleet Repository - data access for the settlement engine

The engine only talks to storage through ``FleetRepository``; the SQLAlchemy
implementation below is what the app wires in.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, Iterable, List, Optional


from fleet_api.extensions import db
from fleet_api.models.activity import ShiftKey, SubstituteDriver, TripLog
from fleet_api.models.fleet import Driver, Vehicle, VehicleDriverAssignment
from fleet_api.models.settlement import WeeklySettlement

logger = logging.getLogger(__name__)


class FleetRepository(ABC):
    """What the settlement engine needs from storage."""

    # ---- master data ----
    @abstractmethod
    def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]: ...

    @abstractmethod
    def list_vehicles(self, active_only: bool = True) -> List[Vehicle]: ...

    @abstractmethod
    def get_driver(self, driver_id: int) -> Optional[Driver]: ...

    @abstractmethod
    def get_assignment(self, vehicle_id: int) -> Optional[VehicleDriverAssignment]: ...

    # ---- activity ----
    @abstractmethod
    def trip_logs_between(self, start: date, end: date, vehicle_id: Optional[int] = None) -> List[TripLog]: ...

    @abstractmethod
    def substitutes_between(self, start: date, end: date, vehicle_id: Optional[int] = None) -> List[SubstituteDriver]: ...

    @abstractmethod
    def activity_dates(self, vehicle_id: Optional[int] = None) -> List[date]: ...

    @abstractmethod
    def find_trip_log(self, key: ShiftKey) -> Optional[TripLog]: ...

    @abstractmethod
    def mark_trip_logs_paid(self, rows: Iterable[TripLog]) -> int: ...

    # ---- settlements ----
    @abstractmethod
    def get_settlement(self, scope_key: str, week_start: date) -> Optional[WeeklySettlement]: ...

    @abstractmethod
    def get_settlement_by_id(self, settlement_id: int) -> Optional[WeeklySettlement]: ...

    @abstractmethod
    def list_settlements(self, vehicle_id: Optional[int] = None) -> List[WeeklySettlement]: ...

    @abstractmethod
    def save_settlement(self, values: Dict[str, Any]) -> WeeklySettlement: ...

    # ---- unit of work ----
    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...


class SqlFleetRepository(FleetRepository):
    """FleetRepository over the Flask-SQLAlchemy session."""

    def __init__(self, session=None):
        self.session = session or db.session

    def get_vehicle(self, vehicle_id):
        v = self.session.get(Vehicle, int(vehicle_id))
        # soft-deleted vehicles are gone for settlement purposes
        if v is None or not v.is_active:
            return None
        return v

    def list_vehicles(self, active_only=True):
        q = Vehicle.query
        if active_only:
            q = q.filter(Vehicle.is_active.is_(True))
        return q.order_by(Vehicle.id).all()

    def get_driver(self, driver_id):
        return self.session.get(Driver, int(driver_id))

    def get_assignment(self, vehicle_id):
        return VehicleDriverAssignment.query.filter_by(vehicle_id=int(vehicle_id)).first()

    def trip_logs_between(self, start, end, vehicle_id=None):
        q = TripLog.query.filter(TripLog.trip_date >= start, TripLog.trip_date <= end)
        if vehicle_id is not None:
            q = q.filter(TripLog.vehicle_id == int(vehicle_id))
        rows = q.order_by(TripLog.trip_date, TripLog.id).all()
        logger.debug("Fetched %d trip logs for %s..%s vehicle=%s", len(rows), start, end, vehicle_id)
        return rows

    def substitutes_between(self, start, end, vehicle_id=None):
        q = SubstituteDriver.query.filter(
            SubstituteDriver.work_date >= start,
            SubstituteDriver.work_date <= end,
        )
        if vehicle_id is not None:
            q = q.filter(SubstituteDriver.vehicle_id == int(vehicle_id))
        return q.order_by(SubstituteDriver.work_date, SubstituteDriver.id).all()

    def activity_dates(self, vehicle_id=None):
        tq = self.session.query(TripLog.trip_date).distinct()
        sq = self.session.query(SubstituteDriver.work_date).distinct()
        if vehicle_id is not None:
            tq = tq.filter(TripLog.vehicle_id == int(vehicle_id))
            sq = sq.filter(SubstituteDriver.vehicle_id == int(vehicle_id))
        return sorted({r[0] for r in tq.all()} | {r[0] for r in sq.all()})

    def find_trip_log(self, key):
        return TripLog.query.filter(
            TripLog.driver_id == key.driver_id,
            TripLog.trip_date == key.work_date,
            TripLog.shift == key.shift,
        ).first()

    def mark_trip_logs_paid(self, rows):
        n = 0
        for row in rows:
            if not row.paid:
                row.paid = True
                n += 1
        self.session.flush()
        return n

    def get_settlement(self, scope_key, week_start):
        return WeeklySettlement.query.filter_by(scope_key=scope_key, week_start=week_start).first()

    def get_settlement_by_id(self, settlement_id):
        return self.session.get(WeeklySettlement, int(settlement_id))

    def list_settlements(self, vehicle_id=None):
        q = WeeklySettlement.query
        if vehicle_id is not None:
            q = q.filter(WeeklySettlement.vehicle_id == int(vehicle_id))
        return q.order_by(WeeklySettlement.week_start.desc(), WeeklySettlement.id.desc()).all()

    def save_settlement(self, values):
        """Upsert by (scope_key, week_start). Last write wins."""
        row = self.get_settlement(values["scope_key"], values["week_start"])
        if row is None:
            row = WeeklySettlement(**values)
            self.session.add(row)
        else:
            for k, v in values.items():
                setattr(row, k, v)
        self.session.flush()
        return row

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
