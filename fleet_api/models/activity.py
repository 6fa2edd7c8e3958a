from datetime import date, datetime
from typing import NamedTuple

from fleet_api.extensions import db
from fleet_api.services.rental_slabs import get_substitute_charge


class Shift:
    MORNING = "morning"
    EVENING = "evening"
    ALL = (MORNING, EVENING)

    @classmethod
    def normalize(cls, raw) -> str | None:
        s = (raw or "").strip().lower()
        return s if s in cls.ALL else None


class ShiftKey(NamedTuple):
    """(driver, calendar date, shift): at most one trip log per key."""
    driver_id: int
    work_date: date
    shift: str

    @classmethod
    def of(cls, row: "TripLog") -> "ShiftKey":
        d = row.trip_date.date() if isinstance(row.trip_date, datetime) else row.trip_date
        return cls(int(row.driver_id), d, Shift.normalize(row.shift) or row.shift)


SHIFT_ENUM = db.Enum(*Shift.ALL, name="shift_enum")


class TripLog(db.Model):
    """
    One driver shift on one vehicle: trips run plus the rent owed for it.

    trip_count      -> trips counted towards the company rate slab
    rent            -> rent recorded for the shift at entry time; shown per
                       driver as logged_rent, settlement uses Driver.daily_rent
    collected_cash  -> optional cash handed over
    fuel_expense    -> optional fuel spent
    """
    __tablename__ = "trip_logs"

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id", ondelete="RESTRICT"), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False, index=True)
    trip_date = db.Column(db.Date, nullable=False, index=True)
    shift = db.Column(SHIFT_ENUM, nullable=False)
    trip_count = db.Column(db.Integer, nullable=False, default=0)

    rent = db.Column(db.Integer, nullable=False, default=0)
    collected_cash = db.Column(db.Integer)
    fuel_expense = db.Column(db.Integer)
    paid = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("driver_id", "trip_date", "shift", name="uq_trip_log_driver_date_shift"),
        db.Index("ix_trip_logs_vehicle_date", "vehicle_id", "trip_date"),
    )

    driver = db.relationship("Driver", lazy="joined")
    vehicle = db.relationship("Vehicle", lazy="joined")

    @property
    def key(self) -> ShiftKey:
        return ShiftKey.of(self)


class SubstituteDriver(db.Model):
    __tablename__ = "substitute_drivers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False, index=True)
    work_date = db.Column(db.Date, nullable=False, index=True)
    shift = db.Column(SHIFT_ENUM, nullable=False)
    shift_hours = db.Column(db.Integer, nullable=False)  # 6 | 8 | 12
    trip_count = db.Column(db.Integer)                   # NULL counts as 1
    charge = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    vehicle = db.relationship("Vehicle", lazy="joined")

    def __init__(self, **kwargs):
        if kwargs.get("charge") is None and kwargs.get("shift_hours") is not None:
            kwargs["charge"] = get_substitute_charge(kwargs["shift_hours"])
        super().__init__(**kwargs)

    @property
    def effective_trips(self) -> int:
        return 1 if self.trip_count is None else int(self.trip_count)
