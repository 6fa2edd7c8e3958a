from datetime import datetime

from fleet_api.extensions import db

FLEET_SCOPE = "fleet"


def scope_key(vehicle_id=None) -> str:
    return FLEET_SCOPE if vehicle_id is None else f"vehicle:{int(vehicle_id)}"


class WeeklySettlement(db.Model):
    """
    Materialised result of a weekly settlement for a scope (one vehicle or
    the whole fleet). Recomputing the same (scope_key, week_start) overwrites
    the row; it is a cache of the computation, not a ledger.
    """
    __tablename__ = "weekly_settlements"

    id = db.Column(db.Integer, primary_key=True)
    scope_key = db.Column(db.String(32), nullable=False)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id", ondelete="SET NULL"), index=True)
    week_start = db.Column(db.Date, nullable=False)
    week_end = db.Column(db.Date, nullable=False)

    total_trips = db.Column(db.Integer, nullable=False, default=0)
    rental_rate = db.Column(db.Integer)  # NULL for fleet scope (mixed rates)
    company_rent = db.Column(db.Integer, nullable=False, default=0)
    driver_rent = db.Column(db.Integer, nullable=False, default=0)
    substitute_rent = db.Column(db.Integer, nullable=False, default=0)
    total_income = db.Column(db.Integer, nullable=False, default=0)
    profit = db.Column(db.Integer, nullable=False, default=0)

    driver_details = db.Column(db.JSON)
    substitute_details = db.Column(db.JSON)

    status = db.Column(db.Enum("settled", "resettled", name="settlement_status_enum"),
                       nullable=False, default="settled")
    processed_by = db.Column(db.String(120))
    notes = db.Column(db.Text)
    paid = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("scope_key", "week_start", name="uq_settlement_scope_week"),
    )

    vehicle = db.relationship("Vehicle", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope": self.scope_key,
            "vehicle_id": self.vehicle_id,
            "vehicle_number": self.vehicle.vehicle_number if self.vehicle else None,
            "week_start": self.week_start.isoformat() if self.week_start else None,
            "week_end": self.week_end.isoformat() if self.week_end else None,
            "total_trips": self.total_trips,
            "rental_rate": self.rental_rate,
            "company_rent": self.company_rent,
            "driver_rent": self.driver_rent,
            "substitute_rent": self.substitute_rent,
            "total_income": self.total_income,
            "profit": self.profit,
            "driver_details": self.driver_details or [],
            "substitute_details": self.substitute_details or [],
            "status": self.status,
            "processed_by": self.processed_by,
            "notes": self.notes,
            "paid": self.paid,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
