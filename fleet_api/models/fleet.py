from datetime import datetime

from sqlalchemy.sql import func

from fleet_api.extensions import db
from fleet_api.services.rental_slabs import Company, get_driver_rent


class Vehicle(db.Model):
    __tablename__ = "vehicles"

    id = db.Column(db.Integer, primary_key=True)
    vehicle_number = db.Column(db.String(32), unique=True, nullable=False)
    company = db.Column(db.String(32), nullable=False)  # "PMV" | "Letzryd"
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    deleted_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def company_enum(self) -> Company:
        return Company.parse(self.company)

    def soft_delete(self):
        self.is_active = False
        self.deleted_at = func.now()


class Driver(db.Model):
    __tablename__ = "drivers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(32), nullable=False, default="")
    has_accommodation = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def daily_rent(self) -> int:
        return get_driver_rent(self.has_accommodation)


# Current regular drivers of a vehicle, one per shift
class VehicleDriverAssignment(db.Model):
    __tablename__ = "vehicle_driver_assignments"

    id = db.Column(db.Integer, primary_key=True)
    vehicle_id = db.Column(
        db.Integer,
        db.ForeignKey("vehicles.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    morning_driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id", ondelete="SET NULL"))
    evening_driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    vehicle = db.relationship(
        "Vehicle", backref=db.backref("assignment", uselist=False)
    )
    morning_driver = db.relationship("Driver", foreign_keys=[morning_driver_id])
    evening_driver = db.relationship("Driver", foreign_keys=[evening_driver_id])
