import os
from datetime import date

import click
from flask import Flask
from flask_cors import CORS

from fleet_api.extensions import db, migrate, init_db
from fleet_api.models import load_all


def create_app(config_object: str | None = None):
    app = Flask(__name__)

    # Basic inline config (defaults)
    app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL", "sqlite:///fleet.db")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # Settlement policy (see services/weekly_aggregator.SettlementPolicy)
    app.config["SETTLEMENT_TRIP_COUNT_MODE"] = os.getenv("SETTLEMENT_TRIP_COUNT_MODE", "sum")
    app.config["SETTLEMENT_DRIVER_RENT_MODE"] = os.getenv("SETTLEMENT_DRIVER_RENT_MODE", "per_day")
    app.config["SETTLEMENT_INCLUDE_SUBSTITUTES"] = os.getenv("SETTLEMENT_INCLUDE_SUBSTITUTES", "true")

    # Try loading external config, but don't crash if missing
    if config_object:
        try:
            app.config.from_object(config_object)
        except Exception as e:
            app.logger.warning("Could not import config object %r: %s", config_object, e)

    # CORS (dev)
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Extensions
    init_db(app)
    migrate.init_app(app, db)

    # Ensure models are loaded so metadata is complete
    with app.app_context():
        load_all()

    # Blueprints
    from fleet_api.common.errors import bp_errors
    from fleet_api.blueprints.health import bp as health_bp
    from fleet_api.blueprints.settlements import bp as settlements_bp

    app.register_blueprint(bp_errors)
    app.register_blueprint(health_bp)
    app.register_blueprint(settlements_bp)

    # ----------------- CLI COMMANDS -----------------

    @app.cli.command("settle-week")
    @click.option("--week-start", "week_start", default=None, help="Any date in the week (YYYY-MM-DD); defaults to last week.")
    @click.option("--vehicle-id", "vehicle_id", type=int, default=None, help="Settle one vehicle instead of every vehicle.")
    def settle_week(week_start, vehicle_id):
        """Compute and store weekly settlements."""
        from fleet_api.repositories import SqlFleetRepository
        from fleet_api.services.settlement_service import process_all_settlements, process_settlement
        from fleet_api.services.week_window import current_week
        from fleet_api.services.weekly_aggregator import SettlementPolicy

        start = date.fromisoformat(week_start) if week_start else current_week().previous().start
        repo = SqlFleetRepository()
        policy = SettlementPolicy.from_config(app.config)

        if vehicle_id is not None:
            row = process_settlement(repo, start, vehicle_id, processed_by="cli", policy=policy)
            click.echo(f"vehicle {vehicle_id}: {row.status} profit={row.profit}")
            return

        batch = process_all_settlements(repo, start, policy)
        for p in batch.processed:
            click.echo(f"{p['vehicle_number']}: {p['status']} profit={p['profit']}")
        for f in batch.failed:
            click.echo(f"{f['vehicle_number']}: FAILED {f['error']}", err=True)

    @app.cli.command("seed-demo")
    def seed_demo():
        """Seed two vehicles and three drivers for local testing."""
        from fleet_api.models.fleet import Driver, Vehicle, VehicleDriverAssignment

        def ensure_vehicle(number: str, company: str) -> Vehicle:
            v = Vehicle.query.filter_by(vehicle_number=number).first()
            if not v:
                v = Vehicle(vehicle_number=number, company=company)
                db.session.add(v)
                db.session.commit()
            return v

        def ensure_driver(name: str, phone: str, has_accommodation: bool) -> Driver:
            d = Driver.query.filter_by(name=name).first()
            if not d:
                d = Driver(name=name, phone=phone, has_accommodation=has_accommodation)
                db.session.add(d)
                db.session.commit()
            return d

        v1 = ensure_vehicle("KA01AB1234", "PMV")
        v2 = ensure_vehicle("KA02CD5678", "Letzryd")
        ravi = ensure_driver("Ravi", "9000000001", True)
        suresh = ensure_driver("Suresh", "9000000002", False)
        ensure_driver("Imran", "9000000003", False)

        if not VehicleDriverAssignment.query.filter_by(vehicle_id=v1.id).first():
            db.session.add(VehicleDriverAssignment(vehicle_id=v1.id, morning_driver_id=ravi.id,
                                                   evening_driver_id=suresh.id))
            db.session.commit()
        click.echo(f"Seeded vehicles {v1.vehicle_number}, {v2.vehicle_number}")

    return app
