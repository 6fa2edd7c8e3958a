import os
from datetime import date, timedelta

import pytest
from sqlalchemy import text

from fleet_api import create_app
from fleet_api.common.errors import NotFoundError
from fleet_api.extensions import db
from fleet_api.models.activity import SubstituteDriver, TripLog
from fleet_api.models.fleet import Driver, Vehicle, VehicleDriverAssignment
from fleet_api.models.settlement import WeeklySettlement
from fleet_api.repositories import SqlFleetRepository
from fleet_api.services.settlement_service import (
    available_weeks,
    compute_weekly_settlement,
    process_all_settlements,
    process_settlement,
    process_weekly_settlement,
    settlement_status,
    weekly_summary,
)
from fleet_api.services.weekly_aggregator import SettlementPolicy, aggregate_week

MONDAY = date(2025, 7, 7)


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def _vehicle(number="KA01AB1234", company="PMV"):
    v = Vehicle(vehicle_number=number, company=company)
    db.session.add(v); db.session.commit()
    return v


def _driver(name="Ravi", has_accommodation=True):
    d = Driver(name=name, phone="9000000000", has_accommodation=has_accommodation)
    db.session.add(d); db.session.commit()
    return d


def _log(driver, vehicle, day, shift="morning", trips=10, paid=False, **kw):
    t = TripLog(driver_id=driver.id, vehicle_id=vehicle.id, trip_date=day, shift=shift,
                trip_count=trips, rent=driver.daily_rent, paid=paid, **kw)
    db.session.add(t); db.session.commit()
    return t


def test_driver_rent_counts_distinct_days_only():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        ravi = _driver("Ravi", has_accommodation=True)
        for i in range(5):
            _log(ravi, v, MONDAY + timedelta(days=i), "morning", trips=10)
        # second shift on Monday: same day, must not add a sixth day
        _log(ravi, v, MONDAY, "evening", trips=10)

        res = compute_weekly_settlement(SqlFleetRepository(), MONDAY, v.id)
        drv = res.aggregate.drivers[0]
        assert drv.days_worked == 5
        assert drv.daily_rent == 600
        assert drv.total_rent == 3000
        assert drv.logged_rent == 600 * 6     # per-shift record, not what is charged
        assert res.total_trips == 60
        assert res.rental_rate == 949
        assert res.company_rent == 949 * 7
        assert res.profit == 3000 - 949 * 7


def test_zero_activity_week_is_a_loss_at_worst_rate():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle(company="Letzryd")
        res = compute_weekly_settlement(SqlFleetRepository(), MONDAY, v.id)
        assert res.total_trips == 0
        assert res.total_income == 0
        assert res.rental_rate == 950
        assert res.company_rent == 6650
        assert res.profit == -6650


def test_substitutes_move_the_slab_but_charge_flat():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle(company="PMV")
        suresh = _driver("Suresh", has_accommodation=False)
        for i in range(6):
            _log(suresh, v, MONDAY + timedelta(days=i), trips=10)   # 60 regular trips
        db.session.add_all([
            SubstituteDriver(name="Anil", vehicle_id=v.id, work_date=MONDAY + timedelta(days=6),
                             shift="morning", shift_hours=8, trip_count=5),
            SubstituteDriver(name="Kiran", vehicle_id=v.id, work_date=MONDAY + timedelta(days=6),
                             shift="evening", shift_hours=12),
        ])
        db.session.commit()

        agg = aggregate_week(SqlFleetRepository(), MONDAY, v.id)
        assert agg.regular_trips == 60
        assert agg.substitute_trips == 6          # 5 + default 1
        assert agg.substitute_rent == 350 + 500   # tier charges, not per trip
        assert agg.driver_rent == 500 * 6

        res = compute_weekly_settlement(SqlFleetRepository(), MONDAY, v.id)
        assert res.total_trips == 66
        assert res.rental_rate == 750             # 65-79 slab reached via substitutes
        assert res.profit == (3000 + 850) - 750 * 7


def test_profit_identity_and_idempotent_compute():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        d = _driver()
        for i in range(7):
            _log(d, v, MONDAY + timedelta(days=i), trips=18, collected_cash=1200, fuel_expense=300)
        repo = SqlFleetRepository()
        a = compute_weekly_settlement(repo, MONDAY, v.id)
        b = compute_weekly_settlement(repo, MONDAY, v.id)
        assert a.profit == b.profit
        assert a.profit == a.total_income - a.company_rent
        assert a.aggregate.collected_cash == 8400
        assert a.aggregate.fuel_expense == 2100
        assert a.rental_rate == 444                # 126 trips
        assert WeeklySettlement.query.count() == 0  # compute never writes


def test_non_monday_week_start_is_normalized():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        d = _driver()
        _log(d, v, MONDAY, trips=3)
        res = compute_weekly_settlement(SqlFleetRepository(), MONDAY + timedelta(days=3), v.id)
        assert res.window.start == MONDAY
        assert res.window.end == MONDAY + timedelta(days=6)
        assert res.total_trips == 3


def test_rows_outside_the_week_are_ignored():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        d = _driver()
        _log(d, v, MONDAY - timedelta(days=1), trips=40)   # previous Sunday
        _log(d, v, MONDAY + timedelta(days=7), trips=40)   # next Monday
        _log(d, v, MONDAY + timedelta(days=6), trips=2)    # this Sunday
        res = compute_weekly_settlement(SqlFleetRepository(), MONDAY, v.id)
        assert res.total_trips == 2
        assert res.aggregate.drivers[0].days_worked == 1


def test_missing_vehicle_is_not_found():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        with pytest.raises(NotFoundError):
            compute_weekly_settlement(SqlFleetRepository(), MONDAY, 999)


def test_duplicate_shift_rows_are_dropped_during_aggregation():
    class DupRepo(SqlFleetRepository):
        def trip_logs_between(self, start, end, vehicle_id=None):
            rows = super().trip_logs_between(start, end, vehicle_id)
            return rows + rows[:1]

    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        d = _driver()
        _log(d, v, MONDAY, trips=7)
        _log(d, v, MONDAY + timedelta(days=1), trips=7)
        agg = aggregate_week(DupRepo(), MONDAY, v.id)
        assert agg.duplicates_dropped == 1
        assert agg.regular_trips == 14


def test_process_upserts_one_row_per_vehicle_week():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        d = _driver()
        _log(d, v, MONDAY, trips=10)
        repo = SqlFleetRepository()

        st = settlement_status(repo, v.id, MONDAY)
        assert st["state"] == "unsettled" and st["can_settle"] is True

        first = process_settlement(repo, MONDAY, v.id, processed_by="ops", notes="week 28")
        assert first.status == "settled"
        assert first.profit == 600 - 949 * 7

        # more trips arrive, week is processed again
        _log(d, v, MONDAY + timedelta(days=1), trips=70)
        again = process_settlement(repo, MONDAY, v.id)
        assert again.id == first.id
        assert again.status == "resettled"
        assert again.total_trips == 80
        assert again.rental_rate == 640
        assert again.profit == 1200 - 640 * 7
        assert WeeklySettlement.query.count() == 1
        assert settlement_status(repo, v.id, MONDAY)["state"] == "resettled"


def test_archive_marks_week_trip_logs_paid():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        d = _driver()
        inside = _log(d, v, MONDAY, trips=10)
        outside = _log(d, v, MONDAY + timedelta(days=7), trips=10)
        row = process_settlement(SqlFleetRepository(), MONDAY, v.id, archive=True)
        assert row.paid is True
        assert db.session.get(TripLog, inside.id).paid is True
        assert db.session.get(TripLog, outside.id).paid is False

        res = compute_weekly_settlement(SqlFleetRepository(), MONDAY, v.id)
        assert res.aggregate.drivers[0].paid is True


def test_batch_continues_past_a_failing_vehicle():
    class VanishingRepo(SqlFleetRepository):
        """Behaves as if one vehicle was deleted after the batch listed it."""
        def __init__(self, gone_id):
            super().__init__()
            self.gone_id = gone_id

        def get_vehicle(self, vehicle_id):
            if int(vehicle_id) == self.gone_id:
                return None
            return super().get_vehicle(vehicle_id)

    app = _mk_app()
    with app.app_context():
        db.create_all()
        v1 = _vehicle("V1", "PMV")
        v2 = _vehicle("V2", "Letzryd")
        v3 = _vehicle("V3", "PMV")
        d = _driver()
        _log(d, v1, MONDAY, trips=10)

        batch = process_all_settlements(VanishingRepo(v2.id), MONDAY)
        assert [p["vehicle_id"] for p in batch.processed] == [v1.id, v3.id]
        assert len(batch.failed) == 1
        assert batch.failed[0]["vehicle_id"] == v2.id
        assert "not found" in batch.failed[0]["error"]
        assert WeeklySettlement.query.count() == 2


def test_fleet_scope_sums_vehicles_on_their_own_slabs():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        pmv = _vehicle("P1", "PMV")
        lz = _vehicle("L1", "Letzryd")
        a = _driver("A", has_accommodation=True)
        b = _driver("B", has_accommodation=False)
        for i in range(7):
            _log(a, pmv, MONDAY + timedelta(days=i), trips=20)   # 140 -> 150/day
            _log(b, lz, MONDAY + timedelta(days=i), trips=10)    # 70 -> 710/day

        repo = SqlFleetRepository()
        fleet = compute_weekly_settlement(repo, MONDAY)
        assert fleet.scope_key == "fleet"
        assert fleet.rental_rate is None
        assert fleet.total_trips == 210
        assert fleet.company_rent == 150 * 7 + 710 * 7
        assert fleet.total_income == 600 * 7 + 500 * 7
        assert fleet.profit == sum(p.profit for p in fleet.vehicles)

        row = process_settlement(repo, MONDAY)
        assert row.scope_key == "fleet"
        assert row.vehicle_id is None
        assert row.profit == fleet.profit
        assert len(row.driver_details) == 2


def test_flat_week_policy_charges_assigned_shifts_only():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        ravi = _driver("Ravi", has_accommodation=True)
        db.session.add(VehicleDriverAssignment(vehicle_id=v.id, morning_driver_id=ravi.id,
                                               evening_driver_id=None))
        db.session.commit()
        _log(ravi, v, MONDAY, trips=10)

        policy = SettlementPolicy(driver_rent_mode="flat_week")
        res = compute_weekly_settlement(SqlFleetRepository(), MONDAY, v.id, policy)
        assert res.driver_rent == 600 * 7     # evening shift empty -> nothing
        assert res.aggregate.drivers[0].days_worked == 7


def test_rows_trip_count_mode_and_substitute_switch():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        d = _driver()
        _log(d, v, MONDAY, trips=9)
        _log(d, v, MONDAY, shift="evening", trips=9)
        db.session.add(SubstituteDriver(name="Anil", vehicle_id=v.id, work_date=MONDAY,
                                        shift="morning", shift_hours=6, trip_count=4))
        db.session.commit()

        policy = SettlementPolicy(trip_count_mode="rows", include_substitutes=False)
        agg = aggregate_week(SqlFleetRepository(), MONDAY, v.id, policy)
        assert agg.regular_trips == 2
        assert agg.substitute_trips == 0
        assert agg.substitute_rent == 0


def test_policy_from_config_and_validation():
    p = SettlementPolicy.from_config({
        "SETTLEMENT_TRIP_COUNT_MODE": "ROWS",
        "SETTLEMENT_DRIVER_RENT_MODE": "per_day",
        "SETTLEMENT_INCLUDE_SUBSTITUTES": "false",
    })
    assert p.trip_count_mode == "rows"
    assert p.include_substitutes is False
    with pytest.raises(ValueError):
        SettlementPolicy(driver_rent_mode="monthly")


def test_weekly_summary_and_available_weeks():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        ravi = _driver("Ravi")
        db.session.add(VehicleDriverAssignment(vehicle_id=v.id, morning_driver_id=ravi.id))
        db.session.commit()
        _log(ravi, v, MONDAY, trips=5)
        _log(ravi, v, MONDAY - timedelta(days=7), trips=5)
        db.session.add(SubstituteDriver(name="Anil", vehicle_id=v.id, work_date=MONDAY + timedelta(days=14),
                                        shift="morning", shift_hours=6))
        db.session.commit()

        repo = SqlFleetRepository()
        weeks = available_weeks(repo, v.id)
        assert [w["week_start"] for w in weeks] == [
            (MONDAY + timedelta(days=14)).isoformat(),
            MONDAY.isoformat(),
            (MONDAY - timedelta(days=7)).isoformat(),
        ]

        s = weekly_summary(repo, v.id, MONDAY)
        assert s["vehicle"]["company"] == "PMV"
        assert s["morning_driver"]["name"] == "Ravi"
        assert s["evening_driver"] is None
        assert s["current_week"]["total_trips"] == 5
        assert s["current_week"]["rental_info"]["next_better_slab"] == {"rate": 750, "trips_needed": 60}
        assert s["breakdown"]["calculation"]["net_profit"] == s["current_week"]["profit"]
        assert len(s["available_weeks"]) == 3


def test_archive_outcome_reports_logs_and_next_week():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        v = _vehicle()
        d = _driver()
        _log(d, v, MONDAY, trips=10)
        _log(d, v, MONDAY + timedelta(days=1), trips=10)
        _log(d, v, MONDAY + timedelta(days=2), trips=10, paid=True)

        out = process_weekly_settlement(SqlFleetRepository(), MONDAY, v.id, archive=True)
        assert out.archived_trip_logs == 2        # already-paid row not counted
        assert out.next_week_start == MONDAY + timedelta(days=7)
        assert out.to_dict()["next_week_start"] == "2025-07-14"

        again = process_weekly_settlement(SqlFleetRepository(), MONDAY, v.id, archive=True)
        assert again.archived_trip_logs == 0
        assert again.row.status == "resettled"

        plain = process_weekly_settlement(SqlFleetRepository(), MONDAY, v.id)
        assert plain.archived_trip_logs == 0


def test_batch_reports_vehicle_deleted_between_commits():
    class DeletingRepo(SqlFleetRepository):
        """Hard-deletes one vehicle right after the first settlement commits."""
        def __init__(self, doomed_id):
            super().__init__()
            self.doomed_id = doomed_id
            self.done = False

        def commit(self):
            super().commit()
            if not self.done:
                self.done = True
                self.session.execute(text("DELETE FROM vehicles WHERE id = :id"), {"id": self.doomed_id})
                self.session.commit()

    app = _mk_app()
    with app.app_context():
        db.create_all()
        v0 = _vehicle("V0", "PMV")
        v1 = _vehicle("V1", "Letzryd")
        v2 = _vehicle("V2", "PMV")
        ids = [v0.id, v1.id, v2.id]

        batch = process_all_settlements(DeletingRepo(ids[1]), MONDAY)
        assert [p["vehicle_id"] for p in batch.processed] == [ids[0], ids[2]]
        assert batch.failed == [{"vehicle_id": ids[1], "vehicle_number": "V1",
                                 "error": f"Vehicle with ID {ids[1]} not found"}]
        assert WeeklySettlement.query.count() == 2


def test_soft_deleted_vehicle_is_not_found_in_either_scope():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        a = _vehicle("A1", "PMV")
        b = _vehicle("B1", "PMV")
        d = _driver()
        _log(d, b, MONDAY, trips=10)
        a_id, b_id = a.id, b.id
        b.soft_delete(); db.session.commit()

        repo = SqlFleetRepository()
        fleet = compute_weekly_settlement(repo, MONDAY)
        assert [p.vehicle_id for p in fleet.vehicles] == [a_id]

        with pytest.raises(NotFoundError):
            compute_weekly_settlement(repo, MONDAY, b_id)
        with pytest.raises(NotFoundError):
            process_settlement(repo, MONDAY, b_id)
        with pytest.raises(NotFoundError):
            settlement_status(repo, b_id, MONDAY)
        assert WeeklySettlement.query.count() == 0
