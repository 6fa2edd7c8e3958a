from __future__ import annotations

from datetime import date
from typing import Optional

from flask import Blueprint, current_app, request

from fleet_api.common.errors import APIError
from fleet_api.common.http import download, fail, ok
from fleet_api.common.paging import arg_int, paginate
from fleet_api.repositories import SqlFleetRepository
from fleet_api.services.rental_slabs import Company, get_all_slabs, get_rental_info
from fleet_api.services.settlement_export import export_settlements
from fleet_api.services.settlement_service import (
    compute_weekly_settlement,
    get_settlement_details,
    list_settlements,
    process_all_settlements,
    process_weekly_settlement,
    settlement_status,
    weekly_summary,
)
from fleet_api.services.week_window import current_week
from fleet_api.services.weekly_aggregator import SettlementPolicy

bp = Blueprint("settlements", __name__, url_prefix="/api/v1")


# ---------- helpers ----------
def _repo() -> SqlFleetRepository:
    return SqlFleetRepository()

def _policy() -> SettlementPolicy:
    return SettlementPolicy.from_config(current_app.config)

def _d(s) -> Optional[date]:
    if not s:
        return None
    try:
        return date.fromisoformat(str(s)[:10])
    except ValueError:
        return None

def _week_arg(j: dict | None = None) -> date:
    """week_start from JSON body or query string; defaults to the current week."""
    raw = (j or {}).get("week_start") or request.args.get("week_start")
    if not raw:
        return current_week().start
    d = _d(raw)
    if d is None:
        raise APIError("VALIDATION_ERROR", "week_start must be YYYY-MM-DD", 422)
    return d


# ---------- rate tables ----------
@bp.get("/rental-slabs/<company>")
def rental_slabs(company):
    return ok([s.to_dict() for s in get_all_slabs(Company.parse(company))])

@bp.get("/rental-info/<company>")
def rental_info(company):
    trips = arg_int("trips")
    if trips is None:
        return fail("trips query parameter is required (integer)", 422)
    return ok(get_rental_info(Company.parse(company), trips).to_dict())


# ---------- weekly views ----------
@bp.get("/vehicles/<int:vehicle_id>/weekly-summary")
def vehicle_weekly_summary(vehicle_id):
    return ok(weekly_summary(_repo(), vehicle_id, _week_arg(), _policy()))

@bp.get("/vehicles/<int:vehicle_id>/week-status")
def vehicle_week_status(vehicle_id):
    return ok(settlement_status(_repo(), vehicle_id, _week_arg()))

@bp.get("/settlements/preview")
def preview_settlement():
    result = compute_weekly_settlement(_repo(), _week_arg(), arg_int("vehicle_id"), _policy())
    return ok(result.to_dict())


# ---------- settlements ----------
@bp.post("/settlements")
def create_settlement():
    j = request.get_json(silent=True) or {}
    if "week_start" not in j:
        return fail("week_start is required", 422)
    vehicle_id = j.get("vehicle_id")
    if vehicle_id is not None:
        try:
            vehicle_id = int(vehicle_id)
        except (TypeError, ValueError):
            return fail("vehicle_id must be an integer", 422)

    outcome = process_weekly_settlement(
        _repo(),
        _week_arg(j),
        vehicle_id,
        processed_by=(j.get("processed_by") or "").strip() or None,
        notes=(j.get("notes") or "").strip() or None,
        archive=bool(j.get("archive", False)),
        policy=_policy(),
    )
    return ok(outcome.to_dict(), 201)

@bp.post("/settlements/process-all")
def process_all():
    j = request.get_json(silent=True) or {}
    batch = process_all_settlements(_repo(), _week_arg(j), _policy())
    return ok(batch.to_dict(), 201)

@bp.get("/settlements")
def get_settlements():
    rows = list_settlements(_repo(), arg_int("vehicle_id"))
    chunk, meta = paginate(rows)
    return ok([r.to_dict() for r in chunk], **meta)

@bp.get("/settlements/<int:settlement_id>")
def get_settlement(settlement_id):
    return ok(get_settlement_details(_repo(), settlement_id))

@bp.get("/settlements/export")
def export():
    rows = list_settlements(_repo(), arg_int("vehicle_id"))
    content, file_name, mime = export_settlements(rows, request.args.get("format", "csv"))
    return download(content, file_name, mime)
