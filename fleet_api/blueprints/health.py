from flask import Blueprint
from sqlalchemy import text

from fleet_api.common.http import ok, fail
from fleet_api.extensions import db

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as e:
        return fail("Database unavailable", status=503, detail=str(e))
    return ok({"status": "ok"})
