"""
routes/history.py — Read-only history: settlement archives and activity trail.

Endpoints (base url_prefix=/api/v1):
  GET /settled     → 200  archived settlements, newest first (cached)
  GET /activity    → 200  activity trail, newest first (cached, admin only)
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from backend.app.extensions import db, get_read_cache
from backend.app.middleware.auth_middleware import require_admin, require_auth
from backend.app.services import ledger_service

history_bp = Blueprint("history", __name__)


@history_bp.route("/settled", methods=["GET"])
@require_auth
def list_settled():
    records, warnings = ledger_service.list_settled_records(
        session=db.session,
        cache=get_read_cache(),
    )
    response = jsonify({"data": records, "warnings": warnings})
    response.headers["Cache-Control"] = current_app.config["CACHE_CONTROL_HEADER"]
    return response, 200


@history_bp.route("/activity", methods=["GET"])
@require_admin
def list_activity():
    """GET /activity — 403 FORBIDDEN for non-admin actors."""
    entries, warnings = ledger_service.list_activity(
        session=db.session,
        cache=get_read_cache(),
        limit=current_app.config["ACTIVITY_LOG_LIMIT"],
    )
    response = jsonify({"data": entries, "warnings": warnings})
    response.headers["Cache-Control"] = current_app.config["CACHE_CONTROL_HEADER"]
    return response, 200
