"""
routes/persons.py — Person route handlers.

Layer rules:
  - Parse, validate, call ONE ledger_service function, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - The ledger facade commits and invalidates the read cache itself,
    because settlement needs a durable archive before its delete step.

Endpoints (base url_prefix=/api/v1/persons):
  GET    /persons?view_mode=&q=          → 200  cached listing with balances
  POST   /persons                        → 200/201  find-or-create by name
  DELETE /persons/:id?view_mode=         → 200  remove person and entries
  POST   /persons/:id/payments           → 201  record a payment
  PUT    /persons/:id/balance            → 200  direct edit of the balance
  POST   /persons/:id/settle             → 201  settle now
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from backend.app.extensions import db, get_read_cache
from backend.app.middleware.auth_middleware import current_actor, require_auth
from backend.app.schemas.ledger_schema import (
    CreatePersonSchema,
    DirectEditSchema,
    PaymentSchema,
    SettleSchema,
    ViewModeQuerySchema,
)
from backend.app.services import ledger_service

persons_bp = Blueprint("persons", __name__)


def _currency() -> str:
    return current_app.config["LEDGER_CURRENCY"]


@persons_bp.route("", methods=["GET"])
@require_auth
def list_persons():
    """
    GET /persons — Persons listed under view_mode, with balance, direction,
    overdue flag and most recent relevant entry.

    Served from the read cache; carries the poll interval so clients know how
    often to refresh.
    """
    query = ViewModeQuerySchema().load(request.args)
    rows, warnings = ledger_service.list_persons_with_transactions(
        view_mode=query["view_mode"],
        session=db.session,
        cache=get_read_cache(),
        search=query["q"],
    )
    response = jsonify({
        "data": {
            "view_mode": query["view_mode"].value,
            "persons": rows,
            "poll_interval_seconds": current_app.config["POLL_INTERVAL_SECONDS"],
        },
        "warnings": warnings,
    })
    response.headers["Cache-Control"] = current_app.config["CACHE_CONTROL_HEADER"]
    return response, 200


@persons_bp.route("", methods=["POST"])
@require_auth
def create_person():
    """POST /persons — Returns the existing person (200) or a new one (201)."""
    data = CreatePersonSchema().load(request.get_json(force=True) or {})
    result = ledger_service.find_or_create_person(
        name=data["name"],
        session=db.session,
        cache=get_read_cache(),
        signature=data["signature"],
    )
    return jsonify({"data": result, "warnings": []}), 200 if result["exists"] else 201


@persons_bp.route("/<person_id>", methods=["DELETE"])
@require_auth
def delete_person(person_id: str):
    """DELETE /persons/:id — Removes the person and every entry, unarchived."""
    query = ViewModeQuerySchema().load(request.args)
    result = ledger_service.delete_person(
        person_id=person_id,
        view_mode=query["view_mode"],
        actor=current_actor(),
        session=db.session,
        cache=get_read_cache(),
        currency=_currency(),
    )
    return jsonify({"data": result, "warnings": []}), 200


@persons_bp.route("/<person_id>/payments", methods=["POST"])
@require_auth
def record_payment(person_id: str):
    """
    POST /persons/:id/payments — Record a payment.

    A payment that brings the balance to zero settles the person; the
    settlement is included in the response. Overpayment is recorded with an
    OVERPAYMENT warning. Status is 201 either way.
    """
    data = PaymentSchema().load(request.get_json(force=True) or {})
    result, warnings = ledger_service.record_payment(
        person_id=person_id,
        data=data,
        actor=current_actor(),
        session=db.session,
        cache=get_read_cache(),
        currency=_currency(),
    )
    return jsonify({"data": result, "warnings": warnings}), 201


@persons_bp.route("/<person_id>/balance", methods=["PUT"])
@require_auth
def direct_edit(person_id: str):
    """PUT /persons/:id/balance — Set the displayed balance via one adjustment."""
    data = DirectEditSchema().load(request.get_json(force=True) or {})
    result, warnings = ledger_service.direct_edit(
        person_id=person_id,
        data=data,
        actor=current_actor(),
        session=db.session,
        cache=get_read_cache(),
        currency=_currency(),
    )
    return jsonify({"data": result, "warnings": warnings}), 200


@persons_bp.route("/<person_id>/settle", methods=["POST"])
@require_auth
def settle_now(person_id: str):
    """
    POST /persons/:id/settle — Archive and remove the person.

    If the archive was written but the active rows could not be removed, the
    response is still 201 and carries DELETE_AFTER_ARCHIVE_FAILED.
    """
    data = SettleSchema().load(request.get_json(force=True) or {})
    result, warnings = ledger_service.settle_now(
        person_id=person_id,
        data=data,
        actor=current_actor(),
        session=db.session,
        cache=get_read_cache(),
        currency=_currency(),
    )
    return jsonify({"data": result, "warnings": warnings}), 201
