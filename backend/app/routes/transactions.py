"""
routes/transactions.py — Transaction route handlers.

Endpoints (base url_prefix=/api/v1/transactions):
  POST   /transactions                   → 201  add a debt entry
  POST   /transactions/:id/settle        → 200  zero one entry
  POST   /transactions/:id/unsettle      → 200  restore one entry
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from backend.app.extensions import db, get_read_cache
from backend.app.middleware.auth_middleware import current_actor, require_auth
from backend.app.schemas.ledger_schema import CreateTransactionSchema
from backend.app.services import ledger_service

transactions_bp = Blueprint("transactions", __name__)


@transactions_bp.route("", methods=["POST"])
@require_auth
def add_transaction():
    """POST /transactions — The person is created on first use of the name."""
    data = CreateTransactionSchema().load(request.get_json(force=True) or {})
    result = ledger_service.add_transaction(
        data=data,
        actor=current_actor(),
        session=db.session,
        cache=get_read_cache(),
        currency=current_app.config["LEDGER_CURRENCY"],
    )
    return jsonify({"data": result, "warnings": []}), 201


@transactions_bp.route("/<transaction_id>/settle", methods=["POST"])
@require_auth
def settle_transaction(transaction_id: str):
    result = ledger_service.settle_transaction(
        transaction_id=transaction_id,
        actor=current_actor(),
        session=db.session,
        cache=get_read_cache(),
        currency=current_app.config["LEDGER_CURRENCY"],
    )
    return jsonify({"data": result, "warnings": []}), 200


@transactions_bp.route("/<transaction_id>/unsettle", methods=["POST"])
@require_auth
def unsettle_transaction(transaction_id: str):
    result = ledger_service.unsettle_transaction(
        transaction_id=transaction_id,
        actor=current_actor(),
        session=db.session,
        cache=get_read_cache(),
        currency=current_app.config["LEDGER_CURRENCY"],
    )
    return jsonify({"data": result, "warnings": []}), 200
