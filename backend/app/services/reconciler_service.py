"""
services/reconciler_service.py — Direct-edit reconciliation.

Turns "set this person's displayed balance to X" into ONE additive
adjustment entry. Prior entries are never rewritten.

    target_signed = +target under they-owe-me, -target under i-owe-them
    delta         = target_signed - current_total
    |delta| < EPSILON  → no-op, nothing persisted
    otherwise          → insert {amount: delta, description: "Adjustment",
                                 original_amount: |delta|, date: today,
                                 is_payment: False}

After the insert the log sums to target_signed exactly.

This module never triggers settlement. The ledger facade decides that.

Layer rules:
  - compute_adjustment() is pure and raises only INVALID_AMOUNT.
  - reconcile() reads and flushes through transaction_store; it never commits.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.transaction import Transaction, ViewMode
from backend.app.services import balance_service, transaction_store

ADJUSTMENT_DESCRIPTION = "Adjustment"
ADJUSTMENT_COMMENT = "Direct amount edit"


def compute_adjustment(
        current_total: Decimal,
        target: Decimal,
        view_mode: ViewMode,
) -> Decimal | None:
    """
    Returns the signed delta to insert, or None when no entry is needed.

    Raises:
        AppError(INVALID_AMOUNT, 400) -- target is negative or not finite.
    """
    if target is None or not Decimal(target).is_finite():
        raise AppError(
            ErrorCode.INVALID_AMOUNT,
            "The target amount must be a finite number.",
            400,
            field="amount",
        )
    if target < 0:
        raise AppError(
            ErrorCode.INVALID_AMOUNT,
            "The target amount cannot be negative.",
            400,
            field="amount",
        )

    target_signed = balance_service.signed_for_view(target, view_mode)
    delta = target_signed - current_total

    if abs(delta) < balance_service.EPSILON:
        return None
    return delta.quantize(balance_service.CENTS)


def reconcile(
        person_id: str,
        target: Decimal,
        view_mode: ViewMode,
        session: Session,
        actor_id: str | None = None,
) -> Transaction | None:
    """
    Inserts the adjustment entry that brings `person_id`'s balance to
    `target` under `view_mode`. Returns the new entry, or None for a no-op.

    Raises:
        AppError(PERSON_NOT_FOUND, 404)
        AppError(INVALID_AMOUNT, 400)
    """
    transaction_store.get_person_or_404(person_id, session)
    current = balance_service.signed_total(
        transaction_store.get_transactions_for_person(person_id, session)
    )

    delta = compute_adjustment(current, target, view_mode)
    if delta is None:
        return None

    return transaction_store.insert_transaction(
        session,
        person_id=person_id,
        description=ADJUSTMENT_DESCRIPTION,
        comment=ADJUSTMENT_COMMENT,
        amount=delta,
        original_amount=abs(delta),
        date=dt.date.today(),
        settled=False,
        is_payment=False,
        type=view_mode,
        created_by=actor_id,
    )
