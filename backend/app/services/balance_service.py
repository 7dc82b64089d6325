"""
services/balance_service.py — Balance computation for a counterparty.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
The formula must not be reimplemented elsewhere in the codebase.

Layer rules:
  - Pure functions. No Flask, no Session, no I/O.
  - Accepts any objects exposing the Transaction attributes it reads
    (ORM rows, TransactionSnapshot, or test doubles).
  - Raises only AppError(INVALID_AMOUNT).

Balance formula:
  signed_total = sum(t.amount for t in transactions)   -- every entry, any sign
  balance      = 0            if |signed_total| < EPSILON
                 |signed_total| otherwise

Summing the whole log (not only entries of the view's sign) is what lets a
payment, stored with the opposite sign, reduce a debt without deleting it.

The view mode never changes the arithmetic. It only decides:
  - which direction a nonzero total is displayed as, and
  - which entries are "relevant" for listing a person under that view
    (nonzero entries whose sign matches the view's debt polarity).
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Iterable, Protocol, Sequence

from backend.app.errors import AppError, ErrorCode
from backend.app.models.transaction import ViewMode

EPSILON = Decimal("0.01")
ZERO = Decimal("0.00")
CENTS = Decimal("0.01")


class LedgerEntry(Protocol):
    amount: Decimal


def _checked(amount) -> Decimal:
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    if not value.is_finite():
        raise AppError(
            ErrorCode.INVALID_AMOUNT,
            "Transaction amounts must be finite numbers.",
            400,
            field="amount",
        )
    return value


def normalize(total: Decimal) -> Decimal:
    """Collapses totals within EPSILON of zero to exactly 0.00."""
    if abs(total) < EPSILON:
        return ZERO
    return total.quantize(CENTS)


def signed_total(transactions: Iterable[LedgerEntry]) -> Decimal:
    """Raw signed sum of every entry, normalized around zero."""
    total = sum((_checked(t.amount) for t in transactions), Decimal("0"))
    return normalize(total)


def compute_balance(
        transactions: Iterable[LedgerEntry],
        view_mode: ViewMode,
) -> Decimal:
    """
    Nonnegative balance of a person's log.

    `view_mode` is accepted to keep the call sites explicit about the
    perspective, but it does not alter the result.
    """
    return abs(signed_total(transactions))


def display_direction(total: Decimal) -> ViewMode | None:
    """
    Which framing a signed total reads as: positive → they owe me,
    negative → I owe them, zero → neither.
    """
    total = normalize(total)
    if total > 0:
        return ViewMode.THEY_OWE_ME
    if total < 0:
        return ViewMode.I_OWE_THEM
    return None


def signed_for_view(amount: Decimal, view_mode: ViewMode) -> Decimal:
    """Stores a debt of `amount` (magnitude) under `view_mode`'s polarity."""
    return abs(_checked(amount)) * view_mode.sign


def payment_for_view(amount: Decimal, view_mode: ViewMode) -> Decimal:
    """A payment carries the opposite sign of the debt it reduces."""
    return -signed_for_view(amount, view_mode)


def is_relevant(txn: LedgerEntry, view_mode: ViewMode) -> bool:
    """Nonzero entry whose raw sign matches the view's debt polarity."""
    amount = _checked(txn.amount)
    if amount == 0:
        return False
    return (amount > 0) == (view_mode is ViewMode.THEY_OWE_ME)


def relevant_transactions(
        transactions: Iterable[LedgerEntry],
        view_mode: ViewMode,
) -> list:
    return [t for t in transactions if is_relevant(t, view_mode)]


def is_eligible(transactions: Iterable[LedgerEntry], view_mode: ViewMode) -> bool:
    """A person is listed under a view only if at least one entry is relevant."""
    return any(is_relevant(t, view_mode) for t in transactions)


def is_overdue(
        transactions: Iterable,
        view_mode: ViewMode,
        today: dt.date | None = None,
) -> bool:
    """
    True when a relevant, unsettled, nonzero entry has a due date before today.
    """
    today = today or dt.date.today()
    return any(
        is_relevant(t, view_mode)
        and not t.settled
        and t.due_date is not None
        and t.due_date < today
        for t in transactions
    )


def most_recent_relevant(transactions: Sequence, view_mode: ViewMode):
    """Latest-dated relevant entry, or None."""
    candidates = relevant_transactions(transactions, view_mode)
    if not candidates:
        return None
    return max(candidates, key=lambda t: t.date)
