"""
services/settlement_service.py — Settle-and-archive protocol.

A person is either Open (balance != 0) or Settled (archived, active rows
removed, person gone from the active store). settle_person() moves a person
from Open to Settled in this strict order:

  1. Compute total_amount: the balance immediately before the zeroing
     operation. Callers that zero the balance themselves (payment,
     direct edit) pass the pre-mutation balance; settle-now lets it be
     computed here from the current log.
  2. Write a SettledRecord with a frozen copy of every active entry and
     COMMIT it. Failure here → ARCHIVE_FAILED (503), rolled back, nothing
     changed.
  3. Delete the person's transactions, then the person, and COMMIT.
     Failure here is NOT rolled into step 2: the archive stays, the error is
     logged, and the result carries a DELETE_AFTER_ARCHIVE_FAILED warning.
     Duplicated-but-not-lost is the only acceptable partial state.
  4. Invalidate the cached persons and settled-record listings.

The audit entry (step 5) is written by the ledger facade once this returns,
because only the facade knows whether the trigger was a payment, a direct
edit, or an explicit settle.

Per-entry settle/unsettle:
  settle_transaction() zeroes ONE active entry, keeping its previous value
  in original_amount. unsettle_transaction() restores it. Archives are
  immutable and have no unsettle.

Layer rules:
  - No Flask imports.
  - settle_person() commits (twice). It is the only service besides the
    facade allowed to, because the protocol needs a durable archive before
    the delete is issued.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode, WarningCode
from backend.app.models.transaction import Transaction, ViewMode
from backend.app.services import balance_service, transaction_store
from backend.app.services.audit_service import Actor
from backend.app.services.read_cache import CacheKeys, ReadCache
from backend.app.services.transaction_store import TransactionSnapshot, store_errors

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    record_id: str
    person_id: str
    person_name: str
    total_amount: Decimal
    view_mode: ViewMode
    settled_at: dt.datetime
    transactions: list[dict]
    notes: str | None = None
    deleted: bool = True
    warnings: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.record_id,
            "person_id": self.person_id,
            "person_name": self.person_name,
            "total_amount": str(self.total_amount),
            "type": self.view_mode.value,
            "settled_at": self.settled_at.isoformat() if self.settled_at else None,
            "transactions": self.transactions,
            "notes": self.notes,
            "active_rows_removed": self.deleted,
        }


def settle_person(
        person_id: str,
        view_mode: ViewMode,
        actor: Actor,
        session: Session,
        cache: ReadCache,
        total_amount: Decimal | None = None,
        notes: str | None = None,
) -> SettlementResult:
    """
    Archives and removes `person_id`. Any pending (flushed, uncommitted)
    mutation in `session` is committed together with the archive.

    Raises:
        AppError(PERSON_NOT_FOUND, 404)   -- nothing to settle; no write made.
        AppError(STORE_UNAVAILABLE, 503)  -- step 1 reads failed.
        AppError(ARCHIVE_FAILED, 503)     -- step 2 failed; nothing changed.
    """
    # ── Step 1: balance before zeroing ─────────────────────────────────────
    with store_errors(session, "settlement lookup"):
        person = transaction_store.get_person_or_404(person_id, session)
        transactions = transaction_store.get_transactions_for_person(person_id, session)

    # A person with no entries has no debt cycle to close.
    if not transactions:
        raise AppError(
            ErrorCode.PERSON_NOT_FOUND,
            f"Person {person_id} has no transactions to settle.",
            404,
        )

    if total_amount is None:
        total_amount = balance_service.compute_balance(transactions, view_mode)
    total_amount = abs(total_amount)
    person_name = person.name
    frozen = [TransactionSnapshot.from_model(t).to_dict() for t in transactions]

    # ── Step 2: durable archive ────────────────────────────────────────────
    try:
        record = transaction_store.insert_settled_record(
            session,
            person_id=person_id,
            person_name=person_name,
            total_amount=total_amount,
            type=view_mode,
            settled_by_user_id=actor.id,
            settled_by_user_name=actor.name,
            transactions=frozen,
            notes=notes,
        )
        result = SettlementResult(
            record_id=record.id,
            person_id=person_id,
            person_name=person_name,
            total_amount=total_amount,
            view_mode=view_mode,
            settled_at=record.settled_at,
            transactions=frozen,
            notes=notes,
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Archive write failed for person %s: %s", person_id, exc)
        raise AppError(
            ErrorCode.ARCHIVE_FAILED,
            f"Could not archive the balance of {person_name}. Nothing was changed.",
            503,
        ) from exc

    logger.info(
        "Archived settlement %s for %s (%s %s)",
        result.record_id, person_name, view_mode.value, total_amount,
    )

    # ── Step 3: remove active rows (archive already durable) ───────────────
    try:
        transaction_store.delete_person_records(person_id, session)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(
            "Delete after archive failed for person %s (archive %s kept): %s",
            person_id, result.record_id, exc,
        )
        result.deleted = False
        result.warnings.append({
            "code": WarningCode.DELETE_AFTER_ARCHIVE_FAILED,
            "message": (
                f"The balance of {person_name} was archived, but its active "
                f"entries could not be removed yet. Refresh the listing; the "
                f"archive is safe."
            ),
        })

    # ── Step 4: invalidate cached listings ─────────────────────────────────
    cache.invalidate(CacheKeys.PERSONS)
    cache.invalidate(CacheKeys.SETTLED_RECORDS)

    return result


def settle_transaction(transaction_id: str, session: Session) -> tuple[Transaction, Decimal]:
    """
    Zeroes one active entry and marks it settled. Returns (entry, previous
    amount). Flushes only.

    Raises:
        AppError(TRANSACTION_NOT_FOUND, 404)
        AppError(TRANSACTION_ALREADY_SETTLED, 409)
    """
    txn = transaction_store.get_transaction_or_404(transaction_id, session)
    if txn.settled:
        raise AppError(
            ErrorCode.TRANSACTION_ALREADY_SETTLED,
            f"Transaction {transaction_id} is already settled.",
            409,
        )

    previous = txn.amount
    transaction_store.update_transaction_amount(
        txn,
        session,
        amount=Decimal("0.00"),
        settled=True,
        # Signed, so unsettle restores the direction as well as the size.
        original_amount=previous if previous != 0 else None,
    )
    return txn, previous


def unsettle_transaction(transaction_id: str, session: Session) -> tuple[Transaction, Decimal]:
    """
    Restores a settled entry's amount from original_amount and clears the
    flag. Returns (entry, restored amount). Flushes only.

    Raises:
        AppError(TRANSACTION_NOT_FOUND, 404)
        AppError(TRANSACTION_NOT_SETTLED, 409)
    """
    txn = transaction_store.get_transaction_or_404(transaction_id, session)
    if not txn.settled:
        raise AppError(
            ErrorCode.TRANSACTION_NOT_SETTLED,
            f"Transaction {transaction_id} is not settled.",
            409,
        )

    restored = txn.original_amount if txn.original_amount is not None else Decimal("0.00")
    transaction_store.update_transaction_amount(
        txn,
        session,
        amount=restored,
        settled=False,
    )
    return txn, restored
