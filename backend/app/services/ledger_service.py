"""
services/ledger_service.py — Ledger facade.

The operations routes call. Each one composes the transaction store, the
balance calculator, the reconciler, the settlement engine and the read cache.

Contract for every mutating operation:
  1. Validate and write through transaction_store (flush only).
  2. Commit (or hand the pending write to settle_person, which commits it
     together with the archive).
  3. Invalidate every cache key whose data changed, BEFORE returning, so a
     subsequent read can never observe the pre-mutation state.
  4. Write the activity entry (fire-and-forget, after the commit).
A failure in steps 1–2 rolls back and raises; the cache is left untouched.

Reads go through the ReadCache. If the store is unavailable and an older
cached value exists, it is returned with a STALE_DATA warning instead of
failing.

Layer rules:
  - No Flask imports. Routes pass session, cache, actor and currency.
  - Returns plain dicts (amounts as strings) plus a warnings list.
"""

from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal
from typing import Callable, TypeVar

from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode, WarningCode
from backend.app.models.activity_log import ActivityAction
from backend.app.models.transaction import ViewMode
from backend.app.services import (
    audit_service,
    balance_service,
    reconciler_service,
    settlement_service,
    transaction_store,
)
from backend.app.services.audit_service import Actor, format_amount
from backend.app.services.read_cache import CacheKeys, ReadCache
from backend.app.services.transaction_store import (
    PersonSnapshot,
    TransactionSnapshot,
    store_errors,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CURRENCY = "FCFA"


# ── Private helpers ────────────────────────────────────────────────────────

def _cached_read(
        cache: ReadCache,
        key: str,
        session: Session,
        operation: str,
        loader: Callable[[], T],
) -> tuple[T, list[dict]]:
    """
    get_cached() with the stale fallback: when the store is unavailable and
    a previous value exists, return it with a STALE_DATA warning.
    """
    def fetch() -> T:
        with store_errors(session, operation):
            return loader()

    try:
        return cache.get_cached(key, fetch), []
    except AppError as err:
        if err.code != ErrorCode.STORE_UNAVAILABLE:
            raise
        stale = cache.peek(key)
        if stale is None:
            raise
        logger.warning("Serving stale %r after store failure", key)
        return stale, [{
            "code": WarningCode.STALE_DATA,
            "message": "The ledger store is unavailable; showing the last known data.",
        }]


def _audit(
        session: Session,
        cache: ReadCache,
        actor: Actor,
        action: ActivityAction,
        view_mode: ViewMode,
        description: str,
        person_name: str | None = None,
        amount: Decimal | None = None,
        person_id: str | None = None,
        transaction_id: str | None = None,
) -> None:
    audit_service.record_activity(
        session,
        actor,
        action,
        view_mode,
        description,
        person_name=person_name,
        amount=amount,
        person_id=person_id,
        transaction_id=transaction_id,
        cache=cache,
    )


def _person_row(person: PersonSnapshot, view_mode: ViewMode, today: dt.date) -> dict:
    total = balance_service.signed_total(person.transactions)
    direction = balance_service.display_direction(total)
    recent = balance_service.most_recent_relevant(person.transactions, view_mode)
    return {
        "id": person.id,
        "name": person.name,
        "signature": person.signature,
        "balance": str(balance_service.compute_balance(person.transactions, view_mode)),
        "direction": direction.value if direction else None,
        "overdue": balance_service.is_overdue(person.transactions, view_mode, today),
        "most_recent_transaction": recent.to_dict() if recent else None,
        "transactions": [t.to_dict() for t in person.transactions],
    }


def _matches(person: PersonSnapshot, query: str) -> bool:
    """Case-insensitive match on name, description, comment or amount text."""
    q = query.strip().lower()
    if not q:
        return True
    if q in person.name.lower():
        return True
    for t in person.transactions:
        if t.description and q in t.description.lower():
            return True
        if t.comment and q in t.comment.lower():
            return True
        if q in str(t.amount):
            return True
    return False


def _commit(session: Session, operation: str) -> None:
    with store_errors(session, operation):
        session.commit()


# ── Reads ──────────────────────────────────────────────────────────────────

def list_persons_with_transactions(
        view_mode: ViewMode,
        session: Session,
        cache: ReadCache,
        search: str | None = None,
        today: dt.date | None = None,
) -> tuple[list[dict], list[dict]]:
    """
    Persons listed under `view_mode` with their balances.

    The cache holds every person's snapshot under CacheKeys.PERSONS; the view
    filter, eligibility and search are applied per request on top of it.
    A person is listed only if at least one entry is nonzero with the view's
    sign, so persons without entries never appear.
    """
    snapshots, warnings = _cached_read(
        cache,
        CacheKeys.PERSONS,
        session,
        "persons listing",
        lambda: transaction_store.load_person_snapshots(session),
    )
    today = today or dt.date.today()

    rows = [
        _person_row(p, view_mode, today)
        for p in snapshots
        if balance_service.is_eligible(p.transactions, view_mode)
        and (not search or _matches(p, search))
    ]
    return rows, warnings


def list_settled_records(
        session: Session,
        cache: ReadCache,
) -> tuple[list[dict], list[dict]]:
    """Archived settlements, newest first."""
    def load() -> list[dict]:
        return [
            {
                "id": r.id,
                "person_id": r.person_id,
                "person_name": r.person_name,
                "total_amount": str(r.total_amount),
                "type": r.type.value,
                "settled_by_user_id": r.settled_by_user_id,
                "settled_by_user_name": r.settled_by_user_name,
                "transactions": list(r.transactions or []),
                "settled_at": r.settled_at.isoformat() if r.settled_at else None,
                "notes": r.notes,
            }
            for r in transaction_store.list_settled_records(session)
        ]

    return _cached_read(cache, CacheKeys.SETTLED_RECORDS, session, "settled listing", load)


def list_activity(
        session: Session,
        cache: ReadCache,
        limit: int = 100,
) -> tuple[list[dict], list[dict]]:
    """Activity trail, newest first. Callers must gate this to admins."""
    def load() -> list[dict]:
        return [
            {
                "id": a.id,
                "timestamp": a.created_at.isoformat() if a.created_at else None,
                "user_id": a.user_id,
                "user_name": a.user_name,
                "action": a.action.value,
                "category": a.category.value,
                "description": a.description,
                "person_id": a.person_id,
                "person_name": a.person_name,
                "transaction_id": a.transaction_id,
                "amount": str(a.amount) if a.amount is not None else None,
            }
            for a in audit_service.list_activity(session, limit)
        ]

    return _cached_read(cache, CacheKeys.ACTIVITY_LOGS, session, "activity listing", load)


# ── Persons ────────────────────────────────────────────────────────────────

def find_or_create_person(
        name: str,
        session: Session,
        cache: ReadCache,
        signature: str | None = None,
) -> dict:
    """Returns {"id", "name", "exists"}. A new person has no entries yet."""
    with store_errors(session, "person lookup"):
        person, created = transaction_store.find_or_create_person(name, session, signature)
        payload = {"id": person.id, "name": person.name, "exists": not created}
        if created:
            session.commit()

    if created:
        cache.invalidate(CacheKeys.PERSONS)
    return payload


def delete_person(
        person_id: str,
        view_mode: ViewMode,
        actor: Actor,
        session: Session,
        cache: ReadCache,
        currency: str = DEFAULT_CURRENCY,
) -> dict:
    """
    Removes a person and every entry, without archiving.

    Raises:
        AppError(PERSON_NOT_FOUND, 404)
        AppError(STORE_UNAVAILABLE, 503)
    """
    with store_errors(session, "delete person"):
        person = transaction_store.get_person_or_404(person_id, session)
        person_name = person.name
        balance = balance_service.compute_balance(
            transaction_store.get_transactions_for_person(person_id, session),
            view_mode,
        )
        transaction_store.delete_person_records(person_id, session)
        session.commit()

    cache.invalidate(CacheKeys.PERSONS)

    _audit(
        session, cache, actor, ActivityAction.DELETE, view_mode,
        f"{actor.name} deleted {person_name} and all of their transactions "
        f"({format_amount(balance, currency)} outstanding).",
        person_name=person_name,
        amount=balance,
        person_id=person_id,
    )
    return {"deleted": True, "person_id": person_id}


# ── Transactions ───────────────────────────────────────────────────────────

def add_transaction(
        data: dict,
        actor: Actor,
        session: Session,
        cache: ReadCache,
        currency: str = DEFAULT_CURRENCY,
) -> dict:
    """
    Records a new debt for `data["person_name"]`, creating the person on
    first use.

    Args:
        data: Validated dict from CreateTransactionSchema. `amount` is the
              nonnegative magnitude; its sign comes from `view_mode`.

    A zero amount is stored already settled.
    """
    view_mode: ViewMode = data["view_mode"]
    signed = balance_service.signed_for_view(data["amount"], view_mode)

    with store_errors(session, "add transaction"):
        person, created = transaction_store.find_or_create_person(
            data["person_name"], session, data.get("signature"),
        )
        txn = transaction_store.insert_transaction(
            session,
            person_id=person.id,
            description=data["description"],
            comment=data.get("comment"),
            amount=signed,
            original_amount=abs(signed),
            date=data.get("date") or dt.date.today(),
            due_date=data.get("due_date"),
            settled=signed == 0,
            is_payment=False,
            signature=data.get("signature"),
            type=view_mode,
            created_by=actor.id,
        )
        snapshot = TransactionSnapshot.from_model(txn)
        person_id, person_name = person.id, person.name
        session.commit()

    cache.invalidate(CacheKeys.PERSONS)

    _audit(
        session, cache, actor, ActivityAction.CREATE, view_mode,
        f"{actor.name} created a new transaction of "
        f"{format_amount(signed, currency)} for {person_name} ({data['description']}).",
        person_name=person_name,
        amount=signed,
        person_id=person_id,
        transaction_id=snapshot.id,
    )
    return {
        "person": {"id": person_id, "name": person_name, "created": created},
        "transaction": snapshot.to_dict(),
    }


def record_payment(
        person_id: str,
        data: dict,
        actor: Actor,
        session: Session,
        cache: ReadCache,
        currency: str = DEFAULT_CURRENCY,
) -> tuple[dict, list[dict]]:
    """
    Records a payment against a person's balance, stored with the sign
    opposite to the view's debt polarity.

    If the resulting balance is within EPSILON of zero the person is
    auto-settled; the archive records the balance before the payment, and
    the payment is committed together with the archive.

    Overpayment is allowed and returns an OVERPAYMENT warning.

    Raises:
        AppError(PERSON_NOT_FOUND, 404)
        AppError(STORE_UNAVAILABLE, 503)
        AppError(ARCHIVE_FAILED, 503)  -- the payment is rolled back too.
    """
    view_mode: ViewMode = data["view_mode"]
    amount: Decimal = data["amount"]
    warnings: list[dict] = []

    with store_errors(session, "record payment"):
        person = transaction_store.get_person_or_404(person_id, session)
        person_name = person.name
        transactions = transaction_store.get_transactions_for_person(person_id, session)
        before = balance_service.compute_balance(transactions, view_mode)
        before_signed = balance_service.signed_total(transactions)

        payment = transaction_store.insert_transaction(
            session,
            person_id=person_id,
            description=data.get("description") or "Payment",
            comment=data.get("comment") or "Payment",
            amount=balance_service.payment_for_view(amount, view_mode),
            original_amount=amount,
            date=data.get("date") or dt.date.today(),
            settled=False,
            is_payment=True,
            signature=data.get("signature"),
            type=view_mode,
            created_by=actor.id,
        )
        snapshot = TransactionSnapshot.from_model(payment)

    if amount > before:
        warnings.append({
            "code": WarningCode.OVERPAYMENT,
            "message": (
                f"Payment of {format_amount(amount, currency)} exceeds the outstanding "
                f"balance of {format_amount(before, currency)} for {person_name}. "
                f"Recording anyway."
            ),
        })

    after_signed = balance_service.normalize(before_signed + snapshot.amount)
    settlement = None

    if after_signed == 0:
        settlement = settlement_service.settle_person(
            person_id,
            view_mode,
            actor,
            session,
            cache,
            total_amount=before,
            notes=f"Settled via full payment of {format_amount(amount, currency)}",
        )
        warnings.extend(settlement.warnings)
        description = (
            f"{actor.name} recorded a payment of {format_amount(amount, currency)} "
            f"for {person_name} and settled the account. All transactions were archived."
        )
    else:
        _commit(session, "record payment")
        cache.invalidate(CacheKeys.PERSONS)
        description = (
            f"{actor.name} recorded a payment of {format_amount(amount, currency)} "
            f"for {person_name}."
        )

    _audit(
        session, cache, actor, ActivityAction.PAYMENT, view_mode, description,
        person_name=person_name,
        amount=amount,
        person_id=person_id,
        transaction_id=snapshot.id,
    )
    return {
        "payment": snapshot.to_dict(),
        "balance": str(abs(after_signed)),
        "settled": settlement is not None,
        "settlement": settlement.to_dict() if settlement else None,
    }, warnings


def direct_edit(
        person_id: str,
        data: dict,
        actor: Actor,
        session: Session,
        cache: ReadCache,
        currency: str = DEFAULT_CURRENCY,
) -> tuple[dict, list[dict]]:
    """
    Sets a person's displayed balance to `data["amount"]` by inserting one
    adjustment entry. A no-op edit persists nothing.

    The reconciler never settles. When the adjustment brings the balance to
    zero, this facade runs the settlement engine, archiving the balance that
    existed before the edit.

    Raises:
        AppError(PERSON_NOT_FOUND, 404)
        AppError(INVALID_AMOUNT, 400)
        AppError(STORE_UNAVAILABLE, 503)
        AppError(ARCHIVE_FAILED, 503)
    """
    view_mode: ViewMode = data["view_mode"]
    target: Decimal = data["amount"]

    with store_errors(session, "direct edit"):
        person = transaction_store.get_person_or_404(person_id, session)
        person_name = person.name
        transactions = transaction_store.get_transactions_for_person(person_id, session)
        before = balance_service.compute_balance(transactions, view_mode)
        before_signed = balance_service.signed_total(transactions)

        adjustment = reconciler_service.reconcile(
            person_id, target, view_mode, session, actor_id=actor.id,
        )
        snapshot = TransactionSnapshot.from_model(adjustment) if adjustment else None

    if snapshot is None:
        return {
            "adjustment": None,
            "balance": str(before),
            "settled": False,
            "settlement": None,
        }, []

    after_signed = balance_service.normalize(before_signed + snapshot.amount)
    warnings: list[dict] = []
    settlement = None

    if after_signed == 0:
        settlement = settlement_service.settle_person(
            person_id,
            view_mode,
            actor,
            session,
            cache,
            total_amount=before,
            notes="Settled via direct balance edit",
        )
        warnings.extend(settlement.warnings)
    else:
        _commit(session, "direct edit")
        cache.invalidate(CacheKeys.PERSONS)

    _audit(
        session, cache, actor, ActivityAction.EDIT, view_mode,
        f"{actor.name} changed the balance of {person_name} from "
        f"{format_amount(before, currency)} to {format_amount(target, currency)}.",
        person_name=person_name,
        amount=snapshot.amount,
        person_id=person_id,
        transaction_id=snapshot.id,
    )
    return {
        "adjustment": snapshot.to_dict(),
        "balance": str(abs(after_signed)),
        "settled": settlement is not None,
        "settlement": settlement.to_dict() if settlement else None,
    }, warnings


# ── Settlement ─────────────────────────────────────────────────────────────

def settle_now(
        person_id: str,
        data: dict,
        actor: Actor,
        session: Session,
        cache: ReadCache,
        currency: str = DEFAULT_CURRENCY,
) -> tuple[dict, list[dict]]:
    """
    Forces a person's balance to zero regardless of the remaining amount.
    Settling a person that no longer exists raises PERSON_NOT_FOUND and
    writes nothing.
    """
    view_mode: ViewMode = data["view_mode"]
    result = settlement_service.settle_person(
        person_id,
        view_mode,
        actor,
        session,
        cache,
        notes=data.get("notes"),
    )

    _audit(
        session, cache, actor, ActivityAction.SETTLE, view_mode,
        f"{actor.name} settled the account of {result.person_name} "
        f"({format_amount(result.total_amount, currency)}). All transactions were archived.",
        person_name=result.person_name,
        amount=result.total_amount,
        person_id=person_id,
    )
    return result.to_dict(), result.warnings


def settle_transaction(
        transaction_id: str,
        actor: Actor,
        session: Session,
        cache: ReadCache,
        currency: str = DEFAULT_CURRENCY,
) -> dict:
    """Zeroes a single entry; see settlement_service.settle_transaction."""
    with store_errors(session, "settle transaction"):
        txn, previous = settlement_service.settle_transaction(transaction_id, session)
        snapshot = TransactionSnapshot.from_model(txn)
        person_name = txn.person.name
        session.commit()

    cache.invalidate(CacheKeys.PERSONS)

    _audit(
        session, cache, actor, ActivityAction.SETTLE, snapshot.type,
        f"{actor.name} settled the transaction \"{snapshot.description}\" for "
        f"{person_name} ({format_amount(previous, currency)}).",
        person_name=person_name,
        amount=previous,
        person_id=snapshot.person_id,
        transaction_id=snapshot.id,
    )
    return snapshot.to_dict()


def unsettle_transaction(
        transaction_id: str,
        actor: Actor,
        session: Session,
        cache: ReadCache,
        currency: str = DEFAULT_CURRENCY,
) -> dict:
    """Restores a single settled entry; archives are never unsettled."""
    with store_errors(session, "unsettle transaction"):
        txn, restored = settlement_service.unsettle_transaction(transaction_id, session)
        snapshot = TransactionSnapshot.from_model(txn)
        person_name = txn.person.name
        session.commit()

    cache.invalidate(CacheKeys.PERSONS)

    _audit(
        session, cache, actor, ActivityAction.UNSETTLE, snapshot.type,
        f"{actor.name} cancelled the settlement of the transaction "
        f"\"{snapshot.description}\" for {person_name} "
        f"({format_amount(restored, currency)}).",
        person_name=person_name,
        amount=restored,
        person_id=snapshot.person_id,
        transaction_id=snapshot.id,
    )
    return snapshot.to_dict()
