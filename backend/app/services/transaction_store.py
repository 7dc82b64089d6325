"""
services/transaction_store.py — Persistence boundary for the ledger.

These helpers are the ONLY sanctioned way to read or write Person,
Transaction and SettledRecord rows. Every other service goes through them.

Layer rules:
  - No Flask imports. Receives a SQLAlchemy Session as an argument.
  - Writes only add + flush. Commit points belong to the caller (the ledger
    facade and the settlement engine, which must commit between its archive
    and delete steps).
  - Store failures surface as SQLAlchemyError; callers wrap store calls in
    store_errors() to turn them into STORE_UNAVAILABLE (503).

Snapshots:
  load_person_snapshots() returns frozen PersonSnapshot/TransactionSnapshot
  values rather than ORM objects, so the result can sit in the read cache
  across requests and sessions.
"""

from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterator

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.person import Person
from backend.app.models.settled_record import SettledRecord
from backend.app.models.transaction import Transaction, ViewMode

logger = logging.getLogger(__name__)


# ── Snapshots ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransactionSnapshot:
    id: str
    person_id: str
    amount: Decimal
    date: dt.date
    type: ViewMode
    description: str | None = None
    comment: str | None = None
    original_amount: Decimal | None = None
    due_date: dt.date | None = None
    settled: bool = False
    is_payment: bool = False
    signature: str | None = None
    created_at: dt.datetime | None = None

    @classmethod
    def from_model(cls, txn: Transaction) -> "TransactionSnapshot":
        return cls(
            id=txn.id,
            person_id=txn.person_id,
            amount=txn.amount,
            date=txn.date,
            type=txn.type,
            description=txn.description,
            comment=txn.comment,
            original_amount=txn.original_amount,
            due_date=txn.due_date,
            settled=bool(txn.settled),
            is_payment=bool(txn.is_payment),
            signature=txn.signature,
            created_at=txn.created_at,
        )

    def to_dict(self) -> dict:
        """JSON-safe dict. Amounts as strings, dates as ISO strings."""
        return {
            "id": self.id,
            "person_id": self.person_id,
            "description": self.description,
            "comment": self.comment,
            "amount": str(self.amount),
            "original_amount": (
                str(self.original_amount) if self.original_amount is not None else None
            ),
            "date": self.date.isoformat() if self.date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "settled": self.settled,
            "is_payment": self.is_payment,
            "signature": self.signature,
            "type": self.type.value if self.type else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class PersonSnapshot:
    id: str
    name: str
    signature: str | None = None
    transactions: tuple[TransactionSnapshot, ...] = field(default_factory=tuple)


# ── Error translation ──────────────────────────────────────────────────────

@contextmanager
def store_errors(session: Session, operation: str) -> Iterator[None]:
    """
    Rolls back and raises STORE_UNAVAILABLE (503) if the block raises
    SQLAlchemyError. AppError passes through untouched.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Store call failed during %s: %s", operation, exc)
        raise AppError(
            ErrorCode.STORE_UNAVAILABLE,
            f"The ledger store is unavailable ({operation}). Please retry.",
            503,
        ) from exc


# ── Persons ────────────────────────────────────────────────────────────────

def get_person_or_404(person_id: str, session: Session) -> Person:
    """Returns the Person or raises PERSON_NOT_FOUND (404)."""
    person = session.get(Person, person_id)
    if person is None:
        raise AppError(
            ErrorCode.PERSON_NOT_FOUND,
            f"Person {person_id} does not exist.",
            404,
        )
    return person


def find_person_by_name(name: str, session: Session) -> Person | None:
    """Case-insensitive lookup on the trimmed name."""
    stmt = select(Person).where(func.lower(Person.name) == name.strip().lower())
    return session.execute(stmt).scalars().first()


def find_or_create_person(
        name: str,
        session: Session,
        signature: str | None = None,
) -> tuple[Person, bool]:
    """
    Returns (person, created). An existing person matching `name`
    case-insensitively is reused; otherwise a new row is flushed.
    """
    existing = find_person_by_name(name, session)
    if existing is not None:
        return existing, False

    person = Person(name=name.strip(), signature=signature)
    session.add(person)
    session.flush()
    return person, True


# ── Transactions ───────────────────────────────────────────────────────────

def get_transaction_or_404(transaction_id: str, session: Session) -> Transaction:
    """Returns the Transaction or raises TRANSACTION_NOT_FOUND (404)."""
    txn = session.get(Transaction, transaction_id)
    if txn is None:
        raise AppError(
            ErrorCode.TRANSACTION_NOT_FOUND,
            f"Transaction {transaction_id} does not exist.",
            404,
        )
    return txn


def get_transactions_for_person(person_id: str, session: Session) -> list[Transaction]:
    """All of a person's transactions, oldest first."""
    stmt = (
        select(Transaction)
        .where(Transaction.person_id == person_id)
        .order_by(Transaction.date.asc(), Transaction.created_at.asc())
    )
    return list(session.execute(stmt).scalars().all())


def insert_transaction(session: Session, **fields) -> Transaction:
    """Adds and flushes a new Transaction; returns it with its id assigned."""
    txn = Transaction(**fields)
    session.add(txn)
    session.flush()
    return txn


def update_transaction_amount(
        txn: Transaction,
        session: Session,
        amount: Decimal,
        settled: bool,
        original_amount: Decimal | None = None,
) -> Transaction:
    """
    Rewrites a single entry's amount. Only the settle/unsettle steps call this.

    Attribute order keeps the settled => amount == 0 invariant intact at every
    flush: amount is zeroed before settled is raised, and settled is cleared
    before amount is restored.
    """
    if settled:
        if original_amount is not None:
            txn.original_amount = original_amount
        txn.amount = amount
        txn.settled = True
    else:
        txn.settled = False
        txn.amount = amount
    session.flush()
    return txn


def delete_person_records(person_id: str, session: Session) -> None:
    """
    Deletes every transaction of `person_id`, then the person row.
    Transactions go first so no entry is left pointing at a missing person.
    """
    session.execute(
        delete(Transaction)
        .where(Transaction.person_id == person_id)
        .execution_options(synchronize_session=False)
    )
    session.execute(
        delete(Person)
        .where(Person.id == person_id)
        .execution_options(synchronize_session=False)
    )
    session.flush()


def load_person_snapshots(session: Session) -> list[PersonSnapshot]:
    """
    Every person with their transactions (newest first), ordered by name.
    Two queries, grouped in Python.
    """
    persons = session.execute(
        select(Person).order_by(Person.name.asc())
    ).scalars().all()

    transactions = session.execute(
        select(Transaction).order_by(
            Transaction.date.desc(),
            Transaction.created_at.desc(),
        )
    ).scalars().all()

    by_person: dict[str, list[TransactionSnapshot]] = {}
    for txn in transactions:
        by_person.setdefault(txn.person_id, []).append(TransactionSnapshot.from_model(txn))

    return [
        PersonSnapshot(
            id=p.id,
            name=p.name,
            signature=p.signature,
            transactions=tuple(by_person.get(p.id, ())),
        )
        for p in persons
    ]


# ── Settled records ────────────────────────────────────────────────────────

def insert_settled_record(session: Session, **fields) -> SettledRecord:
    record = SettledRecord(**fields)
    session.add(record)
    session.flush()
    return record


def list_settled_records(session: Session) -> list[SettledRecord]:
    """All archives, newest first."""
    stmt = select(SettledRecord).order_by(SettledRecord.settled_at.desc())
    return list(session.execute(stmt).scalars().all())


def get_settled_records_for_person(person_id: str, session: Session) -> list[SettledRecord]:
    stmt = (
        select(SettledRecord)
        .where(SettledRecord.person_id == person_id)
        .order_by(SettledRecord.settled_at.desc())
    )
    return list(session.execute(stmt).scalars().all())
