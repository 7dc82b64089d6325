"""
models/transaction.py — Transaction (ledger entry) table definition.

No business logic beyond construction-time invariant checks. No imports from
services or routes.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float. Its sign encodes direction:
      positive  → counts toward "they owe me"
      negative  → counts toward "I owe them"
    A payment is stored with the opposite sign of the debt it reduces.
  - `settled=True` implies `amount == 0` exactly. Enforced at construction
    (AppError INVALID_AMOUNT) and by a DB CHECK as the final guard.
  - `original_amount` keeps the value a settled entry had before it was
    zeroed, so unsettle can restore it.
  - `type` records the view mode the entry was created under. It is never
    used in balance arithmetic.
  - ViewMode is a Python enum so it can be imported throughout the service
    layer without repeating string literals.
"""

from __future__ import annotations

import datetime as dt
import enum
import uuid
from decimal import Decimal, InvalidOperation

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────

class ViewMode(str, enum.Enum):
    """The two perspectives a ledger can be read from."""
    THEY_OWE_ME = "they-owe-me"
    I_OWE_THEM  = "i-owe-them"

    @property
    def sign(self) -> int:
        """+1 when debts under this view are stored positive, else -1."""
        return 1 if self is ViewMode.THEY_OWE_ME else -1


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g. 'they-owe-me'), not names."""
    return [member.value for member in enum_cls]


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _require_finite(value, field: str) -> Decimal:
    """Coerces `value` to Decimal and rejects NaN/Infinity."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise AppError(
            ErrorCode.INVALID_AMOUNT,
            f"{field} must be a finite number.",
            400,
            field=field,
        )
    if not amount.is_finite():
        raise AppError(
            ErrorCode.INVALID_AMOUNT,
            f"{field} must be a finite number.",
            400,
            field=field,
        )
    return amount


# ── Model ──────────────────────────────────────────────────────────────────

class Transaction(db.Model):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint(
            "settled = false OR amount = 0",
            name="ck_transactions_settled_is_zero",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    person_id: Mapped[str] = mapped_column(
        ForeignKey("persons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    original_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    due_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)

    settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    signature: Mapped[str | None] = mapped_column(Text, nullable=True)

    type: Mapped[ViewMode] = mapped_column(
        Enum(
            ViewMode,
            name="view_mode_enum",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=ViewMode.THEY_OWE_ME,
    )

    # Set by the actor who recorded the entry (opaque identity string).
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    person: Mapped["Person"] = relationship(  # noqa: F821
        "Person",
        back_populates="transactions",
    )

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        if self.settled is None:
            self.settled = False
        if self.is_payment is None:
            self.is_payment = False
        if self.amount is None:
            raise AppError(
                ErrorCode.INVALID_AMOUNT,
                "amount is required.",
                400,
                field="amount",
            )
        if self.settled and self.amount != 0:
            raise AppError(
                ErrorCode.INVALID_AMOUNT,
                "A settled transaction must have an amount of exactly 0.",
                400,
                field="amount",
            )

    @validates("amount", "original_amount")
    def _validate_amount(self, key: str, value):
        if value is None:
            return value
        return _require_finite(value, key)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Transaction id={self.id} "
            f"person_id={self.person_id} "
            f"amount={self.amount} "
            f"settled={self.settled}>"
        )
