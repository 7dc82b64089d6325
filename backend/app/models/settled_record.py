"""
models/settled_record.py — SettledRecord (archive) table definition.

No business logic. No imports from services or routes.

Key design points:
  - Written once by the settlement engine, before the person's active rows are
    deleted. Never updated and never deleted by normal flow.
  - `person_id` is NOT a foreign key: the person row is gone after settlement,
    and the archive must outlive it. `person_name` is denormalised for the
    same reason.
  - `transactions` is a JSON column holding a frozen, ordered copy of the
    person's entries at settlement time (plain dicts, amounts as strings).
  - `total_amount` is the absolute balance immediately before the zeroing
    operation.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Enum, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db
from backend.app.models.transaction import ViewMode, _enum_values


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SettledRecord(db.Model):
    __tablename__ = "settled_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    person_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    person_name: Mapped[str] = mapped_column(String(120), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    type: Mapped[ViewMode] = mapped_column(
        Enum(
            ViewMode,
            name="view_mode_enum",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    settled_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    settled_by_user_name: Mapped[str | None] = mapped_column(String(120), nullable=True)

    transactions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    settled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        index=True,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<SettledRecord id={self.id} "
            f"person={self.person_name!r} "
            f"total={self.total_amount} "
            f"type={self.type.value if self.type else None}>"
        )
