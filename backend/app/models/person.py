"""
models/person.py — Person (counterparty) table definition.

No business logic. No imports from services or routes.

Key design points:
  - `id` is an opaque UUID string assigned at creation.
  - `name` is unique case-insensitively among active persons; the store
    resolves names with LOWER(name) in find_or_create_person().
  - A person owns its transactions (cascade delete-orphan). Transactions have
    no lifecycle of their own.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Person(db.Model):
    __tablename__ = "persons"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_persons_name_nonempty",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        index=True,
    )

    # Opaque blob reference (e.g. a data URL). Stored, never interpreted.
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    transactions: Mapped[list["Transaction"]] = relationship(  # noqa: F821
        "Transaction",
        back_populates="person",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Transaction.date.desc()",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Person id={self.id} name={self.name!r}>"
