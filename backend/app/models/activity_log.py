"""
models/activity_log.py — Audit trail table definition.

Rows are written by audit_service after each successful ledger mutation and
read back only by admins. No business logic here.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Enum, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db
from backend.app.models.transaction import ViewMode, _enum_values


class ActivityAction(str, enum.Enum):
    CREATE   = "create"
    EDIT     = "edit"
    DELETE   = "delete"
    SETTLE   = "settle"
    PAYMENT  = "payment"
    UNSETTLE = "unsettle"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityLog(db.Model):
    __tablename__ = "activity_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_name: Mapped[str] = mapped_column(String(120), nullable=False)

    action: Mapped[ActivityAction] = mapped_column(
        Enum(
            ActivityAction,
            name="activity_action_enum",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    category: Mapped[ViewMode] = mapped_column(
        Enum(
            ViewMode,
            name="view_mode_enum",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Not foreign keys: the person or entry may be archived and deleted later.
    person_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    person_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        index=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ActivityLog id={self.id} "
            f"action={self.action.value if self.action else None} "
            f"user={self.user_id!r}>"
        )
