"""
services/audit_service.py — Activity trail writer and reader.

The ledger calls record_activity() after each successful mutation. The call
is fire-and-forget: the mutation has already been committed, and a failure
to write the trail is logged and reported as False, never raised. Nothing in
the ledger depends on the trail.

Who may READ the trail (admins only) is decided by the route, not here.

Layer rules:
  - No Flask imports. Receives a Session and an Actor.
  - record_activity() owns its own commit so that a failed audit write can
    be rolled back without touching the caller's already-committed work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models.activity_log import ActivityAction, ActivityLog
from backend.app.models.transaction import ViewMode
from backend.app.services.read_cache import CacheKeys, ReadCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Opaque identity supplied by the identity collaborator."""
    id: str
    name: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def format_amount(amount: Decimal, currency: str) -> str:
    """'FCFA 1,250.00' style text for human-readable descriptions."""
    return f"{currency} {abs(amount):,.2f}"


def record_activity(
        session: Session,
        actor: Actor,
        action: ActivityAction,
        view_mode: ViewMode,
        description: str,
        person_name: str | None = None,
        amount: Decimal | None = None,
        person_id: str | None = None,
        transaction_id: str | None = None,
        cache: ReadCache | None = None,
) -> bool:
    """
    Persists one trail entry. Returns True on success, False if the store
    rejected it (logged at WARNING).
    """
    entry = ActivityLog(
        user_id=actor.id,
        user_name=actor.name,
        action=action,
        category=view_mode,
        description=description,
        person_id=person_id,
        person_name=person_name,
        transaction_id=transaction_id,
        amount=abs(amount) if amount is not None else None,
    )
    try:
        session.add(entry)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning(
            "Activity log write failed (action=%s, person=%s): %s",
            action.value, person_name, exc,
        )
        return False

    if cache is not None:
        cache.invalidate(CacheKeys.ACTIVITY_LOGS)
    return True


def list_activity(session: Session, limit: int = 100) -> list[ActivityLog]:
    """Most recent entries first."""
    stmt = (
        select(ActivityLog)
        .order_by(ActivityLog.created_at.desc())
        .limit(limit)
    )
    return list(session.execute(stmt).scalars().all())
