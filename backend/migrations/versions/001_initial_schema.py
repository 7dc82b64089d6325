"""Initial schema — persons, transactions, settled_records, activity_logs.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. Tables in FK dependency order (persons → transactions), then the two
     tables with no foreign keys (settled_records, activity_logs)
  2. Indexes

View modes and activity actions are stored as VARCHAR (non-native enums),
so no database enum types are created.

ON DELETE policies:
  transactions.person_id    → CASCADE   (entries owned by their person)
  settled_records.person_id → no FK     (archive outlives the person)
  activity_logs.*           → no FK     (trail outlives persons and entries)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── Step 1: persons ────────────────────────────────────────────────────

    op.create_table(
        "persons",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("signature", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_persons"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_persons_name_nonempty",
        ),
    )

    # ── Step 2: transactions ───────────────────────────────────────────────
    # settled implies amount = 0 (also enforced when the row is constructed).

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column(
            "person_id",
            sa.String(36),
            sa.ForeignKey("persons.id", ondelete="CASCADE", name="fk_transactions_person"),
            nullable=False,
        ),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("original_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("settled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_payment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("signature", sa.Text(), nullable=True),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_transactions"),
        sa.CheckConstraint(
            "settled = false OR amount = 0",
            name="ck_transactions_settled_is_zero",
        ),
    )

    # ── Step 3: settled_records ────────────────────────────────────────────

    op.create_table(
        "settled_records",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("person_id", sa.String(36), nullable=False),
        sa.Column("person_name", sa.String(120), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("settled_by_user_id", sa.String(64), nullable=True),
        sa.Column("settled_by_user_name", sa.String(120), nullable=True),
        sa.Column("transactions", sa.JSON(), nullable=False),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_settled_records"),
    )

    # ── Step 4: activity_logs ──────────────────────────────────────────────

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("user_name", sa.String(120), nullable=False),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("category", sa.String(16), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("person_id", sa.String(36), nullable=True),
        sa.Column("person_name", sa.String(120), nullable=True),
        sa.Column("transaction_id", sa.String(36), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_activity_logs"),
    )

    # ── Step 5: Indexes ────────────────────────────────────────────────────
    # Names follow SQLAlchemy's ix_<table>_<column> so autogenerate sees no drift.

    op.create_index("ix_persons_name", "persons", ["name"])
    op.create_index("ix_transactions_person_id", "transactions", ["person_id"])
    op.create_index("ix_settled_records_person_id", "settled_records", ["person_id"])
    op.create_index("ix_settled_records_settled_at", "settled_records", ["settled_at"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    """Drop everything created in upgrade(), in reverse dependency order."""

    op.drop_index("ix_activity_logs_created_at",   table_name="activity_logs")
    op.drop_index("ix_settled_records_settled_at", table_name="settled_records")
    op.drop_index("ix_settled_records_person_id",  table_name="settled_records")
    op.drop_index("ix_transactions_person_id",     table_name="transactions")
    op.drop_index("ix_persons_name",               table_name="persons")

    op.drop_table("activity_logs")
    op.drop_table("settled_records")
    op.drop_table("transactions")
    op.drop_table("persons")
