"""Initial schema — all tables, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-18

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order (FK dependency order):
  users → trips → trip_members → expenses → expense_participants → settlements

Enums are VARCHAR(20) + CHECK rather than PostgreSQL ENUM types, matching
the models (Enum(..., native_enum=False)), so the same schema also runs on
SQLite.

ON DELETE policies:
  trips.owner_user_id               → RESTRICT
  trip_members.trip_id              → CASCADE   (membership owned by trip)
  trip_members.user_id              → RESTRICT
  expenses.*                        → RESTRICT
  expense_participants.expense_id   → CASCADE   (participants owned by expense)
  expense_participants.user_id      → RESTRICT
  settlements.*                     → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


_SPLIT_METHODS = ("equal", "percentage", "shares", "custom")
_CATEGORIES = ("food", "transport", "accommodation", "activities", "shopping", "other")
_SETTLEMENT_METHODS = ("cash", "bank_transfer", "other")
_SETTLEMENT_STATUSES = ("pending", "completed", "cancelled")


def _in_check(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


def upgrade() -> None:

    # ── Step 1: users ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_users_name_nonempty"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
    )

    # ── Step 2: trips ──────────────────────────────────────────────────────

    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "owner_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_trips_owner"),
            nullable=False,
        ),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_trips"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_trips_name_nonempty"),
        sa.CheckConstraint("LENGTH(currency) = 3", name="ck_trips_currency_code"),
    )

    # ── Step 3: trip_members ───────────────────────────────────────────────

    op.create_table(
        "trip_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "trip_id",
            sa.Integer(),
            sa.ForeignKey("trips.id", ondelete="CASCADE", name="fk_trip_members_trip"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_trip_members_user"),
            nullable=False,
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_trip_members"),
        sa.UniqueConstraint("trip_id", "user_id", name="uq_trip_members_trip_user"),
    )

    # ── Step 4: expenses ───────────────────────────────────────────────────

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "trip_id",
            sa.Integer(),
            sa.ForeignKey("trips.id", ondelete="RESTRICT", name="fk_expenses_trip"),
            nullable=False,
        ),
        sa.Column(
            "paid_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_expenses_payer"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("split_method", sa.String(20), nullable=False),
        sa.Column("category", sa.String(20), nullable=False, server_default="other"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint("LENGTH(TRIM(title)) > 0", name="ck_expenses_title_nonempty"),
        sa.CheckConstraint(
            _in_check("split_method", _SPLIT_METHODS),
            name="ck_expenses_split_method",
        ),
        sa.CheckConstraint(
            _in_check("category", _CATEGORIES),
            name="ck_expenses_category",
        ),
    )

    # ── Step 5: expense_participants ───────────────────────────────────────
    # Only the split-detail columns of the expense's split_method are set.

    op.create_table(
        "expense_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey(
                "expenses.id",
                ondelete="CASCADE",
                name="fk_expense_participants_expense",
            ),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey(
                "users.id",
                ondelete="RESTRICT",
                name="fk_expense_participants_user",
            ),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("share", sa.Numeric(12, 2), nullable=False),
        sa.Column("split_count", sa.Integer(), nullable=True),
        sa.Column("percentage", sa.Numeric(9, 4), nullable=True),
        sa.Column("share_weight", sa.Numeric(12, 4), nullable=True),
        sa.Column("total_weight", sa.Numeric(14, 4), nullable=True),
        sa.Column("custom_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("settled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id", name="pk_expense_participants"),
        sa.UniqueConstraint(
            "expense_id", "user_id",
            name="uq_expense_participants_expense_user",
        ),
        sa.CheckConstraint("share >= 0", name="ck_expense_participants_share_nonnegative"),
        sa.CheckConstraint(
            "percentage IS NULL OR (percentage >= 0 AND percentage <= 100)",
            name="ck_expense_participants_percentage_range",
        ),
    )

    # ── Step 6: settlements ────────────────────────────────────────────────

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "trip_id",
            sa.Integer(),
            sa.ForeignKey("trips.id", ondelete="RESTRICT", name="fk_settlements_trip"),
            nullable=False,
        ),
        sa.Column(
            "from_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlements_from"),
            nullable=False,
        ),
        sa.Column(
            "to_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlements_to"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_settlements_no_self_settlement",
        ),
        sa.CheckConstraint(
            _in_check("method", _SETTLEMENT_METHODS),
            name="ck_settlements_method",
        ),
        sa.CheckConstraint(
            _in_check("status", _SETTLEMENT_STATUSES),
            name="ck_settlements_status",
        ),
    )

    # ── Step 7: indexes ────────────────────────────────────────────────────

    op.create_index("ix_trip_members_trip_id", "trip_members", ["trip_id"])
    op.create_index("ix_trip_members_user_id", "trip_members", ["user_id"])
    op.create_index("ix_expenses_trip_id", "expenses", ["trip_id"])
    op.create_index("ix_expenses_paid_by_user_id", "expenses", ["paid_by_user_id"])
    op.create_index("ix_expenses_date", "expenses", ["date"])
    op.create_index("ix_expense_participants_expense_id", "expense_participants", ["expense_id"])
    op.create_index("ix_expense_participants_user_id", "expense_participants", ["user_id"])
    op.create_index("ix_settlements_trip_id", "settlements", ["trip_id"])
    op.create_index("ix_settlements_from_user_id", "settlements", ["from_user_id"])
    op.create_index("ix_settlements_to_user_id", "settlements", ["to_user_id"])
    op.create_index("ix_settlements_status", "settlements", ["status"])


def downgrade() -> None:
    """Drops everything in reverse dependency order."""
    op.drop_table("settlements")
    op.drop_table("expense_participants")
    op.drop_table("expenses")
    op.drop_table("trip_members")
    op.drop_table("trips")
    op.drop_table("users")
