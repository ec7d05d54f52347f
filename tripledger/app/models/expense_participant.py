"""
models/expense_participant.py — One participant's share of an expense.

No business logic. No imports from services or routes.

Key design points:
  - `share` is the materialized, rounded amount this participant owes. It is
    always written together with the split detail by expense_service and is
    never edited on its own.
  - The split detail is a tagged variant keyed by Expense.split_method; only
    the columns of the active variant are populated:
        equal       split_count
        percentage  percentage
        shares      share_weight, total_weight
        custom      custom_amount
    The commit guard re-derives the split from these raw columns, not from
    `share`.
  - UNIQUE(expense_id, user_id): a user appears at most once per expense.
  - expense_id ON DELETE CASCADE — participants are owned by their expense.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tripledger.app.extensions import db


class ExpenseParticipant(db.Model):
    __tablename__ = "expense_participants"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_expense_participants_expense_user"),
        CheckConstraint("share >= 0", name="ck_expense_participants_share_nonnegative"),
        CheckConstraint(
            "percentage IS NULL OR (percentage >= 0 AND percentage <= 100)",
            name="ck_expense_participants_percentage_range",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Input order of the participant list.
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    share: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # ── Split detail columns ───────────────────────────────────────────────

    split_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    percentage: Mapped[Decimal | None] = mapped_column(Numeric(9, 4), nullable=True)

    share_weight: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)

    total_weight: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    custom_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    settled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="participants",
    )

    user: Mapped["User"] = relationship("User")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseParticipant id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id} "
            f"share={self.share} settled={self.settled}>"
        )
