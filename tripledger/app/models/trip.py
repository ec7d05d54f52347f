"""
models/trip.py — Trip table definition.

A trip is the scope for expenses, settlements and balances. Trip CRUD lives
in the host application; this model only carries what the ledger needs.

FK policy: owner_user_id ON DELETE RESTRICT.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tripledger.app.extensions import db


class Trip(db.Model):
    __tablename__ = "trips"

    __table_args__ = (
        CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_trips_name_nonempty"),
        CheckConstraint("LENGTH(currency) = 3", name="ck_trips_currency_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    owner_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Every expense and settlement in the trip is booked in this currency.
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
        server_default="USD",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    owner: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[owner_user_id],
    )

    members: Mapped[list["TripMember"]] = relationship(  # noqa: F821
        "TripMember",
        back_populates="trip",
        cascade="all, delete-orphan",
    )

    expenses: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="trip",
    )

    settlements: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="trip",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Trip id={self.id} name={self.name!r} currency={self.currency}>"
