"""
services/settlement_validator.py — Last check before an expense or settlement
is committed.

validate_before_commit() re-derives the split from the expense's current
amount, split method and the participants' raw split-detail columns. It does
not look at the materialized `share` values: those may be stale after a
partial edit, which is exactly what this guard exists to catch.

register_commit_guard() hooks both validators into SQLAlchemy's
before_flush event. Raising from there aborts the flush, so an expense is
either written with its complete participant list or not at all.

The validators take duck-typed objects (anything with the right attributes)
so they can be unit-tested without a database.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.orm import Session

from tripledger.app.errors import AppError, ErrorCode, InvalidAmount, SplitError
from tripledger.app.services.money import to_decimal
from tripledger.app.services.split_calculator import (
    ParticipantInput,
    SplitStrategy,
    compute_shares,
)

logger = logging.getLogger(__name__)


def participant_split_value(participant, strategy: SplitStrategy) -> Decimal | None:
    """Returns the raw split input stored on a participant row for `strategy`."""
    strategy = SplitStrategy(strategy)
    if strategy == SplitStrategy.PERCENTAGE:
        return participant.percentage
    if strategy == SplitStrategy.SHARES:
        return participant.share_weight
    if strategy == SplitStrategy.CUSTOM:
        return participant.custom_amount
    return None


def validate_before_commit(expense) -> None:
    """
    Raises a SplitError if `expense` violates any split invariant.

    Checks, in order: amount is positive with at most 2 decimal places,
    participants are non-empty, no participant appears twice, and the
    strategy-specific sum rule (percentages ≈ 100, weights > 0, custom
    amounts ≈ amount). The payer may also be a participant.
    """
    inputs = [
        ParticipantInput(
            user_id=p.user_id,
            value=participant_split_value(p, expense.split_method),
        )
        for p in expense.participants
    ]
    compute_shares(
        expense.amount,
        expense.split_method,
        inputs,
        currency=getattr(expense, "currency", None) or "USD",
    )


def validate_settlement(settlement) -> None:
    """Raises if a settlement pays itself or moves a non-positive amount."""
    if settlement.from_user_id == settlement.to_user_id:
        raise AppError(
            ErrorCode.SELF_SETTLEMENT,
            "A settlement cannot be made to yourself.",
            422,
            field="to_user_id",
        )

    try:
        amount = to_decimal(settlement.amount)
    except ValueError:
        raise InvalidAmount(settlement.amount)
    if amount <= 0:
        raise InvalidAmount(
            settlement.amount,
            reason=f"Settlement amount ({amount}) must be greater than zero.",
        )


# ── SQLAlchemy commit guard ────────────────────────────────────────────────

def _guard_flush(session: Session, flush_context, instances) -> None:
    # Local imports: models import the split calculator, not the other way round.
    from tripledger.app.models.expense import Expense
    from tripledger.app.models.expense_participant import ExpenseParticipant
    from tripledger.app.models.settlement import Settlement

    expenses: dict[int, Expense] = {}

    with session.no_autoflush:
        for obj in list(session.new) + list(session.dirty):
            if isinstance(obj, Expense):
                expenses[id(obj)] = obj
            elif isinstance(obj, ExpenseParticipant) and obj.expense is not None:
                expenses[id(obj.expense)] = obj.expense
            elif isinstance(obj, Settlement):
                validate_settlement(obj)

        for expense in expenses.values():
            if expense in session.deleted:
                continue
            try:
                validate_before_commit(expense)
            except SplitError as exc:
                logger.warning(
                    "Rejected commit of expense %s: %s (%s)",
                    expense.id, exc.message, exc.code,
                )
                raise


def register_commit_guard(target=Session) -> None:
    """Installs the before_flush guard on `target` (all sessions by default)."""
    if not event.contains(target, "before_flush", _guard_flush):
        event.listen(target, "before_flush", _guard_flush)
