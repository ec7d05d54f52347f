"""
services/balance_service.py — Balance aggregation for a trip.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
The formula lives in aggregate_balances(); everything else loads rows and
formats results around it.

Balance of a user = (amount owed to the user) − (amount the user owes):
  1. The payer of an expense is credited the full amount they fronted.
  2. Each participant is debited their materialized share.
  3. Each COMPLETED settlement credits the sender and debits the receiver
     (paying off a debt moves the sender's balance up towards zero).
     Pending and cancelled settlements are ignored.
  4. Every trip member appears, 0.00 when untouched.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives trip_id (int) and session (SQLAlchemy Session) as arguments.
  - Returns plain Python dicts and lists.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tripledger.app.models.expense import Expense
from tripledger.app.models.settlement import Settlement, SettlementStatus
from tripledger.app.models.user import User
from tripledger.app.services.debt_simplifier import balances_from_mapping, simplify_debts
from tripledger.app.services.money import DEFAULT_EPSILON, ZERO, round_money
from tripledger.app.services.trip_access import (
    get_accessible_trip,
    get_member_ids,
    get_trip_or_404,
)


# ── Data access helpers ────────────────────────────────────────────────────

def get_trip_expenses(trip_id: int, session: Session) -> list[Expense]:
    """Returns every expense of a trip with its participants loaded."""
    stmt = (
        select(Expense)
        .where(Expense.trip_id == trip_id)
        .options(selectinload(Expense.participants))
    )
    return list(session.execute(stmt).scalars().all())


def get_trip_settlements(trip_id: int, session: Session) -> list[Settlement]:
    """Returns every settlement of a trip, whatever its status."""
    stmt = select(Settlement).where(Settlement.trip_id == trip_id)
    return list(session.execute(stmt).scalars().all())


def get_user_names(user_ids: Iterable[int], session: Session) -> dict[int, str]:
    """Resolves user ids to display names; unknown ids are simply absent."""
    ids = list(user_ids)
    if not ids:
        return {}
    stmt = select(User.id, User.name).where(User.id.in_(ids))
    return {row.id: row.name for row in session.execute(stmt).all()}


def _display_name(names: dict[int, str], user_id: int) -> str:
    return names.get(user_id, f"user_{user_id}")


# ── Core algorithm ─────────────────────────────────────────────────────────

def aggregate_balances(
        expenses: Iterable,
        settlements: Iterable,
        member_ids: Iterable[int] = (),
) -> dict[int, Decimal]:
    """
    Nets expenses and completed settlements into one balance per user.

    Takes duck-typed rows so it can be exercised without a database:
      expense:    paid_by_user_id, amount, participants[*].user_id / .share
      settlement: from_user_id, to_user_id, amount, status

    Returns {user_id: balance}, balances quantized to cents.
    """
    balances: dict[int, Decimal] = defaultdict(lambda: ZERO)

    for expense in expenses:
        balances[expense.paid_by_user_id] += Decimal(expense.amount)
        for participant in expense.participants:
            balances[participant.user_id] -= Decimal(participant.share)

    for settlement in settlements:
        if SettlementStatus(settlement.status) != SettlementStatus.COMPLETED:
            continue
        balances[settlement.from_user_id] += Decimal(settlement.amount)
        balances[settlement.to_user_id] -= Decimal(settlement.amount)

    for member_id in member_ids:
        balances.setdefault(member_id, ZERO)

    return {user_id: round_money(amount) for user_id, amount in balances.items()}


def compute_balances(trip_id: int, session: Session) -> dict[int, Decimal]:
    """Loads a trip's expenses, settlements and members and aggregates them."""
    trip = get_trip_or_404(trip_id, session)
    return aggregate_balances(
        get_trip_expenses(trip.id, session),
        get_trip_settlements(trip.id, session),
        get_member_ids(trip, session),
    )


# ── Response builders ──────────────────────────────────────────────────────

def get_balance_response(
        trip_id: int,
        caller_id: int,
        session: Session,
        epsilon: Decimal = DEFAULT_EPSILON,
) -> dict:
    """
    Builds the payload for GET /trips/:trip_id/balances.

    balance_sum may be non-zero: equal splits keep remainder cents, so
    100.00 split three ways leaves 0.01. The simplifier reports drift beyond
    epsilon as a BALANCE_SUM_MISMATCH warning; it is not an error.

    Raises:
        AppError(TRIP_NOT_FOUND, 404) — trip does not exist.
        AppError(FORBIDDEN, 403)      — caller has no access to the trip.
    """
    trip = get_accessible_trip(trip_id, caller_id, session)
    balances = compute_balances(trip.id, session)
    names = get_user_names(balances.keys(), session)

    transfers, warnings = simplify_debts(balances_from_mapping(balances), epsilon)

    return {
        "trip_id": trip.id,
        "currency": trip.currency,
        "balances": [
            {
                "user_id": user_id,
                "name": _display_name(names, user_id),
                "balance": balance,
            }
            for user_id, balance in balances.items()
        ],
        "balance_sum": sum(balances.values(), ZERO),
        "simplified_debts": [
            {
                **transfer.to_dict(),
                "from_name": _display_name(names, transfer.from_user_id),
                "to_name": _display_name(names, transfer.to_user_id),
            }
            for transfer in transfers
        ],
        "warnings": warnings,
    }


def get_trip_summary(trip_id: int, caller_id: int, session: Session) -> dict:
    """
    Builds the payload for GET /trips/:trip_id/expenses/summary.

    unsettled_amount is the sum of all positive balances: what is still owed
    to creditors across the trip.
    """
    trip = get_accessible_trip(trip_id, caller_id, session)

    expenses = get_trip_expenses(trip.id, session)
    balances = aggregate_balances(
        expenses,
        get_trip_settlements(trip.id, session),
        get_member_ids(trip, session),
    )
    names = get_user_names(balances.keys(), session)

    total_amount = sum((Decimal(e.amount) for e in expenses), ZERO)
    unsettled_amount = sum((b for b in balances.values() if b > 0), ZERO)

    return {
        "trip_id": trip.id,
        "currency": trip.currency,
        "expense_count": len(expenses),
        "total_amount": round_money(total_amount),
        "per_person_balances": [
            {
                "user_id": user_id,
                "name": _display_name(names, user_id),
                "balance": balance,
            }
            for user_id, balance in balances.items()
        ],
        "unsettled_amount": round_money(unsettled_amount),
    }
