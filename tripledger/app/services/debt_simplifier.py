"""
services/debt_simplifier.py — Greedy debt simplification.

Given net balances (positive = is owed, negative = owes) this produces a list
of direct transfers that brings every balance to zero.

Algorithm (two cursors over the balances sorted by signed amount, descending):
  i starts at the largest creditor, j at the largest debtor.
  Each step the debtor at j pays the creditor at i the smaller of the two
  magnitudes; whoever is fully settled is stepped past. The loop ends when
  the cursors meet. Every step retires at least one party, so n non-zero
  balances yield at most n - 1 transfers.

Epsilon (default 0.005, half a cent) is used three ways:
  - balances with |amount| <= epsilon are dropped up front;
  - a creditor and a debtor within epsilon of each other are treated as an
    exact match: the larger magnitude is paid and the sub-epsilon residual
    is dropped instead of surviving as a zero or negative transfer;
  - |Σ balances| > epsilon produces a BALANCE_SUM_MISMATCH warning.

Pure computation. No Flask, no SQLAlchemy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from tripledger.app.errors import WarningCode
from tripledger.app.services.money import DEFAULT_EPSILON, ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Balance:
    user_id: int
    amount: Decimal


@dataclass(frozen=True)
class Transfer:
    from_user_id: int
    to_user_id: int
    amount: Decimal

    def to_dict(self) -> dict:
        return {
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "amount": self.amount,
        }


def balances_from_mapping(balances: Mapping[int, Decimal]) -> list[Balance]:
    """Adapts the {user_id: amount} dict produced by balance_service."""
    return [Balance(user_id=uid, amount=amount) for uid, amount in balances.items()]


def simplify_debts(
        balances: Iterable[Balance],
        epsilon: Decimal = DEFAULT_EPSILON,
) -> tuple[list[Transfer], list[dict]]:
    """
    Computes a minimal-count list of transfers that zeroes every balance.

    Args:
        balances: Net balances. Expected to sum to ~0; this is not enforced.
        epsilon:  Amounts within epsilon are treated as equal / zero.

    Returns:
        (transfers, warnings). warnings is empty for a consistent ledger and
        holds one BALANCE_SUM_MISMATCH entry otherwise; the transfers are
        still the best-effort plan in that case.
    """
    epsilon = to_decimal(epsilon)
    rows = [(b.user_id, to_decimal(b.amount)) for b in balances]

    warnings: list[dict] = []
    delta = sum((amount for _, amount in rows), ZERO)
    if abs(delta) > epsilon:
        logger.warning("Balances handed to simplify_debts sum to %s, not zero", delta)
        warnings.append({
            "code": WarningCode.BALANCE_SUM_MISMATCH,
            "message": (
                f"Balances sum to {delta} instead of 0.00. "
                f"The proposed transfers are a best-effort plan."
            ),
            "delta": delta,
        })

    # Mutable [user_id, amount] pairs; sort is stable so ties keep input order.
    entries = [[uid, amount] for uid, amount in rows if abs(amount) > epsilon]
    entries.sort(key=lambda entry: entry[1], reverse=True)

    transfers: list[Transfer] = []
    i, j = 0, len(entries) - 1

    while i < j:
        creditor_id, credit = entries[i]
        debtor_id, debit = entries[j]

        # Only reachable when the input does not net to zero: one side ran out.
        if credit <= epsilon or debit >= -epsilon:
            break

        debt = -debit

        if abs(credit - debt) <= epsilon:
            amount = max(credit, debt)
            i += 1
            j -= 1
        elif credit > debt:
            amount = debt
            entries[i][1] = credit - debt
            j -= 1
        else:
            amount = credit
            entries[j][1] = debit + credit
            i += 1

        paid = round_money(amount)
        if paid > ZERO:
            transfers.append(Transfer(debtor_id, creditor_id, paid))

    return transfers, warnings
