"""
services/money.py — Shared numeric helpers for the split and settlement engine.

All monetary arithmetic in TripLedger happens on decimal.Decimal. Floats are
accepted at the boundary only and converted through str() so that 0.1 stays
0.1 instead of 0.1000000000000000055511151231257827.

Rounding convention: ROUND_HALF_UP on Decimal rounds half away from zero,
which is the usual currency convention (2.345 → 2.35, -2.345 → -2.35).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

# Tolerances for the per-strategy sum checks. Applied to unrounded sums.
PERCENTAGE_TOLERANCE = Decimal("0.1")
CUSTOM_AMOUNT_TOLERANCE = Decimal("0.01")

# Scale of the columns split inputs are stored in (expense_participants).
MONEY_PLACES = 2
PERCENTAGE_PLACES = 4
WEIGHT_PLACES = 4

# Default epsilon for treating a balance as settled in the debt simplifier.
# Half a cent: anything smaller cannot be paid in a 2-decimal currency.
DEFAULT_EPSILON = Decimal("0.005")


def to_decimal(value: object) -> Decimal:
    """
    Coerces int, float, str or Decimal to a finite Decimal.

    Raises ValueError for anything else (including bool, None, NaN and
    infinities). Callers translate that into their own error type.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{value!r} is not a number")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation as exc:
            raise ValueError(f"{value!r} is not a number") from exc
    else:
        raise ValueError(f"{value!r} is not a number")

    if not result.is_finite():
        raise ValueError(f"{value!r} is not a finite number")
    return result


def round_money(value: Decimal) -> Decimal:
    """Quantizes to cents, rounding half away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def decimal_places(value: Decimal) -> int:
    """Number of fractional digits actually written (Decimal("1.50") → 2)."""
    exponent = value.as_tuple().exponent
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0


def within(value: Decimal, target: Decimal, tolerance: Decimal) -> bool:
    return abs(value - target) <= tolerance


def format_money(value: Decimal, currency: str) -> str:
    """Renders an amount the way user-facing messages quote it: '98.50 USD'."""
    return f"{round_money(value)} {currency}"
