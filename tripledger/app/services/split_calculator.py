"""
services/split_calculator.py — Turns one expense into per-participant shares.

Pure computation. No Flask, no SQLAlchemy, no I/O. Everything in here can be
called from any thread and unit-tested with plain values.

Strategies:
  equal       amount / n, computed once and given to every participant.
              Remainder cents are NOT redistributed: 100.00 / 3 → 33.33 × 3.
  percentage  amount × pct / 100. Each percentage lies in [0, 100]; together
              they must sum to 100 ± 0.1.
  shares      amount × weight / Σweights. Σweights must be > 0.
  custom      the supplied amount itself. Amounts must sum to the expense
              amount ± 0.01.

Tolerance checks run on the unrounded sums; only the materialized shares are
rounded (to cents, half away from zero).

Errors are raised as SplitError subclasses (errors.py). They are ordinary,
catchable exceptions that carry the offending figures.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Union

from tripledger.app.errors import (
    AppError,
    CustomAmountMismatch,
    DuplicateParticipant,
    EmptyParticipantSet,
    ErrorCode,
    InvalidAmount,
    InvalidShareTotal,
    PercentageMismatch,
)
from tripledger.app.services.money import (
    CUSTOM_AMOUNT_TOLERANCE,
    HUNDRED,
    MONEY_PLACES,
    PERCENTAGE_PLACES,
    PERCENTAGE_TOLERANCE,
    WEIGHT_PLACES,
    decimal_places,
    round_money,
    to_decimal,
    within,
)


class SplitStrategy(str, enum.Enum):
    EQUAL      = "equal"
    PERCENTAGE = "percentage"
    SHARES     = "shares"
    CUSTOM     = "custom"


# ── Split details (one variant per strategy) ───────────────────────────────

@dataclass(frozen=True)
class EqualDetail:
    split_count: int

    strategy = SplitStrategy.EQUAL

    def to_dict(self) -> dict:
        return {"split_count": self.split_count}


@dataclass(frozen=True)
class PercentageDetail:
    percentage: Decimal

    strategy = SplitStrategy.PERCENTAGE

    def to_dict(self) -> dict:
        return {"percentage": self.percentage}


@dataclass(frozen=True)
class SharesDetail:
    weight: Decimal
    total_weight: Decimal

    strategy = SplitStrategy.SHARES

    def to_dict(self) -> dict:
        return {"weight": self.weight, "total_weight": self.total_weight}


@dataclass(frozen=True)
class CustomDetail:
    amount: Decimal

    strategy = SplitStrategy.CUSTOM

    def to_dict(self) -> dict:
        return {"amount": self.amount}


SplitDetail = Union[EqualDetail, PercentageDetail, SharesDetail, CustomDetail]


# ── Inputs / outputs ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class ParticipantInput:
    """
    One participant as supplied by the caller.

    `value` is the strategy-specific raw number: a percentage, a share weight
    or a custom monetary amount. It is ignored for the equal strategy and
    counts as 0 when omitted for the others.
    """
    user_id: int
    value: object = None


@dataclass(frozen=True)
class ParticipantShare:
    user_id: int
    share: Decimal
    detail: SplitDetail
    settled: bool = False


# ── Input coercion ─────────────────────────────────────────────────────────

def _coerce_amount(amount: object) -> Decimal:
    try:
        value = to_decimal(amount)
    except ValueError:
        raise InvalidAmount(amount, reason=f"Amount ({amount!r}) is not a number.")

    if value <= 0:
        raise InvalidAmount(amount, reason=f"Amount ({value}) must be greater than zero.")
    if decimal_places(value) > MONEY_PLACES:
        raise InvalidAmount(
            amount,
            reason=f"Amount ({value}) must have at most {MONEY_PLACES} decimal places.",
        )
    return value


def _coerce_strategy(strategy: SplitStrategy | str) -> SplitStrategy:
    try:
        return SplitStrategy(strategy)
    except ValueError:
        raise AppError(
            ErrorCode.INVALID_SPLIT_METHOD,
            f"'{strategy}' is not a split method. "
            f"Valid values: {', '.join(s.value for s in SplitStrategy)}.",
            400,
            field="split_method",
        )


def _check_participants(participants: list[ParticipantInput]) -> None:
    if not participants:
        raise EmptyParticipantSet()

    seen: set[int] = set()
    for p in participants:
        if p.user_id in seen:
            raise DuplicateParticipant(p.user_id)
        seen.add(p.user_id)


def _raw_values(participants: list[ParticipantInput], max_places: int) -> list[Decimal]:
    """
    Reads each participant's raw value; missing values count as zero.

    max_places is the scale of the column the value is stored in. A finer
    value would be truncated on write and the stored split would no longer
    match the one validated here.
    """
    values = []
    for p in participants:
        if p.value is None:
            values.append(Decimal("0"))
            continue
        try:
            value = to_decimal(p.value)
        except ValueError:
            raise InvalidAmount(
                p.value,
                field="participants",
                reason=f"Split value for user {p.user_id} ({p.value!r}) is not a number.",
            )
        if value < 0:
            raise InvalidAmount(
                p.value,
                field="participants",
                reason=f"Split value for user {p.user_id} ({value}) must not be negative.",
            )
        if decimal_places(value) > max_places:
            raise InvalidAmount(
                p.value,
                field="participants",
                reason=(
                    f"Split value for user {p.user_id} ({value}) must have at most "
                    f"{max_places} decimal places."
                ),
            )
        values.append(value)
    return values


# ── One calculator per strategy ────────────────────────────────────────────

def _compute_equal(
        amount: Decimal,
        participants: list[ParticipantInput],
        currency: str,
) -> list[ParticipantShare]:
    n = len(participants)
    share = round_money(amount / n)
    detail = EqualDetail(split_count=n)
    return [ParticipantShare(p.user_id, share, detail) for p in participants]


def _compute_percentage(
        amount: Decimal,
        participants: list[ParticipantInput],
        currency: str,
) -> list[ParticipantShare]:
    percentages = _raw_values(participants, PERCENTAGE_PLACES)
    for p, pct in zip(participants, percentages):
        if pct > HUNDRED:
            raise InvalidAmount(
                p.value,
                field="participants",
                reason=f"Percentage for user {p.user_id} ({pct}%) must be between 0 and 100.",
            )

    total = sum(percentages, Decimal("0"))
    if not within(total, HUNDRED, PERCENTAGE_TOLERANCE):
        raise PercentageMismatch(total)

    return [
        ParticipantShare(
            p.user_id,
            round_money(amount * pct / HUNDRED),
            PercentageDetail(percentage=pct),
        )
        for p, pct in zip(participants, percentages)
    ]


def _compute_shares(
        amount: Decimal,
        participants: list[ParticipantInput],
        currency: str,
) -> list[ParticipantShare]:
    weights = _raw_values(participants, WEIGHT_PLACES)
    total = sum(weights, Decimal("0"))
    if total <= 0:
        raise InvalidShareTotal(total)

    return [
        ParticipantShare(
            p.user_id,
            round_money(amount * weight / total),
            SharesDetail(weight=weight, total_weight=total),
        )
        for p, weight in zip(participants, weights)
    ]


def _compute_custom(
        amount: Decimal,
        participants: list[ParticipantInput],
        currency: str,
) -> list[ParticipantShare]:
    amounts = _raw_values(participants, MONEY_PLACES)
    total = sum(amounts, Decimal("0"))
    if not within(total, amount, CUSTOM_AMOUNT_TOLERANCE):
        raise CustomAmountMismatch(total, amount, currency)

    return [
        ParticipantShare(p.user_id, round_money(value), CustomDetail(amount=value))
        for p, value in zip(participants, amounts)
    ]


_Calculator = Callable[[Decimal, list[ParticipantInput], str], list[ParticipantShare]]

_CALCULATORS: dict[SplitStrategy, _Calculator] = {
    SplitStrategy.EQUAL:      _compute_equal,
    SplitStrategy.PERCENTAGE: _compute_percentage,
    SplitStrategy.SHARES:     _compute_shares,
    SplitStrategy.CUSTOM:     _compute_custom,
}

_missing = set(SplitStrategy) - set(_CALCULATORS)
if _missing:  # pragma: no cover
    raise RuntimeError(f"No share calculator registered for: {sorted(s.value for s in _missing)}")


# ── Public API ─────────────────────────────────────────────────────────────

def compute_shares(
        amount: object,
        strategy: SplitStrategy | str,
        participants: Iterable[ParticipantInput],
        currency: str = "USD",
) -> list[ParticipantShare]:
    """
    Computes every participant's share of `amount` under `strategy`.

    Args:
        amount:       Positive amount with at most 2 decimal places.
        strategy:     A SplitStrategy (or its string value).
        participants: Ordered, non-empty, no repeated user_id.
        currency:     Only used to phrase error messages.

    Returns:
        One ParticipantShare per input, in input order, shares rounded to cents.

    Raises:
        InvalidAmount, EmptyParticipantSet, DuplicateParticipant,
        PercentageMismatch, InvalidShareTotal, CustomAmountMismatch.
    """
    value = _coerce_amount(amount)
    method = _coerce_strategy(strategy)
    entries = list(participants)
    _check_participants(entries)
    return _CALCULATORS[method](value, entries, currency)


def shares_total(shares: Iterable[ParticipantShare]) -> Decimal:
    return sum((s.share for s in shares), Decimal("0.00"))
