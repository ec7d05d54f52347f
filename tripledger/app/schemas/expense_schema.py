"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file (request shape, 400):
      - Field types, lengths, enum values, amount precision
      - Non-empty-after-trim enforcement for title
      - participants required when split_method changes on PATCH
  - services/split_calculator.py (split rules, 422):
      - amount > 0, participants non-empty, no duplicate user_id,
        percentage / weight / custom-amount sums
  - services/expense_service.py (needs the database):
      - PAYER_NOT_MEMBER, PARTICIPANT_NOT_MEMBER (422)
      - CURRENCY_MISMATCH (422)
      - Edit permission (FORBIDDEN, 403)

The participant list is deliberately NOT checked for emptiness or duplicates
here. Those are split rules, and the split calculator reports them with the
figures attached.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    pre_load,
    validate,
    validates_schema,
)

from tripledger.app.errors import ErrorCode
from tripledger.app.models.expense import Category
from tripledger.app.services.split_calculator import SplitStrategy


# ── Shared validators ──────────────────────────────────────────────────────

def _validate_amount_precision(value: Decimal) -> None:
    """
    Rejects amounts with more than 2 decimal places (never rounds them).

    Positivity is left to the split calculator, which reports INVALID_AMOUNT
    with the offending value.

    Decimal.as_tuple().exponent gives the scale as a negative integer:
      Decimal("10.123") → -3 → REJECT
      Decimal("10.12")  → -2 → accept
    """
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    """Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_split_value(value: Decimal) -> None:
    if value < 0:
        raise ValidationError("Split values must not be negative.")


def _upper_currency(data, field="currency"):
    if isinstance(data, dict) and isinstance(data.get(field), str):
        data = dict(data)
        data[field] = data[field].strip().upper()
    return data


# ── Sub-schema: one entry in the `participants` array ──────────────────────

class ParticipantInputSchema(Schema):
    """
    One participant of an expense.

    `value` is read according to the expense's split_method:
      equal       ignored (may be omitted)
      percentage  the participant's percentage, e.g. 60 or "33.3"
      shares      the participant's weight, e.g. 2
      custom      the participant's amount, e.g. "40.00"

    Trip membership of user_id is checked in expense_service.py.
    """

    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    value = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=_validate_split_value,
    )


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /trips/:trip_id/expenses

    Defaults:
      paid_by_user_id → the caller (filled in by the service)
      currency        → the trip currency (filled in by the service)
      date            → today
      split_method    → equal
      category        → other
    """

    title = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=200, error="Title must be between 1 and 200 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=2000),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_amount_precision,
    )

    currency = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(equal=3, error="currency must be a 3-letter ISO code."),
    )

    date = fields.Date(load_default=None, allow_none=True)

    paid_by_user_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    split_method = fields.Enum(
        SplitStrategy,
        load_default=SplitStrategy.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_METHOD},
    )

    category = fields.Enum(
        Category,
        load_default=Category.OTHER,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
    )

    participants = fields.List(
        fields.Nested(ParticipantInputSchema),
        required=True,
    )

    @pre_load
    def normalise_currency(self, data, **kwargs):
        return _upper_currency(data)


# ── Patch expense ──────────────────────────────────────────────────────────

class PatchExpenseSchema(Schema):
    """
    PATCH /trips/:trip_id/expenses/:expense_id

    All fields optional; only provided fields change. A change to amount,
    split_method or participants recomputes every share (expense_service).

    Shape rules checked here:
      - at least one field must be present
      - a new split_method other than 'equal' needs a new participants array,
        because the stored split values belong to the old method
    """

    title = fields.Str(
        validate=[
            validate.Length(min=1, max=200, error="Title must be between 1 and 200 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))

    amount = fields.Decimal(validate=_validate_amount_precision)

    currency = fields.Str(
        validate=validate.Length(equal=3, error="currency must be a 3-letter ISO code."),
    )

    date = fields.Date()

    paid_by_user_id = fields.Int(
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    split_method = fields.Enum(
        SplitStrategy,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_METHOD},
    )

    category = fields.Enum(
        Category,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
    )

    participants = fields.List(fields.Nested(ParticipantInputSchema))

    @pre_load
    def normalise_currency(self, data, **kwargs):
        return _upper_currency(data)

    @validates_schema
    def validate_patch_coherence(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("At least one field must be provided.")

        split_method = data.get("split_method")
        if (
            split_method is not None
            and split_method != SplitStrategy.EQUAL
            and "participants" not in data
        ):
            raise ValidationError(
                {"participants": ["Missing data for required field."]}
            )


# ── Settle one participant ─────────────────────────────────────────────────

class SettleParticipantSchema(Schema):
    """POST /trips/:trip_id/expenses/:expense_id/settle"""

    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )
