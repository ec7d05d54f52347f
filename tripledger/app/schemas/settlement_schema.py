"""
schemas/settlement_schema.py — Marshmallow schemas for settlement endpoints.

Validation responsibility:
  - This file: field types, amount precision, enum values (400).
  - services/settlement_validator.py: amount > 0 and from != to (422).
  - services/settlement_service.py:
      - RECIPIENT_NOT_MEMBER (422)      — requires DB membership lookup
      - CURRENCY_MISMATCH (422)         — requires the trip row
      - INVALID_STATUS_TRANSITION (422) — requires the stored status
      - OVERPAYMENT warning (201)       — requires current balances

from_user_id is never read from the body: the sender is always the
authenticated caller (flask.g.user_id), passed to the service by the route.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, pre_load, validate, validates_schema

from tripledger.app.errors import ErrorCode
from tripledger.app.models.settlement import SettlementMethod, SettlementStatus


def _validate_amount_precision(value: Decimal) -> None:
    """Rejects amounts with more than 2 decimal places (never rounds them)."""
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_initial_status(value: SettlementStatus) -> None:
    if value == SettlementStatus.CANCELLED:
        raise ValidationError("A settlement cannot be created as 'cancelled'.")


_METHOD_FIELD_KWARGS = dict(
    by_value=True,
    error_messages={"unknown": ErrorCode.INVALID_SETTLEMENT_METHOD},
)

_STATUS_FIELD_KWARGS = dict(
    by_value=True,
    error_messages={"unknown": ErrorCode.INVALID_SETTLEMENT_STATUS},
)


class CreateSettlementSchema(Schema):
    """
    POST /trips/:trip_id/settlements

    Records a payment from the caller to another trip member.

    Field rules:
      to_user_id : required, positive integer
      amount     : required, at most 2 decimal places. Overpaying is allowed;
                   the service answers with an OVERPAYMENT warning.
      currency   : optional, defaults to the trip currency
      method     : cash | bank_transfer | other (default other)
      status     : pending (default) | completed
      date       : optional, defaults to today
      notes      : optional free text
    """

    to_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="to_user_id must be a positive integer."),
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

    method = fields.Enum(
        SettlementMethod,
        load_default=SettlementMethod.OTHER,
        **_METHOD_FIELD_KWARGS,
    )

    status = fields.Enum(
        SettlementStatus,
        load_default=SettlementStatus.PENDING,
        validate=_validate_initial_status,
        **_STATUS_FIELD_KWARGS,
    )

    date = fields.Date(load_default=None, allow_none=True)

    notes = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=1000),
    )

    @pre_load
    def normalise_currency(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get("currency"), str):
            data = dict(data)
            data["currency"] = data["currency"].strip().upper()
        return data


class PatchSettlementSchema(Schema):
    """
    PATCH /trips/:trip_id/settlements/:settlement_id

    Only status and method may change. Amount and parties are fixed once a
    settlement exists; a correction is cancel-and-recreate.
    """

    status = fields.Enum(SettlementStatus, **_STATUS_FIELD_KWARGS)

    method = fields.Enum(SettlementMethod, **_METHOD_FIELD_KWARGS)

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one of 'status' or 'method'.")


class ProposeSettlementsSchema(Schema):
    """POST /trips/:trip_id/settlements/proposals"""

    method = fields.Enum(
        SettlementMethod,
        load_default=SettlementMethod.OTHER,
        **_METHOD_FIELD_KWARGS,
    )
