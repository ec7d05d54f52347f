"""
errors.py — AppError base class, split error taxonomy and error code registry.

Every error returned by the TripLedger API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - New error codes require: add constant here + add a test that raises it.
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations

from decimal import Decimal


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_CATEGORY           = "INVALID_CATEGORY"
    INVALID_SPLIT_METHOD       = "INVALID_SPLIT_METHOD"
    INVALID_SETTLEMENT_METHOD  = "INVALID_SETTLEMENT_METHOD"
    INVALID_SETTLEMENT_STATUS  = "INVALID_SETTLEMENT_STATUS"
    BAD_REQUEST                = "BAD_REQUEST"

    # ── Split Engine Errors (422) ──────────────────────────────────────────
    # Raised by split_calculator.py and settlement_validator.py.
    INVALID_AMOUNT             = "INVALID_AMOUNT"
    EMPTY_PARTICIPANT_SET      = "EMPTY_PARTICIPANT_SET"
    PERCENTAGE_MISMATCH        = "PERCENTAGE_MISMATCH"
    INVALID_SHARE_TOTAL        = "INVALID_SHARE_TOTAL"
    CUSTOM_AMOUNT_MISMATCH     = "CUSTOM_AMOUNT_MISMATCH"
    DUPLICATE_PARTICIPANT      = "DUPLICATE_PARTICIPANT"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    TRIP_NOT_FOUND             = "TRIP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    SETTLEMENT_NOT_FOUND       = "SETTLEMENT_NOT_FOUND"
    PARTICIPANT_NOT_FOUND      = "PARTICIPANT_NOT_FOUND"
    ROUTE_NOT_FOUND            = "ROUTE_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    PARTICIPANT_NOT_MEMBER     = "PARTICIPANT_NOT_MEMBER"
    RECIPIENT_NOT_MEMBER       = "RECIPIENT_NOT_MEMBER"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"
    CURRENCY_MISMATCH          = "CURRENCY_MISMATCH"
    INVALID_STATUS_TRANSITION  = "INVALID_STATUS_TRANSITION"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    PENDING_SETTLEMENTS_EXIST  = "PENDING_SETTLEMENTS_EXIST"

    # ── Protocol Errors ────────────────────────────────────────────────────
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"     # 405

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Settlement amount exceeds what the payer currently owes in the trip.
    # Still recorded — pre-payment is valid.
    OVERPAYMENT = "OVERPAYMENT"

    # Balances handed to the debt simplifier do not net to zero. The transfer
    # plan is still returned on a best-effort basis.
    BALANCE_SUM_MISMATCH = "BALANCE_SUM_MISMATCH"


# ── Split error taxonomy ───────────────────────────────────────────────────
#
# Raised by the split engine. All are recoverable business-rule violations
# (422) and carry the offending figures so callers can build their own
# messages without parsing prose.
# ──────────────────────────────────────────────────────────────────────────

class SplitError(AppError):
    """Base class for every error the split engine raises."""

    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(type(self).code, message, 422, field=field)


class InvalidAmount(SplitError):
    code = ErrorCode.INVALID_AMOUNT

    def __init__(self, value: object, field: str = "amount", reason: str | None = None) -> None:
        self.value = value
        message = reason or f"Amount ({value}) must be a positive number with at most 2 decimal places."
        super().__init__(message, field=field)


class EmptyParticipantSet(SplitError):
    code = ErrorCode.EMPTY_PARTICIPANT_SET

    def __init__(self) -> None:
        super().__init__("An expense must have at least one participant.", field="participants")


class PercentageMismatch(SplitError):
    code = ErrorCode.PERCENTAGE_MISMATCH

    def __init__(self, actual: Decimal) -> None:
        self.actual = actual
        super().__init__(
            f"Total percentage ({actual.normalize():f}%) must equal 100%.",
            field="participants",
        )


class InvalidShareTotal(SplitError):
    code = ErrorCode.INVALID_SHARE_TOTAL

    def __init__(self, total: Decimal) -> None:
        self.total = total
        super().__init__(
            f"Total shares ({total.normalize():f}) must be greater than 0.",
            field="participants",
        )


class CustomAmountMismatch(SplitError):
    code = ErrorCode.CUSTOM_AMOUNT_MISMATCH

    def __init__(self, actual: Decimal, expected: Decimal, currency: str = "USD") -> None:
        self.actual   = actual
        self.expected = expected
        super().__init__(
            f"Total amount ({actual:.2f} {currency}) must equal "
            f"expense amount ({expected:.2f} {currency}).",
            field="participants",
        )


class DuplicateParticipant(SplitError):
    code = ErrorCode.DUPLICATE_PARTICIPANT

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(
            f"User {user_id} appears more than once in the participant list.",
            field="participants",
        )
