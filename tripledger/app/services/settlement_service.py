"""
services/settlement_service.py — Settlement business logic.

Rules enforced here:
  TRIP_NOT_FOUND (404) / FORBIDDEN (403) — caller must have trip access
  SELF_SETTLEMENT (422)           — from_user_id must not equal to_user_id
  RECIPIENT_NOT_MEMBER (422)      — to_user_id must be in the trip
  CURRENCY_MISMATCH (422)         — settlement currency must equal trip currency
  SETTLEMENT_NOT_FOUND (404)      — settlement missing or in another trip
  INVALID_STATUS_TRANSITION (422) — only pending → completed | cancelled
  PENDING_SETTLEMENTS_EXIST (409) — no new proposals while some are open
  OVERPAYMENT warning             — recorded anyway, warning returned

Notes on overpayment:
  If the amount exceeds what the caller currently owes in the trip (the
  negative part of their balance from balance_service), the settlement is
  still recorded and a warning is returned with the 201. The route wraps it
  in the standard envelope: {"data": {...}, "warnings": [{"code": "OVERPAYMENT", ...}]}.

Notes on self-settlement:
  The sender always comes from flask.g, so the schema cannot compare the two
  parties. The check runs here, again in the commit guard, and the DB has a
  CHECK constraint as the final defence layer.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from tripledger.app.errors import AppError, ErrorCode, WarningCode
from tripledger.app.models.settlement import Settlement, SettlementMethod, SettlementStatus
from tripledger.app.services.balance_service import compute_balances
from tripledger.app.services.debt_simplifier import balances_from_mapping, simplify_debts
from tripledger.app.services.money import DEFAULT_EPSILON, ZERO
from tripledger.app.services.settlement_validator import validate_settlement
from tripledger.app.services.trip_access import (
    get_accessible_trip,
    get_member_ids,
    require_trip_currency,
)

logger = logging.getLogger(__name__)

# Allowed status changes. completed and cancelled are terminal.
_TRANSITIONS: dict[SettlementStatus, frozenset[SettlementStatus]] = {
    SettlementStatus.PENDING:   frozenset({SettlementStatus.COMPLETED, SettlementStatus.CANCELLED}),
    SettlementStatus.COMPLETED: frozenset(),
    SettlementStatus.CANCELLED: frozenset(),
}


# ── Private helpers ────────────────────────────────────────────────────────

def _get_settlement_or_404(trip_id: int, settlement_id: int, session: Session) -> Settlement:
    settlement = session.get(Settlement, settlement_id)
    if settlement is None or settlement.trip_id != trip_id:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"Settlement {settlement_id} does not exist in trip {trip_id}.",
            404,
        )
    return settlement


def _outstanding_debt(trip_id: int, user_id: int, session: Session) -> Decimal:
    """What user_id currently owes in the trip; 0.00 if they are owed or even."""
    balance = compute_balances(trip_id, session).get(user_id, ZERO)
    return -balance if balance < 0 else ZERO


def _has_pending_settlements(trip_id: int, session: Session) -> bool:
    stmt = (
        select(Settlement.id)
        .where(
            Settlement.trip_id == trip_id,
            Settlement.status == SettlementStatus.PENDING,
        )
        .limit(1)
    )
    return session.execute(stmt).first() is not None


# ── Public service functions ───────────────────────────────────────────────

def create_settlement(
        trip_id: int,
        from_user_id: int,
        data: dict,
        session: Session,
) -> tuple[Settlement, list[dict]]:
    """
    Records a payment from from_user_id (the caller) to data["to_user_id"].

    Args:
        trip_id:      The trip this settlement belongs to.
        from_user_id: The authenticated user making the payment (from flask.g).
        data:         Validated dict from CreateSettlementSchema.

    Returns:
        (Settlement, warnings). An empty warnings list means no warnings.
        Example warning: {"code": "OVERPAYMENT", "message": "..."}
    """
    trip = get_accessible_trip(trip_id, from_user_id, session)

    to_user_id: int = data["to_user_id"]
    amount = data["amount"]

    settlement = Settlement(
        trip_id=trip.id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=amount,
        currency=trip.currency,
        method=data.get("method") or SettlementMethod.OTHER,
        status=data.get("status") or SettlementStatus.PENDING,
        date=data.get("date") or date.today(),
        notes=data.get("notes"),
    )

    # SELF_SETTLEMENT and amount > 0, before any lookup.
    validate_settlement(settlement)

    if to_user_id not in get_member_ids(trip, session):
        raise AppError(
            ErrorCode.RECIPIENT_NOT_MEMBER,
            f"User {to_user_id} is not a member of trip {trip.id}.",
            422,
            field="to_user_id",
        )

    require_trip_currency(data.get("currency"), trip)

    warnings: list[dict] = []
    current_debt = _outstanding_debt(trip.id, from_user_id, session)
    if amount > current_debt:
        warnings.append({
            "code": WarningCode.OVERPAYMENT,
            "message": (
                f"Settlement of {amount} {trip.currency} exceeds the "
                f"{current_debt} {trip.currency} user {from_user_id} currently "
                f"owes in this trip. Recorded anyway."
            ),
        })

    session.add(settlement)
    session.flush()

    return settlement, warnings


def list_settlements(
        trip_id: int,
        caller_id: int,
        session: Session,
) -> list[Settlement]:
    """Returns all settlements of a trip, newest first."""
    trip = get_accessible_trip(trip_id, caller_id, session)

    stmt = (
        select(Settlement)
        .where(Settlement.trip_id == trip.id)
        .order_by(Settlement.date.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def update_settlement(
        trip_id: int,
        settlement_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Settlement:
    """
    Changes a settlement's status and/or method.

    Only the two parties may update it. Status moves pending → completed or
    pending → cancelled; setting the current status again is a no-op.
    Nothing about a completed or cancelled settlement can change.

    Args:
        data: Validated dict from PatchSettlementSchema.
    """
    get_accessible_trip(trip_id, caller_id, session)
    settlement = _get_settlement_or_404(trip_id, settlement_id, session)

    if caller_id not in (settlement.from_user_id, settlement.to_user_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the payer or the recipient may update this settlement.",
            403,
        )

    current = SettlementStatus(settlement.status)
    new_status = data.get("status")

    if new_status is not None and new_status != current:
        if new_status not in _TRANSITIONS[current]:
            raise AppError(
                ErrorCode.INVALID_STATUS_TRANSITION,
                f"Settlement {settlement_id} cannot move from "
                f"'{current.value}' to '{new_status.value}'.",
                422,
                field="status",
            )
    elif "method" in data and not _TRANSITIONS[current]:
        raise AppError(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"Settlement {settlement_id} is {current.value} and can no longer change.",
            422,
            field="method",
        )

    if "method" in data:
        settlement.method = data["method"]
    if new_status is not None:
        settlement.status = new_status

    session.flush()
    logger.info(
        "Settlement %s in trip %s updated by user %s: status=%s method=%s",
        settlement.id, trip_id, caller_id,
        SettlementStatus(settlement.status).value,
        SettlementMethod(settlement.method).value,
    )
    return settlement


def propose_settlements(
        trip_id: int,
        caller_id: int,
        session: Session,
        method: SettlementMethod = SettlementMethod.OTHER,
        epsilon: Decimal = DEFAULT_EPSILON,
) -> tuple[list[Settlement], list[dict]]:
    """
    Turns the current simplified debts into pending settlements.

    Runs the debt simplifier over the trip's balances and stores one pending
    Settlement per proposed transfer. Refused with PENDING_SETTLEMENTS_EXIST
    (409) while earlier settlements are still pending, since those would be
    counted twice once completed.

    Returns:
        (settlements, warnings) — warnings come from the simplifier
        (BALANCE_SUM_MISMATCH). An empty list means everyone is even.
    """
    trip = get_accessible_trip(trip_id, caller_id, session)

    if _has_pending_settlements(trip.id, session):
        raise AppError(
            ErrorCode.PENDING_SETTLEMENTS_EXIST,
            f"Trip {trip.id} still has pending settlements. "
            f"Complete or cancel them before requesting new proposals.",
            409,
        )

    balances = compute_balances(trip.id, session)
    transfers, warnings = simplify_debts(balances_from_mapping(balances), epsilon)

    today = date.today()
    settlements = [
        Settlement(
            trip_id=trip.id,
            from_user_id=t.from_user_id,
            to_user_id=t.to_user_id,
            amount=t.amount,
            currency=trip.currency,
            method=method,
            status=SettlementStatus.PENDING,
            date=today,
        )
        for t in transfers
    ]
    session.add_all(settlements)
    session.flush()

    logger.info(
        "Proposed %d settlement(s) for trip %s (requested by user %s)",
        len(settlements), trip.id, caller_id,
    )
    return settlements, warnings
