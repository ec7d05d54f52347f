"""
services/expense_service.py — Expense business logic.

Rules enforced here (the split rules themselves live in split_calculator):
  TRIP_NOT_FOUND (404)          — trip does not exist
  FORBIDDEN (403)               — caller is neither owner nor member of the trip
  EXPENSE_NOT_FOUND (404)       — expense missing or belongs to another trip
  PAYER_NOT_MEMBER (422)        — paid_by_user_id must be in the trip
  PARTICIPANT_NOT_MEMBER (422)  — every participant must be in the trip
  CURRENCY_MISMATCH (422)       — expense currency must equal trip currency
  PARTICIPANT_NOT_FOUND (404)   — settle target is not on the expense

Authorization rules:
  - Create / list / get / settle: caller must have trip access
  - Edit / delete: caller must be the payer OR the trip owner

Share computation:
  Every create, and every edit touching amount, split_method or
  participants, recomputes ALL shares through compute_shares() and swaps the
  participant list in as a whole. The commit guard re-checks the result on
  flush.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain ints and dicts; returns ORM objects or raises AppError.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from tripledger.app.errors import AppError, ErrorCode
from tripledger.app.models.expense import Category, Expense
from tripledger.app.models.expense_participant import ExpenseParticipant
from tripledger.app.models.trip import Trip
from tripledger.app.services.settlement_validator import participant_split_value
from tripledger.app.services.split_calculator import (
    CustomDetail,
    EqualDetail,
    ParticipantInput,
    ParticipantShare,
    PercentageDetail,
    SharesDetail,
    SplitStrategy,
    compute_shares,
)
from tripledger.app.services.trip_access import (
    get_accessible_trip,
    get_member_ids,
    require_trip_currency,
)

logger = logging.getLogger(__name__)

_RESPLIT_FIELDS = ("amount", "split_method", "participants")


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(trip_id: int, expense_id: int, session: Session) -> Expense:
    """Returns the Expense if it belongs to trip_id, else EXPENSE_NOT_FOUND (404)."""
    expense = session.get(Expense, expense_id)
    if expense is None or expense.trip_id != trip_id:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist in trip {trip_id}.",
            404,
        )
    return expense


def _require_payer_or_owner(expense: Expense, trip: Trip, caller_id: int, action: str) -> None:
    if caller_id not in (expense.paid_by_user_id, trip.owner_user_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the payer or the trip owner may {action} this expense.",
            403,
        )


def _validate_payer_is_member(paid_by_user_id: int, trip: Trip, member_ids: list[int]) -> None:
    if paid_by_user_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {paid_by_user_id} is not a member of trip {trip.id}.",
            422,
            field="paid_by_user_id",
        )


def _validate_participants_are_members(
        shares: list[ParticipantShare],
        trip: Trip,
        member_ids: list[int],
) -> None:
    """Raises PARTICIPANT_NOT_MEMBER (422) for the first participant outside the trip."""
    member_set = set(member_ids)
    for share in shares:
        if share.user_id not in member_set:
            raise AppError(
                ErrorCode.PARTICIPANT_NOT_MEMBER,
                f"User {share.user_id} is not a member of trip {trip.id}.",
                422,
                field="participants",
            )


def _inputs_from_payload(participants: list[dict]) -> list[ParticipantInput]:
    return [ParticipantInput(p["user_id"], p.get("value")) for p in participants]


def _inputs_from_rows(
        rows: list[ExpenseParticipant],
        strategy: SplitStrategy,
) -> list[ParticipantInput]:
    return [ParticipantInput(p.user_id, participant_split_value(p, strategy)) for p in rows]


def _apply_detail(row: ExpenseParticipant, share: ParticipantShare) -> None:
    """Writes the share and its split detail; clears the other variants' columns."""
    row.share = share.share
    row.split_count = None
    row.percentage = None
    row.share_weight = None
    row.total_weight = None
    row.custom_amount = None

    detail = share.detail
    if isinstance(detail, EqualDetail):
        row.split_count = detail.split_count
    elif isinstance(detail, PercentageDetail):
        row.percentage = detail.percentage
    elif isinstance(detail, SharesDetail):
        row.share_weight = detail.weight
        row.total_weight = detail.total_weight
    elif isinstance(detail, CustomDetail):
        row.custom_amount = detail.amount


def _build_participant_rows(
        shares: list[ParticipantShare],
        current: list[ExpenseParticipant],
) -> list[ExpenseParticipant]:
    """
    Turns computed shares into the new participant list.

    Rows of users that stay on the expense are updated in place (keeping the
    UNIQUE(expense_id, user_id) constraint satisfied within one flush); their
    settled flag survives only if their share did not change. Users no longer
    listed are left out and removed by the delete-orphan cascade.
    """
    existing = {row.user_id: row for row in current}
    rows = []
    for position, share in enumerate(shares):
        row = existing.pop(share.user_id, None)
        if row is None:
            row = ExpenseParticipant(user_id=share.user_id, settled=False)
        elif row.share != share.share:
            row.settled = False
        row.position = position
        _apply_detail(row, share)
        rows.append(row)
    return rows


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        trip_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Records a new expense for a trip.

    Args:
        trip_id:   The trip this expense belongs to.
        caller_id: The authenticated user creating the expense (from flask.g).
        data:      Validated dict from CreateExpenseSchema.

    The payer defaults to the caller and the currency to the trip currency.

    Returns:
        The newly created Expense ORM object with its participants.
    """
    trip = get_accessible_trip(trip_id, caller_id, session)
    member_ids = get_member_ids(trip, session)

    paid_by_user_id: int = data.get("paid_by_user_id") or caller_id
    _validate_payer_is_member(paid_by_user_id, trip, member_ids)

    currency = require_trip_currency(data.get("currency"), trip)
    split_method = SplitStrategy(data.get("split_method", SplitStrategy.EQUAL))

    shares = compute_shares(
        data["amount"],
        split_method,
        _inputs_from_payload(data["participants"]),
        currency=currency,
    )
    _validate_participants_are_members(shares, trip, member_ids)

    expense = Expense(
        trip_id=trip.id,
        paid_by_user_id=paid_by_user_id,
        title=data["title"].strip(),
        description=data.get("description"),
        amount=Decimal(data["amount"]),
        currency=currency,
        date=data.get("date") or date.today(),
        split_method=split_method,
        category=data.get("category") or Category.OTHER,
    )
    expense.participants = _build_participant_rows(shares, [])

    session.add(expense)
    session.flush()  # runs the commit guard; populates ids

    logger.info(
        "Expense %s created in trip %s: %s %s split %s ways (%s)",
        expense.id, trip.id, expense.amount, currency,
        len(shares), split_method.value,
    )
    return expense


def list_expenses(
        trip_id: int,
        caller_id: int,
        session: Session,
) -> list[Expense]:
    """Returns all expenses of a trip, newest first."""
    trip = get_accessible_trip(trip_id, caller_id, session)

    stmt = (
        select(Expense)
        .where(Expense.trip_id == trip.id)
        .order_by(Expense.date.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_expense(
        trip_id: int,
        expense_id: int,
        caller_id: int,
        session: Session,
) -> Expense:
    """Returns a single expense including its participants."""
    get_accessible_trip(trip_id, caller_id, session)
    return _get_expense_or_404(trip_id, expense_id, session)


def edit_expense(
        trip_id: int,
        expense_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Partially updates an expense.

    Rules:
      - Only the payer or the trip owner may edit (FORBIDDEN, 403).
      - title, description, category, date, currency and paid_by_user_id
        update in place.
      - A change to amount, split_method or participants recomputes every
        share. Without a new participants array the stored split values are
        reused, so e.g. a new amount re-splits the same percentages.
      - updated_at is set on every successful PATCH.

    Args:
        data: Validated partial dict from PatchExpenseSchema.

    Returns:
        The updated Expense ORM object.
    """
    trip = get_accessible_trip(trip_id, caller_id, session)
    expense = _get_expense_or_404(trip_id, expense_id, session)
    _require_payer_or_owner(expense, trip, caller_id, "edit")

    member_ids = get_member_ids(trip, session)
    current_rows = list(expense.participants)

    # Every check below runs before any attribute is assigned.
    if "paid_by_user_id" in data:
        _validate_payer_is_member(data["paid_by_user_id"], trip, member_ids)

    currency = expense.currency
    if "currency" in data:
        currency = require_trip_currency(data["currency"], trip)

    new_rows = None
    if any(field in data for field in _RESPLIT_FIELDS):
        amount = data.get("amount", expense.amount)
        split_method = SplitStrategy(data.get("split_method", expense.split_method))

        if "participants" in data:
            inputs = _inputs_from_payload(data["participants"])
        else:
            inputs = _inputs_from_rows(current_rows, split_method)

        shares = compute_shares(amount, split_method, inputs, currency=currency)
        _validate_participants_are_members(shares, trip, member_ids)
        new_rows = _build_participant_rows(shares, current_rows)

    # ── Apply ──────────────────────────────────────────────────────────────
    with session.no_autoflush:
        if "title" in data:
            expense.title = data["title"].strip()
        if "description" in data:
            expense.description = data["description"]
        if "category" in data:
            expense.category = data["category"]
        if "date" in data:
            expense.date = data["date"]
        if "paid_by_user_id" in data:
            expense.paid_by_user_id = data["paid_by_user_id"]
        expense.currency = currency

        if new_rows is not None:
            expense.amount = Decimal(data.get("amount", expense.amount))
            expense.split_method = SplitStrategy(data.get("split_method", expense.split_method))
            expense.participants = new_rows

        expense.updated_at = datetime.now(timezone.utc)

    session.flush()
    return expense


def delete_expense(
        trip_id: int,
        expense_id: int,
        caller_id: int,
        session: Session,
) -> None:
    """
    Hard-deletes an expense; its participants go with it (delete-orphan).

    The expense simply drops out of balance aggregation. Only the payer or
    the trip owner may delete.
    """
    trip = get_accessible_trip(trip_id, caller_id, session)
    expense = _get_expense_or_404(trip_id, expense_id, session)
    _require_payer_or_owner(expense, trip, caller_id, "delete")

    session.delete(expense)
    session.flush()
    logger.info("Expense %s deleted from trip %s by user %s", expense_id, trip_id, caller_id)


def settle_participant(
        trip_id: int,
        expense_id: int,
        caller_id: int,
        participant_user_id: int,
        session: Session,
) -> Expense:
    """
    Marks one participant's share of an expense as settled.

    This is bookkeeping on the expense only; balances are moved by
    Settlement rows, not by this flag.

    Raises:
        AppError(PARTICIPANT_NOT_FOUND, 404) — user is not on the expense.
    """
    get_accessible_trip(trip_id, caller_id, session)
    expense = _get_expense_or_404(trip_id, expense_id, session)

    participant = next(
        (p for p in expense.participants if p.user_id == participant_user_id),
        None,
    )
    if participant is None:
        raise AppError(
            ErrorCode.PARTICIPANT_NOT_FOUND,
            f"User {participant_user_id} is not a participant of expense {expense_id}.",
            404,
            field="user_id",
        )

    participant.settled = True
    session.flush()
    return expense
