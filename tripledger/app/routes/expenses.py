"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1/trips; every path is trip-scoped.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - _serialize_expense() is a pure data-shape helper — not business logic.

Endpoints:
  POST   /trips/:trip_id/expenses                     → 201  create expense
  GET    /trips/:trip_id/expenses                     → 200  list expenses
  GET    /trips/:trip_id/expenses/summary             → 200  totals + balances
  GET    /trips/:trip_id/expenses/:expense_id         → 200  expense + participants
  PATCH  /trips/:trip_id/expenses/:expense_id         → 200  partial update
  DELETE /trips/:trip_id/expenses/:expense_id         → 200  hard delete
  POST   /trips/:trip_id/expenses/:expense_id/settle  → 200  mark one share settled
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from tripledger.app.extensions import db
from tripledger.app.middleware.auth_middleware import require_auth
from tripledger.app.models.expense import Expense
from tripledger.app.models.expense_participant import ExpenseParticipant
from tripledger.app.schemas.expense_schema import (
    CreateExpenseSchema,
    PatchExpenseSchema,
    SettleParticipantSchema,
)
from tripledger.app.services import balance_service, expense_service

expenses_bp = Blueprint("expenses", __name__)


# ── Serialization helpers ──────────────────────────────────────────────────
# Pure data-shaping. Decimals are rendered as strings by DecimalJSONProvider.

def _serialize_split_detail(p: ExpenseParticipant, split_method: str) -> dict:
    if split_method == "equal":
        return {"split_count": p.split_count}
    if split_method == "percentage":
        return {"percentage": p.percentage}
    if split_method == "shares":
        return {"weight": p.share_weight, "total_weight": p.total_weight}
    return {"amount": p.custom_amount}


def _serialize_expense(expense: Expense) -> dict:
    """Converts an Expense ORM object to a plain dict for JSON output."""
    split_method = expense.split_method.value
    return {
        "id": expense.id,
        "trip_id": expense.trip_id,
        "title": expense.title,
        "description": expense.description,
        "amount": expense.amount,
        "currency": expense.currency,
        "date": expense.date.isoformat(),
        "paid_by_user_id": expense.paid_by_user_id,
        "paid_by_name": expense.payer.name if expense.payer else None,
        "split_method": split_method,
        "category": expense.category.value,
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "updated_at": expense.updated_at.isoformat() if expense.updated_at else None,
        "participants": [
            {
                "user_id": p.user_id,
                "name": p.user.name if p.user else None,
                "share": p.share,
                "split_details": {split_method: _serialize_split_detail(p, split_method)},
                "settled": bool(p.settled),
            }
            for p in expense.participants
        ],
    }


def _json_body() -> dict:
    return request.get_json(force=True, silent=True) or {}


# ── Collection routes ──────────────────────────────────────────────────────

@expenses_bp.route("/<int:trip_id>/expenses", methods=["POST"])
@require_auth
def create_expense(trip_id: int):
    """POST /trips/:trip_id/expenses — Record a new expense and its split."""
    data = CreateExpenseSchema().load(_json_body())
    expense = expense_service.create_expense(
        trip_id=trip_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/<int:trip_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(trip_id: int):
    """GET /trips/:trip_id/expenses — List a trip's expenses, newest first."""
    expenses = expense_service.list_expenses(
        trip_id=trip_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


@expenses_bp.route("/<int:trip_id>/expenses/summary", methods=["GET"])
@require_auth
def get_summary(trip_id: int):
    """GET /trips/:trip_id/expenses/summary — Total spent, balances, unsettled amount."""
    summary = balance_service.get_trip_summary(
        trip_id=trip_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": summary, "warnings": []}), 200


# ── Single-expense routes ──────────────────────────────────────────────────

@expenses_bp.route("/<int:trip_id>/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(trip_id: int, expense_id: int):
    expense = expense_service.get_expense(
        trip_id=trip_id,
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/<int:trip_id>/expenses/<int:expense_id>", methods=["PATCH"])
@require_auth
def edit_expense(trip_id: int, expense_id: int):
    """
    PATCH /trips/:trip_id/expenses/:expense_id — Partial update.
    A change to amount, split_method or participants recomputes every share.
    Only the payer or the trip owner may edit.
    """
    data = PatchExpenseSchema().load(_json_body())
    expense = expense_service.edit_expense(
        trip_id=trip_id,
        expense_id=expense_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/<int:trip_id>/expenses/<int:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(trip_id: int, expense_id: int):
    """DELETE /trips/:trip_id/expenses/:expense_id — Remove the expense and its participants."""
    expense_service.delete_expense(
        trip_id=trip_id,
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "deleted": True,
            "expense_id": expense_id,
        },
        "warnings": [],
    }), 200


@expenses_bp.route("/<int:trip_id>/expenses/<int:expense_id>/settle", methods=["POST"])
@require_auth
def settle_participant(trip_id: int, expense_id: int):
    """POST /trips/:trip_id/expenses/:expense_id/settle — body: {"user_id": int}"""
    data = SettleParticipantSchema().load(_json_body())
    expense = expense_service.settle_participant(
        trip_id=trip_id,
        expense_id=expense_id,
        caller_id=g.user_id,
        participant_user_id=data["user_id"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200
