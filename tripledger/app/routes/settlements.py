"""
routes/settlements.py — Settlement route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Special: create_settlement and propose_settlements return (result, warnings[]).
  Non-empty warnings (OVERPAYMENT, BALANCE_SUM_MISMATCH) go into the response
  envelope: {"data": {...}, "warnings": [{"code": "OVERPAYMENT", ...}]}.
  The HTTP status is still 201 — warnings never block the request.

Endpoints (base url_prefix=/api/v1/trips):
  POST   /trips/:trip_id/settlements                 → 201  record a payment
  GET    /trips/:trip_id/settlements                 → 200  list settlements
  PATCH  /trips/:trip_id/settlements/:settlement_id  → 200  change status / method
  POST   /trips/:trip_id/settlements/proposals       → 201  store simplified debts as pending
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from tripledger.app.extensions import db
from tripledger.app.middleware.auth_middleware import require_auth
from tripledger.app.models.settlement import Settlement
from tripledger.app.schemas.settlement_schema import (
    CreateSettlementSchema,
    PatchSettlementSchema,
    ProposeSettlementsSchema,
)
from tripledger.app.services import settlement_service

settlements_bp = Blueprint("settlements", __name__)


# ── Serialization helper ───────────────────────────────────────────────────

def _serialize_settlement(s: Settlement) -> dict:
    """Converts a Settlement ORM object to a plain dict for JSON output."""
    return {
        "id": s.id,
        "trip_id": s.trip_id,
        "from_user_id": s.from_user_id,
        "from_name": s.sender.name if s.sender else None,
        "to_user_id": s.to_user_id,
        "to_name": s.recipient.name if s.recipient else None,
        "amount": s.amount,  # Decimal → string via DecimalJSONProvider
        "currency": s.currency,
        "method": s.method.value,
        "status": s.status.value,
        "date": s.date.isoformat(),
        "notes": s.notes,
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }


def _json_body() -> dict:
    return request.get_json(force=True, silent=True) or {}


# ── Route handlers ─────────────────────────────────────────────────────────

@settlements_bp.route("/<int:trip_id>/settlements", methods=["POST"])
@require_auth
def create_settlement(trip_id: int):
    """
    POST /trips/:trip_id/settlements — Record a payment.

    from_user_id is the authenticated caller (g.user_id), never the body.
    """
    data = CreateSettlementSchema().load(_json_body())
    settlement, warnings = settlement_service.create_settlement(
        trip_id=trip_id,
        from_user_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_settlement(settlement), "warnings": warnings}), 201


@settlements_bp.route("/<int:trip_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(trip_id: int):
    """GET /trips/:trip_id/settlements — List all settlements for a trip."""
    settlements = settlement_service.list_settlements(
        trip_id=trip_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/<int:trip_id>/settlements/<int:settlement_id>", methods=["PATCH"])
@require_auth
def update_settlement(trip_id: int, settlement_id: int):
    """PATCH /trips/:trip_id/settlements/:settlement_id — e.g. {"status": "completed"}"""
    data = PatchSettlementSchema().load(_json_body())
    settlement = settlement_service.update_settlement(
        trip_id=trip_id,
        settlement_id=settlement_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 200


@settlements_bp.route("/<int:trip_id>/settlements/proposals", methods=["POST"])
@require_auth
def propose_settlements(trip_id: int):
    """
    POST /trips/:trip_id/settlements/proposals — Persist the simplified debts
    as pending settlements, one per transfer.
    """
    data = ProposeSettlementsSchema().load(_json_body())
    settlements, warnings = settlement_service.propose_settlements(
        trip_id=trip_id,
        caller_id=g.user_id,
        session=db.session,
        method=data["method"],
        epsilon=current_app.config["DEBT_SIMPLIFY_EPSILON"],
    )
    db.session.commit()
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": warnings,
    }), 201
