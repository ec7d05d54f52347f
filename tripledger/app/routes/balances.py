"""
routes/balances.py — Balance route handlers.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/trips):
  GET /trips/:trip_id/balances  → 200  net balances + simplified debts
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from tripledger.app.extensions import db
from tripledger.app.middleware.auth_middleware import require_auth
from tripledger.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:trip_id>/balances", methods=["GET"])
@require_auth
def get_balances(trip_id: int):
    """
    GET /trips/:trip_id/balances

    Trip access is enforced inside balance_service.get_balance_response().

    An imbalanced ledger (e.g. equal-split remainder cents) is not an error:
    the simplifier's BALANCE_SUM_MISMATCH warning is lifted into the
    envelope's warnings array and the status stays 200.
    """
    result = balance_service.get_balance_response(
        trip_id=trip_id,
        caller_id=g.user_id,
        session=db.session,
        epsilon=current_app.config["DEBT_SIMPLIFY_EPSILON"],
    )
    warnings = result.pop("warnings")
    return jsonify({"data": result, "warnings": warnings}), 200
