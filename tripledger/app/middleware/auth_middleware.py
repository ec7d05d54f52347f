"""
middleware/auth_middleware.py — Bearer-token authentication for the ledger API.

Tokens are minted by the trip planner's identity provider. The ledger holds
the shared JWT_SECRET_KEY and checks three things before a view runs:

  header     "Authorization: Bearer <token>" is present and well formed
  signature  HS256 (JWT_ALGORITHM) over an unexpired payload carrying `sub`
  directory  `sub` names a row in the users table

On success g.user_id holds the caller's id (an int) for the route to pass
to the service layer.

Trip membership and edit rights are not checked here; a known user without
access to a trip gets 403 from trip_access, never 401.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, bad signature or payload, unknown user
  TOKEN_EXPIRED  (401) — exp claim is in the past
"""

from __future__ import annotations

import functools
import logging
from typing import Callable

import jwt
from flask import current_app, g, request

from tripledger.app.errors import AppError, ErrorCode
from tripledger.app.extensions import db
from tripledger.app.models.user import User

logger = logging.getLogger(__name__)


def require_auth(f: Callable) -> Callable:
    """
    Route decorator: resolves the caller before the view runs.

        @bp.get("/<int:trip_id>/balances")
        @require_auth
        def get_balances(trip_id):
            ...  # g.user_id is a known user's id here
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = _resolve_user(_decode_claims(_bearer_token()))
        g.user_id = user.id
        return f(*args, **kwargs)

    return decorated


def _invalid(message: str) -> AppError:
    return AppError(ErrorCode.TOKEN_INVALID, message, 401)


# ── Header ─────────────────────────────────────────────────────────────────

def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if not header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    scheme, _, raw_token = header.partition(" ")
    if scheme.lower() != "bearer" or not raw_token or " " in raw_token.strip():
        raise _invalid("Authorization header must be in the format: Bearer <token>.")
    return raw_token.strip()


# ── Claims ─────────────────────────────────────────────────────────────────

def _decode_claims(raw_token: str) -> dict:
    """Verifies signature and expiry; `sub` is required."""
    try:
        return jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Request a new one from the identity provider.",
            401,
        )
    except jwt.MissingRequiredClaimError:
        raise _invalid("The access token is missing the required 'sub' claim.")
    except jwt.InvalidTokenError:
        raise _invalid("The access token is invalid or has been tampered with.")


# ── Directory ──────────────────────────────────────────────────────────────

def _resolve_user(claims: dict) -> User:
    """Looks the `sub` claim up in the users directory."""
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        raise _invalid("The 'sub' claim in the access token is not a valid user ID.")

    user = db.session.get(User, user_id)
    if user is None:
        logger.warning("Rejected token for unknown user_id=%s", user_id)
        raise _invalid("The access token does not belong to a known user.")
    return user
