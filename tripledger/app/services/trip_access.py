"""
services/trip_access.py — Trip lookup and access checks shared by services.

Access rule: a user may read and write a trip's ledger when they are the
trip owner or hold a TripMember row. Non-members get 403, not 404, so a
caller can tell "no such trip" from "not yours".

No Flask imports. Receives plain ints; raises AppError.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from tripledger.app.errors import AppError, ErrorCode
from tripledger.app.models.trip import Trip
from tripledger.app.models.trip_member import TripMember


def get_trip_or_404(trip_id: int, session: Session) -> Trip:
    """Returns the Trip or raises TRIP_NOT_FOUND (404)."""
    trip = session.get(Trip, trip_id)
    if trip is None:
        raise AppError(
            ErrorCode.TRIP_NOT_FOUND,
            f"Trip {trip_id} does not exist.",
            404,
        )
    return trip


def get_member_ids(trip: Trip, session: Session) -> list[int]:
    """
    Returns the user_ids of everyone in the trip, owner first.

    The owner normally has a membership row too; it is listed once either way.
    """
    stmt = (
        select(TripMember.user_id)
        .where(TripMember.trip_id == trip.id)
        .order_by(TripMember.id)
    )
    member_ids = [trip.owner_user_id]
    for user_id in session.execute(stmt).scalars().all():
        if user_id not in member_ids:
            member_ids.append(user_id)
    return member_ids


def require_trip_access(trip: Trip, user_id: int, session: Session) -> None:
    """Raises FORBIDDEN (403) unless user_id owns or belongs to the trip."""
    if user_id == trip.owner_user_id:
        return

    membership = session.execute(
        select(TripMember.id).where(
            TripMember.trip_id == trip.id,
            TripMember.user_id == user_id,
        )
    ).scalar_one_or_none()

    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You do not have access to trip {trip.id}.",
            403,
        )


def get_accessible_trip(trip_id: int, user_id: int, session: Session) -> Trip:
    """get_trip_or_404 followed by require_trip_access."""
    trip = get_trip_or_404(trip_id, session)
    require_trip_access(trip, user_id, session)
    return trip


def require_trip_currency(currency: str | None, trip: Trip, field: str = "currency") -> str:
    """
    Returns the currency to book in, defaulting to the trip currency.

    Raises CURRENCY_MISMATCH (422) for any other currency. Balances are
    netted per trip, so every row in a trip shares one currency.
    """
    if currency is None:
        return trip.currency
    if currency.upper() != trip.currency:
        raise AppError(
            ErrorCode.CURRENCY_MISMATCH,
            f"Trip {trip.id} is booked in {trip.currency}; got {currency.upper()}.",
            422,
            field=field,
        )
    return trip.currency
