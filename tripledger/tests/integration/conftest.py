"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
    TestingConfig points at in-memory SQLite unless TEST_DATABASE_URL names a
    real (PostgreSQL) database.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Users, trips and memberships are seeded straight through the session:
    the ledger does not issue accounts or tokens, the identity provider does.
    Access tokens are minted here with PyJWT and the testing JWT secret.

Helper functions (not fixtures) are provided for common operations:
  - make_user(app, ...)          → user id
  - make_trip(app, ...)          → trip id (owner + members seeded)
  - make_party(app, ...)         → (trip_id, [user ids]) in one call
  - token(user_id, ...)          → signed access token
  - auth_headers(token)          → {"Authorization": "Bearer <token>"}
  - headers_for(user_id)         → auth_headers(token(user_id))
  - make_expense(client, ...)    → HTTP response
  - make_settlement(client, ...) → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import delete

from tripledger.app import create_app
from tripledger.app.extensions import db as _db
from tripledger.app.models.expense import Expense
from tripledger.app.models.expense_participant import ExpenseParticipant
from tripledger.app.models.settlement import Settlement
from tripledger.app.models.trip import Trip
from tripledger.app.models.trip_member import TripMember
from tripledger.app.models.user import User

TEST_JWT_SECRET = "test-secret-key"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Steps:
      1. Create app with TestingConfig.
      2. Run db.create_all() to create all tables.
      3. Yield the app for the test session.
      4. Drop all tables at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order.

    autouse=True means this runs after EVERY test in the integration suite
    without needing to be declared in each test function.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        for model in (ExpenseParticipant, Settlement, Expense, TripMember, Trip, User):
            _db.session.execute(delete(model))
        _db.session.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_user(app, name: str = "Alice", email: str | None = None) -> int:
    """Inserts a user directly and returns its id."""
    if email is None:
        email = f"{name.lower().replace(' ', '.')}@test.com"
    with app.app_context():
        user = User(name=name, email=email)
        _db.session.add(user)
        _db.session.commit()
        return user.id


def make_trip(
    app,
    owner_id: int,
    member_ids: tuple[int, ...] | list[int] = (),
    currency: str = "USD",
    name: str = "Lisbon",
) -> int:
    """
    Inserts a trip owned by owner_id and returns its id.
    The owner gets a membership row too, the way the trip planner creates trips.
    """
    with app.app_context():
        trip = Trip(name=name, owner_user_id=owner_id, currency=currency)
        _db.session.add(trip)
        _db.session.flush()
        for user_id in (owner_id, *member_ids):
            _db.session.add(TripMember(trip_id=trip.id, user_id=user_id))
        _db.session.commit()
        return trip.id


def make_party(app, *names: str, currency: str = "USD") -> tuple[int, list[int]]:
    """
    make_party(app, "Alice", "Bob", "Carol") → (trip_id, [alice, bob, carol]).
    The first name owns the trip; the rest are members.
    """
    user_ids = [make_user(app, name) for name in names]
    trip_id = make_trip(app, user_ids[0], user_ids[1:], currency=currency)
    return trip_id, user_ids


def add_member(app, trip_id: int, user_id: int) -> None:
    with app.app_context():
        _db.session.add(TripMember(trip_id=trip_id, user_id=user_id))
        _db.session.commit()


def token(
    user_id,
    secret: str = TEST_JWT_SECRET,
    expires_in: timedelta = timedelta(minutes=15),
    **claims,
) -> str:
    """Mints an HS256 access token the way the identity provider does."""
    payload = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + expires_in,
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(access_token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {access_token}"}


def headers_for(user_id: int) -> dict:
    return auth_headers(token(user_id))


def make_expense(
    client,
    user_id: int,
    trip_id: int,
    amount: str,
    participants: list[dict],
    split_method: str = "equal",
    title: str = "Test Expense",
    **extra,
):
    """
    Creates an expense as user_id and returns the HTTP response.
    participants: [{"user_id": 1}, ...] for equal splits, with "value" for the others.
    """
    payload = {
        "title": title,
        "amount": amount,
        "split_method": split_method,
        "participants": participants,
        **extra,
    }
    return client.post(
        f"/api/v1/trips/{trip_id}/expenses",
        json=payload,
        headers=headers_for(user_id),
    )


def make_settlement(client, user_id: int, trip_id: int, to_user_id: int, amount: str, **extra):
    """Records a settlement from user_id to to_user_id and returns the HTTP response."""
    return client.post(
        f"/api/v1/trips/{trip_id}/settlements",
        json={"to_user_id": to_user_id, "amount": amount, **extra},
        headers=headers_for(user_id),
    )


def equal_between(*user_ids: int) -> list[dict]:
    return [{"user_id": uid} for uid in user_ids]
