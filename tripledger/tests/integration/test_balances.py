"""
tests/integration/test_balances.py — GET /trips/:trip_id/balances

What this file proves:
  - Net balance per member = paid - owed + completed sent - completed received
  - Members with no activity still appear with 0.00
  - Pending and cancelled settlements do not move balances
  - Equal-split remainder cents surface as a BALANCE_SUM_MISMATCH warning,
    never as an error
  - simplified_debts is the minimal transfer plan
"""

from __future__ import annotations

from decimal import Decimal

from .conftest import (
    equal_between,
    headers_for,
    make_expense,
    make_party,
    make_settlement,
    make_user,
)


def _balances(client, user_id, trip_id):
    return client.get(f"/api/v1/trips/{trip_id}/balances", headers=headers_for(user_id))


def _by_user(data: dict) -> dict:
    return {b["user_id"]: b["balance"] for b in data["balances"]}


def _transfers(data: dict) -> list[tuple]:
    return [(t["from_user_id"], t["to_user_id"], t["amount"]) for t in data["simplified_debts"]]


def _complete(client, user_id, trip_id, settlement_id):
    return client.patch(
        f"/api/v1/trips/{trip_id}/settlements/{settlement_id}",
        json={"status": "completed"},
        headers=headers_for(user_id),
    )


def test_new_trip_everyone_even(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")

    resp = _balances(client, alice, trip_id)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["warnings"] == []
    assert _by_user(body["data"]) == {alice: "0.00", bob: "0.00"}
    assert body["data"]["simplified_debts"] == []
    assert body["data"]["currency"] == "USD"


def test_two_expenses_net_out(app, client):
    trip_id, (alice, bob, carol) = make_party(app, "Alice", "Bob", "Carol")
    make_expense(client, alice, trip_id, "90.00", equal_between(alice, bob, carol))
    make_expense(client, bob, trip_id, "30.00", equal_between(bob, carol))

    body = _balances(client, carol, trip_id).get_json()
    data = body["data"]

    assert _by_user(data) == {alice: "60.00", bob: "-15.00", carol: "-45.00"}
    assert Decimal(data["balance_sum"]) == 0
    assert _transfers(data) == [(carol, alice, "45.00"), (bob, alice, "15.00")]
    assert data["simplified_debts"][0]["from_name"] == "Carol"
    assert data["simplified_debts"][0]["to_name"] == "Alice"
    assert body["warnings"] == []


def test_remainder_cent_is_a_warning_not_an_error(app, client):
    trip_id, (alice, bob, carol) = make_party(app, "Alice", "Bob", "Carol")
    make_expense(client, alice, trip_id, "100.00", equal_between(alice, bob, carol))

    resp = _balances(client, bob, trip_id)

    assert resp.status_code == 200
    body = resp.get_json()
    assert _by_user(body["data"]) == {alice: "66.67", bob: "-33.33", carol: "-33.33"}
    assert body["data"]["balance_sum"] == "0.01"
    assert [w["code"] for w in body["warnings"]] == ["BALANCE_SUM_MISMATCH"]
    assert body["warnings"][0]["delta"] == "0.01"
    transfers = _transfers(body["data"])
    assert sorted(t[0] for t in transfers) == sorted([bob, carol])
    assert {t[1] for t in transfers} == {alice}
    assert {t[2] for t in transfers} == {"33.33"}


def test_member_without_expenses_is_listed(app, client):
    trip_id, (alice, bob, carol) = make_party(app, "Alice", "Bob", "Carol")
    make_expense(client, alice, trip_id, "10.00", equal_between(alice, bob))

    data = _balances(client, alice, trip_id).get_json()["data"]

    assert _by_user(data)[carol] == "0.00"


def test_payer_outside_split_is_owed_everything(app, client):
    trip_id, (alice, bob, carol) = make_party(app, "Alice", "Bob", "Carol")
    make_expense(
        client, alice, trip_id, "40.00", equal_between(bob, carol),
    )

    data = _balances(client, alice, trip_id).get_json()["data"]

    assert _by_user(data) == {alice: "40.00", bob: "-20.00", carol: "-20.00"}


# ═══════════════════════════════════════════════════════════════════════════
# Settlements and balances
# ═══════════════════════════════════════════════════════════════════════════

def test_pending_settlement_does_not_move_balances(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    make_expense(client, alice, trip_id, "50.00", equal_between(alice, bob))
    make_settlement(client, bob, trip_id, alice, "25.00")

    data = _balances(client, alice, trip_id).get_json()["data"]

    assert _by_user(data) == {alice: "25.00", bob: "-25.00"}


def test_completed_settlement_clears_the_debt(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    make_expense(client, alice, trip_id, "50.00", equal_between(alice, bob))
    settlement_id = make_settlement(
        client, bob, trip_id, alice, "25.00",
    ).get_json()["data"]["id"]

    _complete(client, alice, trip_id, settlement_id)
    data = _balances(client, alice, trip_id).get_json()["data"]

    assert _by_user(data) == {alice: "0.00", bob: "0.00"}
    assert data["simplified_debts"] == []


def test_partial_settlement(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    make_expense(client, alice, trip_id, "50.00", equal_between(alice, bob))
    make_settlement(client, bob, trip_id, alice, "10.00", status="completed")

    data = _balances(client, bob, trip_id).get_json()["data"]

    assert _by_user(data) == {alice: "15.00", bob: "-15.00"}
    assert _transfers(data) == [(bob, alice, "15.00")]


def test_cancelled_settlement_is_ignored(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    make_expense(client, alice, trip_id, "50.00", equal_between(alice, bob))
    settlement_id = make_settlement(
        client, bob, trip_id, alice, "25.00",
    ).get_json()["data"]["id"]
    client.patch(
        f"/api/v1/trips/{trip_id}/settlements/{settlement_id}",
        json={"status": "cancelled"},
        headers=headers_for(bob),
    )

    data = _balances(client, bob, trip_id).get_json()["data"]

    assert _by_user(data) == {alice: "25.00", bob: "-25.00"}


def test_overpayment_flips_the_direction(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    make_expense(client, alice, trip_id, "20.00", equal_between(alice, bob))
    make_settlement(client, bob, trip_id, alice, "30.00", status="completed")

    data = _balances(client, bob, trip_id).get_json()["data"]

    assert _by_user(data) == {alice: "-20.00", bob: "20.00"}
    assert _transfers(data) == [(alice, bob, "20.00")]


# ═══════════════════════════════════════════════════════════════════════════
# Access
# ═══════════════════════════════════════════════════════════════════════════

def test_outsider_is_forbidden(app, client):
    trip_id, _ = make_party(app, "Alice")
    outsider = make_user(app, "Mallory")

    resp = _balances(client, outsider, trip_id)

    assert resp.status_code == 403


def test_unknown_trip(app, client):
    alice = make_user(app, "Alice")

    resp = _balances(client, alice, 31337)

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "TRIP_NOT_FOUND"
