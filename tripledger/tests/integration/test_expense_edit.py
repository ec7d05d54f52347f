"""
tests/integration/test_expense_edit.py — PATCH /trips/:trip_id/expenses/:expense_id

What this file proves:
  - Metadata edits (title, category, date) leave every share untouched
  - A new amount re-splits with the stored split values
  - A new split_method / participants array replaces the split as a whole
  - A rejected edit changes nothing in the database
  - settled survives only for participants whose share did not change
  - Only the payer or the trip owner may edit
"""

from __future__ import annotations

from decimal import Decimal

from .conftest import equal_between, headers_for, make_expense, make_party


def _patch(client, user_id, trip_id, expense_id, payload):
    return client.patch(
        f"/api/v1/trips/{trip_id}/expenses/{expense_id}",
        json=payload,
        headers=headers_for(user_id),
    )


def _get(client, user_id, trip_id, expense_id) -> dict:
    resp = client.get(
        f"/api/v1/trips/{trip_id}/expenses/{expense_id}",
        headers=headers_for(user_id),
    )
    return resp.get_json()["data"]


def _shares(expense: dict) -> dict:
    return {p["user_id"]: p["share"] for p in expense["participants"]}


# ═══════════════════════════════════════════════════════════════════════════
# Metadata-only edits
# ═══════════════════════════════════════════════════════════════════════════

def test_title_and_category_edit_keeps_shares(app, client):
    trip_id, (alice, bob, carol) = make_party(app, "Alice", "Bob", "Carol")
    created = make_expense(
        client, alice, trip_id, "100.00", equal_between(alice, bob, carol),
    ).get_json()["data"]

    resp = _patch(client, alice, trip_id, created["id"], {
        "title": "Seafood dinner",
        "category": "food",
        "date": "2026-06-05",
    })

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["title"] == "Seafood dinner"
    assert data["category"] == "food"
    assert data["date"] == "2026-06-05"
    assert _shares(data) == _shares(created)
    assert data["updated_at"] is not None


def test_payer_change_moves_the_credit(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    expense_id = make_expense(
        client, alice, trip_id, "40.00", equal_between(alice, bob),
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {"paid_by_user_id": bob})

    assert resp.status_code == 200
    balances = client.get(
        f"/api/v1/trips/{trip_id}/balances", headers=headers_for(alice),
    ).get_json()["data"]["balances"]
    assert {b["user_id"]: b["balance"] for b in balances} == {alice: "-20.00", bob: "20.00"}


# ═══════════════════════════════════════════════════════════════════════════
# Re-splitting edits
# ═══════════════════════════════════════════════════════════════════════════

def test_new_amount_re_splits_equal(app, client):
    trip_id, (alice, bob, carol) = make_party(app, "Alice", "Bob", "Carol")
    expense_id = make_expense(
        client, alice, trip_id, "100.00", equal_between(alice, bob, carol),
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {"amount": "90.00"})

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["amount"] == "90.00"
    assert set(_shares(data).values()) == {"30.00"}


def test_new_amount_re_splits_stored_percentages(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    expense_id = make_expense(
        client, alice, trip_id, "200.00",
        [{"user_id": alice, "value": "60"}, {"user_id": bob, "value": "40"}],
        split_method="percentage",
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {"amount": "50.00"})

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert _shares(data) == {alice: "30.00", bob: "20.00"}
    assert Decimal(data["participants"][0]["split_details"]["percentage"]["percentage"]) == 60


def test_four_place_weights_survive_storage_and_re_split(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    created = make_expense(
        client, alice, trip_id, "100.00",
        [{"user_id": alice, "value": "0.0001"}, {"user_id": bob, "value": "0.0003"}],
        split_method="shares",
    )
    assert created.status_code == 201
    expense_id = created.get_json()["data"]["id"]

    stored = _get(client, alice, trip_id, expense_id)
    detail = stored["participants"][1]["split_details"]["shares"]
    assert Decimal(detail["weight"]) == Decimal("0.0003")
    assert Decimal(detail["total_weight"]) == Decimal("0.0004")

    resp = _patch(client, alice, trip_id, expense_id, {"amount": "120.00"})

    assert resp.status_code == 200
    assert _shares(resp.get_json()["data"]) == {alice: "30.00", bob: "90.00"}


def test_four_place_percentages_survive_storage_and_re_split(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    expense_id = make_expense(
        client, alice, trip_id, "30.00",
        [{"user_id": alice, "value": "33.3333"}, {"user_id": bob, "value": "66.6667"}],
        split_method="percentage",
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {"amount": "60.00"})

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert _shares(data) == {alice: "20.00", bob: "40.00"}
    assert Decimal(data["participants"][0]["split_details"]["percentage"]["percentage"]) == Decimal("33.3333")


def test_over_precise_participants_on_edit_change_nothing(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    created = make_expense(
        client, alice, trip_id, "10.00", equal_between(alice, bob),
    ).get_json()["data"]

    resp = _patch(client, alice, trip_id, created["id"], {
        "split_method": "shares",
        "participants": [
            {"user_id": alice, "value": "0.00001"},
            {"user_id": bob, "value": "0"},
        ],
    })

    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT"
    after = _get(client, alice, trip_id, created["id"])
    assert after["split_method"] == "equal"
    assert _shares(after) == _shares(created)


def test_switch_to_custom_with_new_participants(app, client):
    trip_id, (alice, bob, carol) = make_party(app, "Alice", "Bob", "Carol")
    expense_id = make_expense(
        client, alice, trip_id, "60.00", equal_between(alice, bob, carol),
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {
        "split_method": "custom",
        "participants": [
            {"user_id": bob, "value": "45.00"},
            {"user_id": carol, "value": "15.00"},
        ],
    })

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["split_method"] == "custom"
    assert _shares(data) == {bob: "45.00", carol: "15.00"}


def test_switch_back_to_equal_reuses_participants(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    expense_id = make_expense(
        client, alice, trip_id, "30.00",
        [{"user_id": alice, "value": 2}, {"user_id": bob, "value": 1}],
        split_method="shares",
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {"split_method": "equal"})

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert _shares(data) == {alice: "15.00", bob: "15.00"}
    assert data["participants"][0]["split_details"] == {"equal": {"split_count": 2}}


def test_non_equal_switch_needs_participants(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    expense_id = make_expense(
        client, alice, trip_id, "30.00", equal_between(alice, bob),
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {"split_method": "percentage"})

    assert resp.status_code == 400
    assert resp.get_json()["error"]["field"] == "participants"


# ═══════════════════════════════════════════════════════════════════════════
# Rejected edits leave the expense untouched
# ═══════════════════════════════════════════════════════════════════════════

def test_bad_custom_split_changes_nothing(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    created = make_expense(
        client, alice, trip_id, "50.00", equal_between(alice, bob),
    ).get_json()["data"]

    resp = _patch(client, alice, trip_id, created["id"], {
        "title": "Renamed",
        "split_method": "custom",
        "participants": [
            {"user_id": alice, "value": "10.00"},
            {"user_id": bob, "value": "10.00"},
        ],
    })

    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "CUSTOM_AMOUNT_MISMATCH"
    stored = _get(client, alice, trip_id, created["id"])
    assert stored["title"] == created["title"]
    assert stored["split_method"] == "equal"
    assert _shares(stored) == _shares(created)


def test_zero_amount_rejected(app, client):
    trip_id, (alice,) = make_party(app, "Alice")
    expense_id = make_expense(
        client, alice, trip_id, "10.00", equal_between(alice),
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {"amount": "0.00"})

    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT"


def test_empty_body_rejected(app, client):
    trip_id, (alice,) = make_party(app, "Alice")
    expense_id = make_expense(
        client, alice, trip_id, "10.00", equal_between(alice),
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {})

    assert resp.status_code == 400


def test_currency_change_to_other_currency_rejected(app, client):
    trip_id, (alice,) = make_party(app, "Alice")
    expense_id = make_expense(
        client, alice, trip_id, "10.00", equal_between(alice),
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {"currency": "JPY"})

    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "CURRENCY_MISMATCH"


# ═══════════════════════════════════════════════════════════════════════════
# settled flag across edits
# ═══════════════════════════════════════════════════════════════════════════

def test_settled_kept_when_share_unchanged_and_reset_when_changed(app, client):
    trip_id, (alice, bob, carol) = make_party(app, "Alice", "Bob", "Carol")
    expense_id = make_expense(
        client, alice, trip_id, "30.00",
        [
            {"user_id": alice, "value": "10.00"},
            {"user_id": bob, "value": "10.00"},
            {"user_id": carol, "value": "10.00"},
        ],
        split_method="custom",
    ).get_json()["data"]["id"]
    for user_id in (bob, carol):
        client.post(
            f"/api/v1/trips/{trip_id}/expenses/{expense_id}/settle",
            json={"user_id": user_id},
            headers=headers_for(user_id),
        )

    resp = _patch(client, alice, trip_id, expense_id, {
        "participants": [
            {"user_id": alice, "value": "5.00"},
            {"user_id": bob, "value": "10.00"},
            {"user_id": carol, "value": "15.00"},
        ],
    })

    assert resp.status_code == 200
    settled = {p["user_id"]: p["settled"] for p in resp.get_json()["data"]["participants"]}
    assert settled == {alice: False, bob: True, carol: False}


# ═══════════════════════════════════════════════════════════════════════════
# Authorization
# ═══════════════════════════════════════════════════════════════════════════

def test_member_who_did_not_pay_cannot_edit(app, client):
    trip_id, (alice, bob, carol) = make_party(app, "Alice", "Bob", "Carol")
    expense_id = make_expense(
        client, bob, trip_id, "10.00", equal_between(bob, carol),
    ).get_json()["data"]["id"]

    resp = _patch(client, carol, trip_id, expense_id, {"title": "Mine now"})

    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "FORBIDDEN"


def test_trip_owner_can_edit_any_expense(app, client):
    trip_id, (alice, bob) = make_party(app, "Alice", "Bob")
    expense_id = make_expense(
        client, bob, trip_id, "10.00", equal_between(bob),
    ).get_json()["data"]["id"]

    resp = _patch(client, alice, trip_id, expense_id, {"title": "Fixed typo"})

    assert resp.status_code == 200


def test_unknown_expense(app, client):
    trip_id, (alice,) = make_party(app, "Alice")

    resp = _patch(client, alice, trip_id, 424242, {"title": "Ghost"})

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "EXPENSE_NOT_FOUND"
