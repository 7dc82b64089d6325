"""
tests/integration/test_persons.py — Persons, transactions and the listing.

Endpoints covered:
  GET    /persons                       → 200
  POST   /persons                       → 200 / 201
  DELETE /persons/:id                   → 200
  POST   /transactions                  → 201
  POST   /transactions/:id/settle       → 200
  POST   /transactions/:id/unsettle     → 200
"""

from __future__ import annotations

import datetime as dt

from .conftest import (
    add_txn,
    auth_headers,
    find_person,
    list_persons,
    make_token,
    person_id_for,
)


# ═══════════════════════════════════════════════════════════════════════════
# POST /transactions
# ═══════════════════════════════════════════════════════════════════════════

class TestAddTransaction:

    def test_creates_person_on_first_use(self, client, token):
        resp = add_txn(client, token, "Ama", "120.00", description="Rent share")
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["person"]["name"] == "Ama"
        assert data["person"]["created"] is True
        assert data["transaction"]["amount"] == "120.00"
        assert data["transaction"]["original_amount"] == "120.00"
        assert data["transaction"]["settled"] is False
        assert data["transaction"]["type"] == "they-owe-me"

    def test_name_is_matched_case_insensitively(self, client, token):
        first = add_txn(client, token, "Ama", "10.00").get_json()["data"]
        second = add_txn(client, token, "AMA", "5.00").get_json()["data"]

        assert second["person"]["created"] is False
        assert second["person"]["id"] == first["person"]["id"]
        assert find_person(client, token, "Ama")["balance"] == "15.00"

    def test_i_owe_them_entry_is_stored_negative(self, client, token):
        resp = add_txn(client, token, "Yaw", "40.00", view_mode="i-owe-them")
        assert resp.get_json()["data"]["transaction"]["amount"] == "-40.00"

        assert find_person(client, token, "Yaw", "i-owe-them")["balance"] == "40.00"
        assert find_person(client, token, "Yaw", "they-owe-me") is None

    def test_zero_amount_is_stored_settled(self, client, token):
        resp = add_txn(client, token, "Esi", "0")
        assert resp.status_code == 201
        assert resp.get_json()["data"]["transaction"]["settled"] is True
        # No relevant entry, so not listed under either view.
        assert find_person(client, token, "Esi") is None

    def test_precision_error(self, client, token):
        resp = add_txn(client, token, "Ama", "10.125")
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_AMOUNT_PRECISION"
        assert error["field"] == "amount"

    def test_negative_amount_is_invalid_amount(self, client, token):
        resp = add_txn(client, token, "Ama", "-3.00")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT"

    def test_bad_view_mode(self, client, token):
        resp = add_txn(client, token, "Ama", "3.00", view_mode="sideways")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_VIEW_MODE"

    def test_missing_description(self, client, token):
        resp = client.post(
            "/api/v1/transactions",
            json={"person_name": "Ama", "amount": "3.00", "view_mode": "they-owe-me"},
            headers=auth_headers(token),
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# GET /persons
# ═══════════════════════════════════════════════════════════════════════════

class TestListing:

    def test_envelope_poll_interval_and_cache_header(self, client, token):
        add_txn(client, token, "Ama", "10.00")
        resp = client.get("/api/v1/persons", headers=auth_headers(token))

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["warnings"] == []
        assert body["data"]["view_mode"] == "they-owe-me"
        assert body["data"]["poll_interval_seconds"] == 5
        assert "max-age=60" in resp.headers["Cache-Control"]

    def test_balance_nets_payments_against_debts(self, client, token):
        add_txn(client, token, "Ama", "100.00")
        add_txn(client, token, "Ama", "25.00", view_mode="i-owe-them")

        ama = find_person(client, token, "Ama")
        assert ama["balance"] == "75.00"
        assert ama["direction"] == "they-owe-me"
        assert len(ama["transactions"]) == 2

    def test_overdue_flag(self, client, token):
        yesterday = (dt.date.today() - dt.timedelta(days=1)).isoformat()
        tomorrow = (dt.date.today() + dt.timedelta(days=1)).isoformat()
        add_txn(client, token, "Late", "10.00", due_date=yesterday)
        add_txn(client, token, "OnTime", "10.00", due_date=tomorrow)

        assert find_person(client, token, "Late")["overdue"] is True
        assert find_person(client, token, "OnTime")["overdue"] is False

    def test_most_recent_relevant_transaction(self, client, token):
        add_txn(client, token, "Ama", "10.00", description="Old", date="2026-01-01")
        add_txn(client, token, "Ama", "20.00", description="New", date="2026-02-01")

        recent = find_person(client, token, "Ama")["most_recent_transaction"]
        assert recent["description"] == "New"

    def test_search(self, client, token):
        add_txn(client, token, "Ama", "10.00", description="Concert tickets")
        add_txn(client, token, "Yaw", "10.00", description="Fuel")

        assert [p["name"] for p in list_persons(client, token, q="concert")] == ["Ama"]
        assert [p["name"] for p in list_persons(client, token, q="yA")] == ["Yaw"]
        assert list_persons(client, token, q="nothing-matches") == []

    def test_requires_token(self, client):
        resp = client.get("/api/v1/persons")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_expired_token(self, client):
        expired = make_token(expires_in=dt.timedelta(seconds=-5))
        resp = client.get("/api/v1/persons", headers=auth_headers(expired))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"

    def test_token_signed_with_other_secret(self, client):
        forged = make_token(secret="some-other-secret-that-is-long-enough")
        resp = client.get("/api/v1/persons", headers=auth_headers(forged))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"


# ═══════════════════════════════════════════════════════════════════════════
# POST /persons, DELETE /persons/:id
# ═══════════════════════════════════════════════════════════════════════════

class TestPersons:

    def test_find_or_create(self, client, token):
        created = client.post("/api/v1/persons", json={"name": "Kwame"}, headers=auth_headers(token))
        assert created.status_code == 201
        assert created.get_json()["data"]["exists"] is False

        again = client.post("/api/v1/persons", json={"name": " kwame "}, headers=auth_headers(token))
        assert again.status_code == 200
        assert again.get_json()["data"]["exists"] is True
        assert again.get_json()["data"]["id"] == created.get_json()["data"]["id"]

    def test_person_without_entries_is_not_listed(self, client, token):
        client.post("/api/v1/persons", json={"name": "Kwame"}, headers=auth_headers(token))
        assert find_person(client, token, "Kwame") is None

    def test_delete_removes_person_without_archiving(self, client, token):
        add_txn(client, token, "Ama", "50.00")
        person_id = person_id_for(client, token, "Ama")

        resp = client.delete(f"/api/v1/persons/{person_id}", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"deleted": True, "person_id": person_id}

        assert find_person(client, token, "Ama") is None
        settled = client.get("/api/v1/settled", headers=auth_headers(token)).get_json()["data"]
        assert settled == []

    def test_delete_unknown_person(self, client, token):
        resp = client.delete("/api/v1/persons/does-not-exist", headers=auth_headers(token))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "PERSON_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Per-entry settle / unsettle
# ═══════════════════════════════════════════════════════════════════════════

class TestSingleEntrySettle:

    def test_settle_then_unsettle_restores_amount(self, client, token):
        add_txn(client, token, "Ama", "30.00")
        txn = add_txn(client, token, "Ama", "20.00").get_json()["data"]["transaction"]

        settled = client.post(f"/api/v1/transactions/{txn['id']}/settle", headers=auth_headers(token))
        assert settled.status_code == 200
        body = settled.get_json()["data"]
        assert body["amount"] == "0.00"
        assert body["settled"] is True
        assert body["original_amount"] == "20.00"
        assert find_person(client, token, "Ama")["balance"] == "30.00"

        restored = client.post(f"/api/v1/transactions/{txn['id']}/unsettle", headers=auth_headers(token))
        assert restored.status_code == 200
        assert restored.get_json()["data"]["amount"] == "20.00"
        assert restored.get_json()["data"]["settled"] is False
        assert find_person(client, token, "Ama")["balance"] == "50.00"

    def test_unsettle_restores_direction(self, client, token):
        txn = add_txn(client, token, "Yaw", "15.00", view_mode="i-owe-them").get_json()["data"]["transaction"]
        client.post(f"/api/v1/transactions/{txn['id']}/settle", headers=auth_headers(token))

        restored = client.post(f"/api/v1/transactions/{txn['id']}/unsettle", headers=auth_headers(token))
        assert restored.get_json()["data"]["amount"] == "-15.00"

    def test_settle_twice_is_conflict(self, client, token):
        txn = add_txn(client, token, "Ama", "20.00").get_json()["data"]["transaction"]
        client.post(f"/api/v1/transactions/{txn['id']}/settle", headers=auth_headers(token))

        again = client.post(f"/api/v1/transactions/{txn['id']}/settle", headers=auth_headers(token))
        assert again.status_code == 409
        assert again.get_json()["error"]["code"] == "TRANSACTION_ALREADY_SETTLED"

    def test_unsettle_open_entry_is_conflict(self, client, token):
        txn = add_txn(client, token, "Ama", "20.00").get_json()["data"]["transaction"]
        resp = client.post(f"/api/v1/transactions/{txn['id']}/unsettle", headers=auth_headers(token))
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "TRANSACTION_NOT_SETTLED"

    def test_unknown_transaction(self, client, token):
        resp = client.post("/api/v1/transactions/nope/settle", headers=auth_headers(token))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "TRANSACTION_NOT_FOUND"
