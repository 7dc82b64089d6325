"""
tests/integration/test_payments.py — Payments and payment-triggered settlement.

Endpoint covered:
  POST /persons/:id/payments → 201

Scenarios:
  A  entries [+500, +300] under they-owe-me → balance 800
  B  payment 500 → a -500 entry is inserted, balance 300, no settlement
  C  payment 300 → balance 0, auto-settlement archives the balance that
     existed immediately before the zeroing payment (300)
"""

from __future__ import annotations

from .conftest import add_txn, auth_headers, find_person, person_id_for


def _pay(client, token, person_id: str, amount: str, view_mode: str = "they-owe-me"):
    return client.post(
        f"/api/v1/persons/{person_id}/payments",
        json={"amount": amount, "view_mode": view_mode},
        headers=auth_headers(token),
    )


def _alex(client, token) -> str:
    add_txn(client, token, "Alex", "500", description="Laptop")
    add_txn(client, token, "Alex", "300", description="Phone")
    return person_id_for(client, token, "Alex")


class TestScenarios:

    def test_a_balance_is_sum_of_debts(self, client, token):
        _alex(client, token)
        assert find_person(client, token, "Alex")["balance"] == "800.00"

    def test_b_partial_payment_inserts_opposite_entry(self, client, token):
        alex_id = _alex(client, token)

        resp = _pay(client, token, alex_id, "500")
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["warnings"] == []
        assert body["data"]["payment"]["amount"] == "-500.00"
        assert body["data"]["payment"]["is_payment"] is True
        assert body["data"]["balance"] == "300.00"
        assert body["data"]["settled"] is False
        assert body["data"]["settlement"] is None

        assert find_person(client, token, "Alex")["balance"] == "300.00"

    def test_c_zeroing_payment_settles_and_archives(self, client, token):
        alex_id = _alex(client, token)
        _pay(client, token, alex_id, "500")

        resp = _pay(client, token, alex_id, "300")
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["settled"] is True
        assert data["balance"] == "0.00"

        settlement = data["settlement"]
        assert settlement["total_amount"] == "300.00"
        assert settlement["notes"] == "Settled via full payment of FCFA 300.00"
        assert settlement["active_rows_removed"] is True

        # Person and active rows are gone.
        assert find_person(client, token, "Alex") is None
        assert find_person(client, token, "Alex", "i-owe-them") is None

        archives = client.get("/api/v1/settled", headers=auth_headers(token)).get_json()["data"]
        assert len(archives) == 1
        archive = archives[0]
        assert archive["person_name"] == "Alex"
        assert archive["total_amount"] == "300.00"
        assert archive["type"] == "they-owe-me"
        assert archive["settled_by_user_id"] == "user-1"
        # The frozen copy includes both debts and both payments.
        assert sorted(t["amount"] for t in archive["transactions"]) == sorted(
            ["500.00", "300.00", "-500.00", "-300.00"]
        )


class TestPaymentRules:

    def test_overpayment_is_recorded_with_warning(self, client, token):
        add_txn(client, token, "Ama", "50.00")
        ama_id = person_id_for(client, token, "Ama")

        resp = _pay(client, token, ama_id, "80.00")
        assert resp.status_code == 201
        body = resp.get_json()
        assert [w["code"] for w in body["warnings"]] == ["OVERPAYMENT"]
        assert body["data"]["balance"] == "30.00"
        assert body["data"]["settled"] is False

        # The balance now reads as "I owe them".
        assert find_person(client, token, "Ama", "i-owe-them")["balance"] == "30.00"

    def test_i_owe_them_payment_is_positive(self, client, token):
        add_txn(client, token, "Yaw", "70.00", view_mode="i-owe-them")
        yaw_id = person_id_for(client, token, "Yaw", "i-owe-them")

        resp = _pay(client, token, yaw_id, "20.00", view_mode="i-owe-them")
        assert resp.get_json()["data"]["payment"]["amount"] == "20.00"
        assert find_person(client, token, "Yaw", "i-owe-them")["balance"] == "50.00"

    def test_payment_within_epsilon_settles(self, client, token):
        add_txn(client, token, "Ama", "10.00")
        ama_id = person_id_for(client, token, "Ama")

        resp = _pay(client, token, ama_id, "10.00")
        assert resp.get_json()["data"]["settled"] is True

    def test_zero_payment_is_rejected(self, client, token):
        add_txn(client, token, "Ama", "10.00")
        ama_id = person_id_for(client, token, "Ama")

        resp = _pay(client, token, ama_id, "0")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT"

    def test_unknown_person(self, client, token):
        resp = _pay(client, token, "missing", "10.00")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "PERSON_NOT_FOUND"
