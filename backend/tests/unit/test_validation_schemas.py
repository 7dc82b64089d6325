"""
tests/unit/test_validation_schemas.py — Unit tests for the marshmallow schemas.

What this file proves:
  - Every schema accepts valid input and returns Decimal / ViewMode values
  - Decimal precision, sign and finiteness rules are enforced in the schema
  - The error messages are registered ErrorCode constants where the API
    promises a specific code

Schemas inherit from marshmallow.Schema directly, so no app context is needed.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest
from marshmallow import ValidationError

from backend.app.errors import ErrorCode
from backend.app.models.transaction import ViewMode
from backend.app.schemas.ledger_schema import (
    CreatePersonSchema,
    CreateTransactionSchema,
    DirectEditSchema,
    PaymentSchema,
    SettleSchema,
    ViewModeQuerySchema,
)


def _first_error(exc: pytest.ExceptionInfo, field: str) -> str:
    return exc.value.messages[field][0]


# ═══════════════════════════════════════════════════════════════════════════
# CreateTransactionSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateTransactionSchema:

    def _valid(self, **overrides) -> dict:
        payload = {
            "person_name": "  Ama  ",
            "description": "Lunch",
            "amount": "12.50",
            "view_mode": "they-owe-me",
        }
        payload.update(overrides)
        return payload

    def test_valid_payload(self):
        result = CreateTransactionSchema().load(self._valid(due_date="2026-04-01"))
        assert result["person_name"] == "Ama"
        assert result["amount"] == Decimal("12.50")
        assert result["view_mode"] is ViewMode.THEY_OWE_ME
        assert result["due_date"] == dt.date(2026, 4, 1)
        assert result["date"] is None

    def test_zero_amount_allowed(self):
        result = CreateTransactionSchema().load(self._valid(amount="0"))
        assert result["amount"] == Decimal("0")

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError) as exc:
            CreateTransactionSchema().load(self._valid(amount="-1.00"))
        assert _first_error(exc, "amount") == ErrorCode.INVALID_AMOUNT

    def test_three_decimal_places_rejected(self):
        with pytest.raises(ValidationError) as exc:
            CreateTransactionSchema().load(self._valid(amount="10.125"))
        assert _first_error(exc, "amount") == ErrorCode.INVALID_AMOUNT_PRECISION

    def test_nan_rejected_as_invalid_amount(self):
        with pytest.raises(ValidationError) as exc:
            CreateTransactionSchema().load(self._valid(amount="NaN"))
        assert _first_error(exc, "amount") == ErrorCode.INVALID_AMOUNT

    def test_non_numeric_rejected_as_invalid_amount(self):
        with pytest.raises(ValidationError) as exc:
            CreateTransactionSchema().load(self._valid(amount="ten"))
        assert _first_error(exc, "amount") == ErrorCode.INVALID_AMOUNT

    def test_unknown_view_mode_rejected(self):
        with pytest.raises(ValidationError) as exc:
            CreateTransactionSchema().load(self._valid(view_mode="we-are-even"))
        assert _first_error(exc, "view_mode") == ErrorCode.INVALID_VIEW_MODE

    def test_blank_description_rejected(self):
        with pytest.raises(ValidationError) as exc:
            CreateTransactionSchema().load(self._valid(description="   "))
        assert "description" in exc.value.messages

    def test_missing_person_name_rejected(self):
        payload = self._valid()
        del payload["person_name"]
        with pytest.raises(ValidationError) as exc:
            CreateTransactionSchema().load(payload)
        assert "person_name" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# PaymentSchema / DirectEditSchema / SettleSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestPaymentSchema:

    def test_valid_payment(self):
        result = PaymentSchema().load({"amount": "40", "view_mode": "i-owe-them"})
        assert result["amount"] == Decimal("40")
        assert result["view_mode"] is ViewMode.I_OWE_THEM

    def test_zero_payment_rejected(self):
        with pytest.raises(ValidationError) as exc:
            PaymentSchema().load({"amount": "0.00", "view_mode": "they-owe-me"})
        assert _first_error(exc, "amount") == ErrorCode.INVALID_AMOUNT

    def test_infinite_payment_rejected(self):
        with pytest.raises(ValidationError) as exc:
            PaymentSchema().load({"amount": "Infinity", "view_mode": "they-owe-me"})
        assert _first_error(exc, "amount") == ErrorCode.INVALID_AMOUNT

    def test_view_mode_required(self):
        with pytest.raises(ValidationError) as exc:
            PaymentSchema().load({"amount": "5.00"})
        assert "view_mode" in exc.value.messages


class TestDirectEditSchema:

    def test_zero_target_allowed(self):
        result = DirectEditSchema().load({"amount": "0", "view_mode": "they-owe-me"})
        assert result["amount"] == Decimal("0")

    def test_negative_target_rejected(self):
        with pytest.raises(ValidationError) as exc:
            DirectEditSchema().load({"amount": "-5", "view_mode": "they-owe-me"})
        assert _first_error(exc, "amount") == ErrorCode.INVALID_AMOUNT


class TestSettleSchema:

    def test_notes_optional(self):
        result = SettleSchema().load({"view_mode": "they-owe-me"})
        assert result["notes"] is None
        assert result["view_mode"] is ViewMode.THEY_OWE_ME


# ═══════════════════════════════════════════════════════════════════════════
# Query and person schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestViewModeQuerySchema:

    def test_defaults_to_they_owe_me(self):
        result = ViewModeQuerySchema().load({})
        assert result["view_mode"] is ViewMode.THEY_OWE_ME
        assert result["q"] is None

    def test_unknown_query_params_ignored(self):
        result = ViewModeQuerySchema().load({"view_mode": "i-owe-them", "page": "2"})
        assert result["view_mode"] is ViewMode.I_OWE_THEM

    def test_bad_view_mode_rejected(self):
        with pytest.raises(ValidationError) as exc:
            ViewModeQuerySchema().load({"view_mode": "both"})
        assert _first_error(exc, "view_mode") == ErrorCode.INVALID_VIEW_MODE


class TestCreatePersonSchema:

    def test_name_is_trimmed(self):
        assert CreatePersonSchema().load({"name": "  Yaw "})["name"] == "Yaw"

    def test_whitespace_name_rejected(self):
        with pytest.raises(ValidationError) as exc:
            CreatePersonSchema().load({"name": "   "})
        assert "name" in exc.value.messages

    def test_name_too_long_rejected(self):
        with pytest.raises(ValidationError) as exc:
            CreatePersonSchema().load({"name": "a" * 121})
        assert "name" in exc.value.messages
