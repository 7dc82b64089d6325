"""
schemas/ledger_schema.py — Marshmallow schemas for the ledger endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, decimal precision
      - INVALID_AMOUNT for NaN/Infinity and for out-of-range amounts
      - INVALID_VIEW_MODE for anything other than the two view modes
      - Non-empty-after-trim enforcement for names and descriptions
  - services/:
      - PERSON_NOT_FOUND / TRANSACTION_NOT_FOUND (404) — require DB lookups
      - OVERPAYMENT warning — requires the current balance
      - Settlement and reconciliation rules

Amounts are magnitudes on the wire. The sign stored in the ledger comes from
view_mode, never from the client.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
)

from backend.app.errors import ErrorCode
from backend.app.models.transaction import ViewMode

VIEW_MODES = [m.value for m in ViewMode]

# fields.Decimal rejects NaN/Infinity with the "special" message and
# unparseable input with "invalid"; both surface as INVALID_AMOUNT.
_AMOUNT_ERRORS = {
    "special": ErrorCode.INVALID_AMOUNT,
    "invalid": ErrorCode.INVALID_AMOUNT,
}


# ── Shared validators ──────────────────────────────────────────────────────

def _validate_precision(value: Decimal) -> None:
    # Decimal("10.123").as_tuple().exponent == -3 → 3 dp → REJECT
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_positive_amount(value: Decimal) -> None:
    """Strictly greater than zero, at most 2 decimal places."""
    if value <= Decimal("0"):
        raise ValidationError(ErrorCode.INVALID_AMOUNT)
    _validate_precision(value)


def _validate_nonnegative_amount(value: Decimal) -> None:
    """Zero allowed (direct edit to zero, zero-amount entries)."""
    if value < Decimal("0"):
        raise ValidationError(ErrorCode.INVALID_AMOUNT)
    _validate_precision(value)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _view_mode_field(**kwargs) -> fields.Str:
    return fields.Str(
        validate=validate.OneOf(VIEW_MODES, error=ErrorCode.INVALID_VIEW_MODE),
        **kwargs,
    )


class _ViewModeMixin:
    """Turns the validated view_mode string into a ViewMode member."""

    @post_load
    def _to_view_mode(self, data: dict, **kwargs) -> dict:
        if "view_mode" in data:
            data["view_mode"] = ViewMode(data["view_mode"])
        return data


# ── Query strings ──────────────────────────────────────────────────────────

class ViewModeQuerySchema(_ViewModeMixin, Schema):
    """
    GET /persons?view_mode=&q=

    view_mode defaults to they-owe-me. q is the free-text search applied to
    person names, descriptions, comments and amounts.
    """

    class Meta:
        unknown = EXCLUDE

    view_mode = _view_mode_field(load_default=ViewMode.THEY_OWE_ME.value)
    q = fields.Str(load_default=None, validate=validate.Length(max=255))


# ── Persons ────────────────────────────────────────────────────────────────

class CreatePersonSchema(Schema):
    """POST /persons — find-or-create by case-insensitive name."""

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=120),
            _validate_non_empty_after_trim,
        ],
    )
    signature = fields.Str(load_default=None, allow_none=True)

    @post_load
    def _strip(self, data: dict, **kwargs) -> dict:
        data["name"] = data["name"].strip()
        return data


# ── Transactions ───────────────────────────────────────────────────────────

class CreateTransactionSchema(_ViewModeMixin, Schema):
    """
    POST /transactions

    Field rules:
      person_name : required; the person is created on first use
      amount      : required, >= 0, max 2 dp. Zero is stored already settled.
      view_mode   : required; decides the stored sign
      date        : optional ISO date, defaults to today (service)
      due_date    : optional ISO date, used for the overdue flag
    """

    person_name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=120),
            _validate_non_empty_after_trim,
        ],
    )
    description = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=255),
            _validate_non_empty_after_trim,
        ],
    )
    amount = fields.Decimal(
        required=True,
        validate=_validate_nonnegative_amount,
        error_messages=_AMOUNT_ERRORS,
    )
    view_mode = _view_mode_field(required=True)
    comment = fields.Str(load_default=None, allow_none=True)
    date = fields.Date(load_default=None, allow_none=True)
    due_date = fields.Date(load_default=None, allow_none=True)
    signature = fields.Str(load_default=None, allow_none=True)

    @post_load
    def _strip(self, data: dict, **kwargs) -> dict:
        data["person_name"] = data["person_name"].strip()
        data["description"] = data["description"].strip()
        return data


class PaymentSchema(_ViewModeMixin, Schema):
    """
    POST /persons/:id/payments

    Overpayment is valid here; the service attaches a warning.
    """

    amount = fields.Decimal(
        required=True,
        validate=_validate_positive_amount,
        error_messages=_AMOUNT_ERRORS,
    )
    view_mode = _view_mode_field(required=True)
    description = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=255))
    comment = fields.Str(load_default=None, allow_none=True)
    date = fields.Date(load_default=None, allow_none=True)
    signature = fields.Str(load_default=None, allow_none=True)


class DirectEditSchema(_ViewModeMixin, Schema):
    """PUT /persons/:id/balance — amount is the desired displayed balance."""

    amount = fields.Decimal(
        required=True,
        validate=_validate_nonnegative_amount,
        error_messages=_AMOUNT_ERRORS,
    )
    view_mode = _view_mode_field(required=True)


class SettleSchema(_ViewModeMixin, Schema):
    """POST /persons/:id/settle"""

    view_mode = _view_mode_field(required=True)
    notes = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=1000))
