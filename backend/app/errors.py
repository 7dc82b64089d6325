"""
errors.py — AppError base class and error code registry.

Every error returned by the ledger API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - A settlement whose archive is durable but whose delete step failed is NOT
    an error: it is reported as a warning alongside a 2xx response.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT             = "INVALID_AMOUNT"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_VIEW_MODE          = "INVALID_VIEW_MODE"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    PERSON_NOT_FOUND           = "PERSON_NOT_FOUND"
    TRANSACTION_NOT_FOUND      = "TRANSACTION_NOT_FOUND"
    NOT_FOUND                  = "NOT_FOUND"              # unknown route

    # ── State Conflicts (409) ──────────────────────────────────────────────
    TRANSACTION_ALREADY_SETTLED = "TRANSACTION_ALREADY_SETTLED"
    TRANSACTION_NOT_SETTLED     = "TRANSACTION_NOT_SETTLED"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (audit trail only)
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── Store Errors (503) ─────────────────────────────────────────────────
    STORE_UNAVAILABLE          = "STORE_UNAVAILABLE"
    # Settlement step 2 failed. Nothing was changed.
    ARCHIVE_FAILED             = "ARCHIVE_FAILED"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Payment larger than the outstanding balance. Still recorded.
    OVERPAYMENT = "OVERPAYMENT"

    # Settlement step 3 failed after the archive was written. The archive is
    # durable; active rows may still be listed until a retry removes them.
    DELETE_AFTER_ARCHIVE_FAILED = "DELETE_AFTER_ARCHIVE_FAILED"

    # The store could not be read; the payload is the last cached value.
    STALE_DATA = "STALE_DATA"
