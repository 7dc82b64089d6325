"""
middleware/auth_middleware.py — JWT authentication decorator.

The ledger does not issue tokens. An external identity provider signs them
with the shared JWT_SECRET_KEY; this module only verifies them.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature (HS256 by default)
  3. Checks token expiry
  4. Attaches actor_id (str), actor_name and role to flask.g
  5. Raises the appropriate 401 error if any step fails

@require_admin runs the same checks and then raises 403 FORBIDDEN unless
the token's role claim is "admin". It guards the activity trail.

Claims read:
  sub   (required) opaque actor id, stored as a string
  name  (optional) display name used in activity descriptions; defaults to sub
  role  (optional) "admin" or "user"; defaults to "user"

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
  FORBIDDEN      (403) — authenticated, but not an admin (require_admin only)
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode
from backend.app.services.audit_service import Actor


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Usage:
        @persons_bp.route("", methods=["GET"])
        @require_auth
        def list_persons():
            actor = current_actor()
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def require_admin(f: Callable) -> Callable:
    """Like require_auth, plus a 403 for non-admin actors."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        if g.role != "admin":
            raise AppError(
                ErrorCode.FORBIDDEN,
                "Only administrators can view the activity log.",
                403,
            )
        return f(*args, **kwargs)

    return decorated


def current_actor() -> Actor:
    """The authenticated actor of the current request."""
    return Actor(id=g.actor_id, name=g.actor_name, role=g.role)


def _authenticate_request() -> None:
    """
    Performs the full JWT authentication sequence and populates flask.g.

    Separated from the decorator wrapper so tests can call it directly
    inside a request context.
    """
    auth_header = request.headers.get("Authorization", "")

    # ── Step 1: Require Authorization header ──────────────────────────────
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    # ── Step 2: Parse "Bearer <token>" format ─────────────────────────────
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    # ── Step 3: Decode and verify the JWT ─────────────────────────────────
    try:
        payload = jwt.decode(
            parts[1],
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Sign in again to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    # ── Step 4: Extract the actor claims ──────────────────────────────────
    sub = payload.get("sub")
    if sub is None or not str(sub).strip():
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is missing the required 'sub' claim.",
            401,
        )

    role = payload.get("role") or "user"
    if role not in ("admin", "user"):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'role' claim in the access token must be 'admin' or 'user'.",
            401,
        )

    # ── Step 5: Attach the actor to flask.g ───────────────────────────────
    # Services never import flask.g; routes pass current_actor() down.
    g.actor_id = str(sub)
    g.actor_name = str(payload.get("name") or sub)
    g.role = role
