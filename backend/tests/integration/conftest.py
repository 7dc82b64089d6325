"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against an in-memory SQLite database by default
    (TestingConfig; set TEST_DATABASE_URL to use PostgreSQL instead).
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted and the read cache is cleared so
    tests are isolated.

Bearer tokens are minted here with the testing JWT secret, standing in for
the external identity service.

Helper functions (not fixtures) are provided for common operations:
  - make_token(...)        → signed bearer token
  - auth_headers(token)    → {"Authorization": "Bearer <token>"}
  - add_txn(...)           → HTTP response of POST /transactions
  - list_persons(...)      → the persons list for one view mode
  - find_person(...)       → one listed person dict, or None
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from backend.app import create_app
from backend.app.extensions import READ_CACHE_EXTENSION
from backend.app.extensions import db as _db
from backend.config import TestingConfig


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the Flask application in 'testing' mode once for the session."""
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
    Deletes all rows and clears the read cache after EVERY test.

    Transactions are deleted before persons so no row is left pointing at a
    missing person.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.execute(text("DELETE FROM activity_logs"))
        _db.session.execute(text("DELETE FROM settled_records"))
        _db.session.execute(text("DELETE FROM transactions"))
        _db.session.execute(text("DELETE FROM persons"))
        _db.session.commit()

    app.extensions[READ_CACHE_EXTENSION].clear()


# ═══════════════════════════════════════════════════════════════════════════
# Client and token fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def cache(app):
    return app.extensions[READ_CACHE_EXTENSION]


@pytest.fixture
def token():
    return make_token("user-1", "Kofi")


@pytest.fixture
def admin_token():
    return make_token("admin-1", "Abena", role="admin")


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_token(
    sub: str = "user-1",
    name: str | None = "Kofi",
    role: str | None = "user",
    expires_in: timedelta = timedelta(minutes=15),
    secret: str = TestingConfig.JWT_SECRET_KEY,
) -> str:
    """Signs a bearer token the way the identity service would."""
    now = datetime.now(timezone.utc)
    payload: dict = {"sub": sub, "iat": now, "exp": now + expires_in}
    if name is not None:
        payload["name"] = name
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def add_txn(
    client,
    token: str,
    person_name: str,
    amount: str,
    view_mode: str = "they-owe-me",
    description: str = "Test entry",
    **extra,
):
    """POSTs a new transaction and returns the HTTP response."""
    payload = {
        "person_name": person_name,
        "amount": amount,
        "view_mode": view_mode,
        "description": description,
    }
    payload.update(extra)
    return client.post("/api/v1/transactions", json=payload, headers=auth_headers(token))


def list_persons(client, token: str, view_mode: str = "they-owe-me", q: str | None = None) -> list[dict]:
    """GETs the persons listing and returns data["persons"]."""
    params = {"view_mode": view_mode}
    if q is not None:
        params["q"] = q
    resp = client.get("/api/v1/persons", query_string=params, headers=auth_headers(token))
    assert resp.status_code == 200, f"list_persons failed: {resp.get_json()}"
    return resp.get_json()["data"]["persons"]


def find_person(client, token: str, name: str, view_mode: str = "they-owe-me") -> dict | None:
    """Returns the listed person called `name`, or None."""
    for person in list_persons(client, token, view_mode):
        if person["name"] == name:
            return person
    return None


def person_id_for(client, token: str, name: str, view_mode: str = "they-owe-me") -> str:
    person = find_person(client, token, name, view_mode)
    assert person is not None, f"{name} is not listed under {view_mode}"
    return person["id"]
