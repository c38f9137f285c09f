"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against create_app("testing"): in-memory SQLite by default, or
    the database named by TEST_DATABASE_URL (e.g. a PostgreSQL test DB).
  - The app is created once per session; all tables are created once via
    db.create_all().
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Authentication is cookie-based. The Flask test client keeps the cookie set by
register/login, so one client is one signed-in user. Tests that need several
users create one client each with app.test_client().

Helper functions (not fixtures) for common operations:
  - register(client, ...)      → user dict; client is now signed in
  - login(client, ...)         → user dict
  - signed_in(app, name)       → (client, user) for an extra user
  - make_group(client, ...)    → group detail dict
  - join_by_code(client, ...)  → HTTP response
  - request_join(client, ...)  → HTTP response
  - handle_request(...)        → HTTP response
  - make_session(...)          → HTTP response
  - upload_file(...)           → HTTP response

These are plain functions so they can be called with arbitrary arguments in
any test without fixture parameterization overhead.
"""

from __future__ import annotations

from io import BytesIO

import pytest
from sqlalchemy import text

from studybuddy.app import create_app
from studybuddy.app.extensions import db as _db

PASSWORD = "Password1"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the whole run,
    creates every table, and drops them at teardown.
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
    Deletes all rows after every test, children before parents.
    """
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.remove()

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM group_files"))
            conn.execute(text("DELETE FROM study_sessions"))
            conn.execute(text("DELETE FROM group_join_requests"))
            conn.execute(text("DELETE FROM group_members"))
            conn.execute(text("DELETE FROM study_groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


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

def register(
    client,
    name: str = "alice",
    email: str | None = None,
    password: str = PASSWORD,
    remember_me: bool = False,
) -> dict:
    """Registers a user and returns the user dict. The client keeps the cookie."""
    if email is None:
        email = f"{name.lower()}@test.com"
    resp = client.post(
        "/api/v1/auth/register",
        json={
            "name": name,
            "email": email,
            "password": password,
            "remember_me": remember_me,
        },
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]["user"]


def login(client, email: str, password: str = PASSWORD) -> dict:
    """Logs a user in and returns the user dict."""
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]["user"]


def signed_in(app, name: str) -> tuple:
    """A fresh client signed in as a newly registered user: (client, user)."""
    user_client = app.test_client()
    user = register(user_client, name=name)
    return user_client, user


def make_group(
    client,
    name: str = "Test Group",
    description: str | None = None,
) -> dict:
    """
    Creates a group and returns the group detail dict.
    The signed-in user becomes the owner and first member.
    """
    payload: dict = {"name": name}
    if description is not None:
        payload["description"] = description
    resp = client.post("/api/v1/groups/", json=payload)
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def join_by_code(client, code: str):
    return client.post("/api/v1/groups/join-by-code", json={"code": code})


def request_join(client, group_id: int):
    return client.post(f"/api/v1/groups/{group_id}/join")


def handle_request(client, group_id: int, request_id: int, action: str):
    return client.post(
        f"/api/v1/groups/{group_id}/requests/handle",
        json={"request_id": request_id, "action": action},
    )


def member_ids(client, group_id: int) -> set[int]:
    resp = client.get(f"/api/v1/groups/{group_id}/members")
    assert resp.status_code == 200, f"member_ids failed: {resp.get_json()}"
    return {m["id"] for m in resp.get_json()["data"]}


def make_session(
    client,
    group_id: int,
    scheduled_at: str,
    title: str = "Chapter 3 review",
    **extra,
):
    return client.post(
        f"/api/v1/groups/{group_id}/sessions",
        json={"title": title, "scheduled_at": scheduled_at, **extra},
    )


def upload_file(
    client,
    group_id: int,
    content: bytes = b"lecture notes",
    filename: str = "notes.txt",
    mime_type: str = "text/plain",
):
    return client.post(
        f"/api/v1/groups/{group_id}/files",
        data={"file": (BytesIO(content), filename, mime_type)},
        content_type="multipart/form-data",
    )
