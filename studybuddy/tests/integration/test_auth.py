"""
tests/integration/test_auth.py — Integration tests for authentication endpoints.

Endpoints covered:
  POST /auth/register  → 201
  POST /auth/login     → 200
  POST /auth/logout    → 200
  GET  /auth/me        → 200

Error cases:
  DUPLICATE_EMAIL       409 — email already registered
  INVALID_CREDENTIALS   401 — wrong password / unknown email
  TOKEN_MISSING         401 — no session cookie
  TOKEN_EXPIRED         401 — expired JWT
  TOKEN_INVALID         401 — malformed or tampered JWT
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from .conftest import PASSWORD, login, register


def _auth_cookie_header(resp) -> str:
    cookies = [c for c in resp.headers.getlist("Set-Cookie") if c.startswith("jwt=")]
    assert len(cookies) == 1, resp.headers.getlist("Set-Cookie")
    return cookies[0]


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/register
# ═══════════════════════════════════════════════════════════════════════════

class TestRegister:

    def test_register_success_returns_201_and_sets_cookie(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice",
            "email": "alice@test.com",
            "password": PASSWORD,
        })
        assert resp.status_code == 201
        user = resp.get_json()["data"]["user"]
        assert user["name"] == "Alice"
        assert user["email"] == "alice@test.com"
        assert user["role"] == "USER"
        assert isinstance(user["id"], int)
        # Credentials never appear in the response body.
        assert "password" not in user
        assert "password_hash" not in user
        assert "token" not in resp.get_json()["data"]

        cookie = _auth_cookie_header(resp)
        assert "HttpOnly" in cookie
        assert "SameSite=Lax" in cookie
        assert "Max-Age=86400" in cookie

    def test_remember_me_sets_seven_day_cookie(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice",
            "email": "alice@test.com",
            "password": PASSWORD,
            "remember_me": True,
        })
        assert resp.status_code == 201
        assert f"Max-Age={7 * 24 * 60 * 60}" in _auth_cookie_header(resp)

    def test_email_is_stored_lowercase(self, client):
        user = register(client, "Alice", email="Alice@Test.com")
        assert user["email"] == "alice@test.com"

    def test_duplicate_email_returns_409_duplicate_email(self, client, app):
        register(client, "Alice", email="shared@test.com")
        resp = app.test_client().post("/api/v1/auth/register", json={
            "name": "Alicia", "email": "shared@test.com", "password": PASSWORD,
        })
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "DUPLICATE_EMAIL"
        assert error["field"] == "email"

    def test_short_password_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice", "email": "alice@test.com", "password": "short",
        })
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_FIELD"
        assert error["field"] == "password"

    def test_blank_name_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "   ", "email": "alice@test.com", "password": PASSWORD,
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "name"

    def test_invalid_email_format_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice", "email": "not-an-email", "password": PASSWORD,
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "email"

    def test_missing_fields_return_400_missing_field(self, client):
        resp = client.post("/api/v1/auth/register", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_login_success_returns_200_and_sets_cookie(self, client, app):
        register(client, "Alice")
        other = app.test_client()
        resp = other.post("/api/v1/auth/login", json={
            "email": "alice@test.com", "password": PASSWORD,
        })
        assert resp.status_code == 200
        assert resp.get_json()["data"]["user"]["email"] == "alice@test.com"
        _auth_cookie_header(resp)

        assert other.get("/api/v1/auth/me").status_code == 200

    def test_login_is_case_insensitive_on_email(self, client, app):
        register(client, "Alice")
        user = login(app.test_client(), "ALICE@test.com")
        assert user["name"] == "Alice"

    def test_wrong_password_returns_401_invalid_credentials(self, client):
        register(client, "Alice")
        resp = client.post("/api/v1/auth/login", json={
            "email": "alice@test.com", "password": "WrongPassword1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_unknown_email_returns_401_invalid_credentials(self, client):
        resp = client.post("/api/v1/auth/login", json={
            "email": "ghost@test.com", "password": PASSWORD,
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_missing_fields_return_400(self, client):
        resp = client.post("/api/v1/auth/login", json={"email": "alice@test.com"})
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "MISSING_FIELD"
        assert error["field"] == "password"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/logout
# ═══════════════════════════════════════════════════════════════════════════

class TestLogout:

    def test_logout_clears_cookie(self, client):
        register(client, "Alice")
        assert client.get("/api/v1/auth/me").status_code == 200

        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200

        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_logout_when_signed_out_is_ok(self, client):
        assert client.post("/api/v1/auth/logout").status_code == 200


# ═══════════════════════════════════════════════════════════════════════════
# GET /auth/me
# ═══════════════════════════════════════════════════════════════════════════

class TestMe:

    def test_me_returns_user_profile(self, client):
        register(client, "Alice")
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        user = resp.get_json()["data"]
        assert user["name"] == "Alice"
        assert user["email"] == "alice@test.com"
        assert "created_at" in user
        assert "password_hash" not in user

    def test_me_without_cookie_returns_401_token_missing(self, client):
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_me_with_garbage_cookie_returns_401_token_invalid(self, client):
        client.set_cookie("jwt", "bad.token.here")
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_me_with_wrong_signature_returns_401_token_invalid(self, client):
        user = register(client, "Alice")
        forged = jwt.encode(
            {"sub": str(user["id"]), "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "not-the-secret",
            algorithm="HS256",
        )
        client.set_cookie("jwt", forged)
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_me_with_expired_token_returns_401_token_expired(self, client, app):
        user = register(client, "Alice")
        expired = jwt.encode(
            {
                "sub": str(user["id"]),
                "iat": datetime.now(timezone.utc) - timedelta(hours=2),
                "exp": datetime.now(timezone.utc) - timedelta(hours=1),
            },
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        client.set_cookie("jwt", expired)
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"

    def test_token_for_deleted_user_returns_404(self, client, app):
        token = jwt.encode(
            {"sub": "999999", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        client.set_cookie("jwt", token)
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Error envelope format
# ═══════════════════════════════════════════════════════════════════════════

class TestErrorEnvelope:

    def test_error_response_has_correct_envelope(self, client):
        resp = client.post("/api/v1/auth/login", json={
            "email": "nobody@test.com", "password": PASSWORD,
        })
        body = resp.get_json()
        assert "error" in body
        error = body["error"]
        assert "code" in error
        assert "message" in error
        assert "Traceback" not in str(body)

    def test_success_response_has_data_and_warnings_keys(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Carol", "email": "carol@test.com", "password": PASSWORD,
        })
        body = resp.get_json()
        assert "data" in body
        assert body["warnings"] == []

    def test_unknown_route_returns_json_404(self, client):
        resp = client.get("/api/v1/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_FOUND"

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "ok"
