"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

The session JWT travels only in the HTTP-only cookie; it is never part of the
response body.

Endpoints (url_prefix=/api/v1/auth):
  POST   /auth/register  → 201
  POST   /auth/login     → 200
  POST   /auth/logout    → 200
  GET    /auth/me        → 200
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from studybuddy.app.extensions import db
from studybuddy.app.middleware.auth_middleware import require_auth
from studybuddy.app.schemas.auth_schema import LoginSchema, RegisterSchema
from studybuddy.app.services import auth_service

auth_bp = Blueprint("auth", __name__)


def _set_auth_cookie(response, token: str, remember_me: bool):
    config = current_app.config
    max_age = (
        config["AUTH_COOKIE_MAX_AGE"]
        if remember_me
        else config["AUTH_SESSION_COOKIE_MAX_AGE"]
    )
    response.set_cookie(
        config["AUTH_COOKIE_NAME"],
        token,
        max_age=max_age,
        httponly=True,
        secure=config["AUTH_COOKIE_SECURE"],
        samesite=config["AUTH_COOKIE_SAMESITE"],
    )
    return response


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register — Create account and sign in. (No auth required.)"""
    data = RegisterSchema().load(request.get_json(force=True) or {})
    result = auth_service.register_user(
        name=data["name"],
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    response = jsonify({"data": {"user": result["user"]}, "warnings": []})
    response.status_code = 201
    return _set_auth_cookie(response, result["token"], data["remember_me"])


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate and set the session cookie. (No auth required.)"""
    data = LoginSchema().load(request.get_json(force=True) or {})
    result = auth_service.login_user(
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    response = jsonify({"data": {"user": result["user"]}, "warnings": []})
    return _set_auth_cookie(response, result["token"], data["remember_me"])


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """POST /auth/logout — Clear the session cookie. Safe to call when signed out."""
    response = jsonify({"data": {"message": "Logged out successfully."}, "warnings": []})
    response.delete_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        httponly=True,
        secure=current_app.config["AUTH_COOKIE_SECURE"],
        samesite=current_app.config["AUTH_COOKIE_SAMESITE"],
    )
    return response


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
