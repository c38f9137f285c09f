"""
middleware/auth_middleware.py — JWT cookie authentication decorator.

The @require_auth decorator:
  1. Reads the session cookie (name from AUTH_COOKIE_NAME, default "jwt")
  2. Decodes and verifies the JWT signature using HS256
  3. Checks token expiry
  4. Attaches user_id (int) to flask.g for the duration of the request
  5. Raises the appropriate 401 error if any step fails

Responsibility boundary:
  - This middleware authenticates (401) only. Group membership and ownership
    are checked in the service layer (403).
  - Services receive user_id as a plain integer argument, with no knowledge
    of JWT or cookies.

Error codes:
  TOKEN_MISSING  (401) — no session cookie
  TOKEN_INVALID  (401) — invalid signature, malformed token or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from studybuddy.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT cookie authentication.

    Attaches the authenticated user's ID to flask.g.user_id.
    Raises AppError for all auth failures; the global error handler converts
    these to the JSON response. Routes never catch AppError.

    Usage:
        @groups_bp.route("/", methods=["GET"])
        @require_auth
        def list_groups():
            user_id = g.user_id  # always an int when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Performs the full JWT authentication sequence and sets flask.g.user_id.

    Raises AppError on any authentication failure.
    """
    raw_token = request.cookies.get(current_app.config["AUTH_COOKIE_NAME"], "")

    # ── Step 1: Require the cookie ────────────────────────────────────────
    if not raw_token:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Please log in.",
            401,
        )

    # ── Step 2: Decode and verify the JWT ─────────────────────────────────
    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "Your session has expired. Please log in again.",
            401,
        )
    except jwt.InvalidTokenError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The session token is invalid or has been tampered with.",
            401,
        )

    # ── Step 3: Extract and validate the sub (user_id) claim ──────────────
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The session token does not identify a user.",
            401,
        )

    g.user_id = user_id
