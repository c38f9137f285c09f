"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - User registration and credential validation
  - JWT session token creation (HS256)
  - Password hashing (bcrypt) and verification

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP cookies; the route sets the cookie
  - current_app.config is used ONLY to read the JWT secret, JWT expiry and the
    bcrypt cost factor.

Token design:
  - One JWT per login, HS256, sub = user_id (str), plus email, iat, exp, jti.
  - Carried in a single HTTP-only cookie. There is no refresh token: when the
    JWT expires the user logs in again.

Password storage:
  - Hashed with bcrypt (cost factor from config BCRYPT_LOG_ROUNDS, default 12)
  - Raw password is never stored, never logged
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studybuddy.app.errors import AppError, ConflictError, ErrorCode, NotFoundError
from studybuddy.app.models.user import User
from studybuddy.app.services.membership_service import isoformat

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _normalise_email(email: str) -> str:
    return email.strip().lower()


def _hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def create_access_token(user: User) -> str:
    """
    Creates a signed JWT for `user`.
    Payload: sub (user id as str), email, iat, exp, jti.
    TTL from current_app.config["JWT_EXPIRES"] (timedelta).
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "iat": now,
        "exp": now + current_app.config["JWT_EXPIRES"],
        # Two logins in the same second still get distinct tokens.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "created_at": isoformat(user.created_at),
    }


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        name: str,
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates a new user account and issues a session token.

    Raises:
      ConflictError(DUPLICATE_EMAIL, 409) — email already registered

    Returns: {"user": {...}, "token": "..."}
    """
    email = _normalise_email(email)

    existing = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            field="email",
        )

    user = User(
        name=name.strip(),
        email=email,
        password_hash=_hash_password(password),
    )
    session.add(user)
    try:
        session.flush()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email.
        session.rollback()
        raise ConflictError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            field="email",
        )
    session.refresh(user)

    logger.info("User %s registered", user.id)
    return {
        "user": _build_user_dict(user),
        "token": create_access_token(user),
    }


def login_user(
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Validates credentials and issues a session token.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — email not found or password wrong.
      Uses the same error for both to avoid account enumeration.

    Returns: {"user": {...}, "token": "..."}
    """
    user = session.execute(
        select(User).where(User.email == _normalise_email(email))
    ).scalar_one_or_none()

    if user is None or not bcrypt.checkpw(
            password.encode("utf-8"),
            user.password_hash.encode("utf-8"),
    ):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password is incorrect.",
            401,
        )

    logger.info("User %s logged in", user.id)
    return {
        "user": _build_user_dict(user),
        "token": create_access_token(user),
    }


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      NotFoundError(USER_NOT_FOUND, 404) — the user in the token no longer exists.
    """
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
        )
    return _build_user_dict(user)
