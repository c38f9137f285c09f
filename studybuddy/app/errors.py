"""
errors.py — AppError hierarchy and error code registry.

Every error returned by the StudyBuddy API uses a code defined here.
Do not raise strings or generic exceptions from service or route code.

Four domain kinds cover every business-rule failure:
  ValidationError (400) — malformed input (field length / format)
  NotFoundError   (404) — referenced group, request, member or user is gone
  ForbiddenError  (403) — authenticated, but not allowed to do this
  ConflictError   (409) — uniqueness or state-machine violation

Authentication failures (401) are raised as plain AppError by the auth
middleware and auth service. Never conflate 401 with 403.
An oversized upload is a plain AppError with http_status=413.
"""

from __future__ import annotations


class AppError(Exception):

    http_status: int = 500

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int | None = None,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        if http_status is not None:
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
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class ValidationError(AppError):
    http_status = 400


class NotFoundError(AppError):
    http_status = 404


class ForbiddenError(AppError):
    http_status = 403


class ConflictError(AppError):
    http_status = 409


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_ACTION             = "INVALID_ACTION"
    FILE_TYPE_NOT_ALLOWED      = "FILE_TYPE_NOT_ALLOWED"

    # ── Payload Errors (413) ──────────────────────────────────────────────
    FILE_TOO_LARGE             = "FILE_TOO_LARGE"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    REQUEST_ALREADY_PENDING    = "REQUEST_ALREADY_PENDING"
    REQUEST_ALREADY_PROCESSED  = "REQUEST_ALREADY_PROCESSED"
    INVITE_CODE_UNAVAILABLE    = "INVITE_CODE_UNAVAILABLE"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"
    REQUEST_NOT_FOUND          = "REQUEST_NOT_FOUND"
    INVITE_CODE_NOT_FOUND      = "INVITE_CODE_NOT_FOUND"
    SESSION_NOT_FOUND          = "SESSION_NOT_FOUND"
    FILE_NOT_FOUND             = "FILE_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"      # 401
    TOKEN_MISSING              = "TOKEN_MISSING"            # 401
    TOKEN_INVALID              = "TOKEN_INVALID"            # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"            # 401
    FORBIDDEN                  = "FORBIDDEN"                # 403
    OWNER_CANNOT_LEAVE         = "OWNER_CANNOT_LEAVE"       # 403
    OWNER_CANNOT_BE_REMOVED    = "OWNER_CANNOT_BE_REMOVED"  # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
