"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats.
  - services/auth_service.py: DUPLICATE_EMAIL (requires a DB lookup — not a
    schema concern) and credential checks.

IMPORTANT: All schemas inherit from marshmallow.Schema directly.
           Do NOT use ma.Schema — it requires an active Flask app context
           and breaks unit tests. See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      name        : 2–100 chars after trimming
      email       : valid email format
      password    : min 8 chars
      remember_me : optional bool — long-lived cookie when true
    """

    name = fields.Str(
        required=True,
        validate=validate.Length(
            min=2,
            max=100,
            error="Name must be between 2 and 100 characters.",
        ),
    )

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    password = fields.Str(required=True, load_only=True)

    remember_me = fields.Bool(load_default=False)

    @validates("name")
    def validate_name_not_blank(self, value: str, **kwargs) -> None:
        if len(value.strip()) < 2:
            raise ValidationError("Name must be at least 2 characters.")

    @validates("password")
    def validate_password_length(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Accepts email + password. Credential correctness is checked in
    auth_service.py (INVALID_CREDENTIALS, 401).
    """

    email = fields.Email(required=True)
    password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(min=1, error="Password is required."),
    )
    remember_me = fields.Bool(load_default=False)
