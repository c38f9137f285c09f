"""
schemas/session_schema.py — Marshmallow schemas for study session endpoints.

Validation responsibility:
  - This file: field types, lengths, URL format, date parsing.
  - services/session_service.py: membership gate and creator/owner rights.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, pre_load, validate

from studybuddy.app.models.study_session import SESSION_TITLE_MAX, SESSION_TITLE_MIN


# Length(min=2) accepts "    "; the stored title is the stripped one.
def _validate_title_after_trim(value: str) -> None:
    if len(value.strip()) < SESSION_TITLE_MIN:
        raise ValidationError(
            f"Title must be at least {SESSION_TITLE_MIN} characters."
        )


def _title_field(required: bool) -> fields.Str:
    return fields.Str(
        required=required,
        validate=[
            validate.Length(
                min=SESSION_TITLE_MIN,
                max=SESSION_TITLE_MAX,
                error=(
                    f"Title must be between {SESSION_TITLE_MIN} and "
                    f"{SESSION_TITLE_MAX} characters."
                ),
            ),
            _validate_title_after_trim,
        ],
    )


class _SessionFieldsMixin:

    @pre_load
    def blank_link_to_none(self, data, **kwargs):
        """The frontend sends "" for an empty link; treat it as absent."""
        if isinstance(data, dict) and data.get("link") == "":
            data = {**data, "link": None}
        return data


class CreateSessionSchema(_SessionFieldsMixin, Schema):
    """
    POST /groups/:id/sessions
    """

    title = _title_field(required=True)
    description = fields.Str(
        allow_none=True,
        validate=validate.Length(max=1000),
    )
    scheduled_at = fields.DateTime(required=True)
    link = fields.Url(allow_none=True, validate=validate.Length(max=500))
    location = fields.Str(allow_none=True, validate=validate.Length(max=200))


class UpdateSessionSchema(_SessionFieldsMixin, Schema):
    """
    PATCH /sessions/:id — every field optional.
    """

    title = _title_field(required=False)
    description = fields.Str(
        allow_none=True,
        validate=validate.Length(max=1000),
    )
    scheduled_at = fields.DateTime()
    link = fields.Url(allow_none=True, validate=validate.Length(max=500))
    location = fields.Str(allow_none=True, validate=validate.Length(max=200))


class SessionListQuerySchema(Schema):
    """
    GET /groups/:id/sessions?when=all|upcoming|past
    """

    when = fields.Str(
        load_default="all",
        validate=validate.OneOf(["all", "upcoming", "past"]),
    )
