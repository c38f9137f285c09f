"""
schemas/group_schema.py — Marshmallow schemas for group, membership and
join-request endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py re-checks name/description lengths because the
    registry can be driven without going through HTTP.
  - services/membership_service.py, join_request_service.py, invite_service.py:
      ownership, membership and request-state rules (require DB lookups).

IMPORTANT: Request schemas inherit from marshmallow.Schema directly — never
           ma.Schema. See extensions.py for the full explanation. The one
           exception is GroupSearchResultSchema, a dump-only output schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate

from studybuddy.app.extensions import ma
from studybuddy.app.models.group import (
    GROUP_DESCRIPTION_MAX,
    GROUP_NAME_MAX,
    GROUP_NAME_MIN,
)


# ── Shared validators ──────────────────────────────────────────────────────
#
# validate.Length(min=2) alone allows "  " because len("  ") == 2. This
# validator strips first, mirroring the DB CHECK(LENGTH(TRIM(name)) >= 2).
# ──────────────────────────────────────────────────────────────────────────

def _validate_name_after_trim(value: str) -> None:
    if len(value.strip()) < GROUP_NAME_MIN:
        raise ValidationError(
            f"Group name must be at least {GROUP_NAME_MIN} characters."
        )


def _group_name_field(required: bool) -> fields.Str:
    return fields.Str(
        required=required,
        validate=[
            validate.Length(
                min=GROUP_NAME_MIN,
                max=GROUP_NAME_MAX,
                error=(
                    f"Group name must be between {GROUP_NAME_MIN} and "
                    f"{GROUP_NAME_MAX} characters."
                ),
            ),
            _validate_name_after_trim,
        ],
    )


def _group_description_field() -> fields.Str:
    return fields.Str(
        allow_none=True,
        validate=validate.Length(
            max=GROUP_DESCRIPTION_MAX,
            error=f"Description must be at most {GROUP_DESCRIPTION_MAX} characters.",
        ),
    )


class CreateGroupSchema(Schema):
    """
    POST /groups

    name        — 2 to 100 chars, not blank after trim.
    description — optional, at most 500 chars.
    """

    name = _group_name_field(required=True)
    description = _group_description_field()


class UpdateGroupSchema(Schema):
    """
    PATCH /groups/:id

    Partial update. Omitted fields are left unchanged; an explicit null
    description clears it. Ownership is enforced by group_service.
    """

    name = _group_name_field(required=False)
    description = _group_description_field()


class JoinByCodeSchema(Schema):
    """
    POST /groups/join-by-code

    The code is matched exactly (case-sensitive) by invite_service. Only
    presence is checked here; an unknown code is INVITE_CODE_NOT_FOUND (404).
    """

    code = fields.Str(
        required=True,
        validate=validate.Length(min=1, error="Invite code is required."),
    )


class HandleJoinRequestSchema(Schema):
    """
    POST /groups/:id/requests/handle

    The owner accepts or rejects one pending request.
    """

    request_id = fields.Int(
        required=True,
        strict=True,  # reject floats like 1.0 — integers only
        validate=validate.Range(
            min=1,
            error="request_id must be a positive integer.",
        ),
    )

    action = fields.Str(
        required=True,
        validate=validate.OneOf(
            ["accept", "reject"],
            error="Action must be either accept or reject.",
        ),
    )


class GroupSearchResultSchema(ma.Schema):
    """
    Public search result. Exposes summary fields only — never member lists,
    invite codes or owner ids.
    """

    id = fields.Int(dump_only=True)
    name = fields.Str(dump_only=True)
    description = fields.Str(dump_only=True, allow_none=True)
    owner_name = fields.Str(dump_only=True)
    member_count = fields.Int(dump_only=True)
