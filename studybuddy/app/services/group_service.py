"""
services/group_service.py — the Group Registry.

Owns StudyGroup rows. Membership questions are delegated to the
MembershipLedger; invite codes come from InviteCodeAdmission.

Authorization rules:
  - Create:          any authenticated user; they become owner and first member
  - Read detail:     members only (FORBIDDEN, 403 otherwise)
  - Update / delete: owner only
  - Search:          public; summary fields only

Deleting a group removes its memberships, join requests, study sessions and
files in the same flush (ORM cascade). The route commits once, so partial
deletion is never visible.

Layer rules:
  - No Flask imports. Flushes only; the route commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studybuddy.app.errors import (
    ConflictError,
    ErrorCode,
    ForbiddenError,
    ValidationError,
)
from studybuddy.app.models.group import (
    GROUP_DESCRIPTION_MAX,
    GROUP_NAME_MAX,
    GROUP_NAME_MIN,
    StudyGroup,
)
from studybuddy.app.models.membership import GroupMember
from studybuddy.app.models.user import User
from studybuddy.app.services.invite_service import InviteCodeAdmission
from studybuddy.app.services.join_request_service import JoinRequestWorkflow
from studybuddy.app.services.membership_service import (
    MembershipLedger,
    get_group_or_404,
    isoformat,
    user_summary,
)

logger = logging.getLogger(__name__)

_UNSET = object()

# Inserts tried before giving up when another request keeps taking the code.
INVITE_CODE_INSERT_ATTEMPTS = 5


# ── Private helpers ────────────────────────────────────────────────────────

def _clean_name(name) -> str:
    """Trims and length-checks a group name. Raises INVALID_FIELD (400)."""
    if not isinstance(name, str):
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            "Group name must be a string.",
            field="name",
        )
    cleaned = name.strip()
    if not GROUP_NAME_MIN <= len(cleaned) <= GROUP_NAME_MAX:
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            f"Group name must be between {GROUP_NAME_MIN} and {GROUP_NAME_MAX} characters.",
            field="name",
        )
    return cleaned


def _clean_description(description) -> str | None:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            "Description must be a string.",
            field="description",
        )
    if len(description) > GROUP_DESCRIPTION_MAX:
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            f"Description must be at most {GROUP_DESCRIPTION_MAX} characters.",
            field="description",
        )
    return description


def _require_owner(group: StudyGroup, user_id: int, action: str) -> None:
    if group.owner_id != user_id:
        raise ForbiddenError(
            ErrorCode.FORBIDDEN,
            f"Only the group owner can {action} the group.",
        )


def _build_group_summary(group: StudyGroup, member_count: int) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "owner_id": group.owner_id,
        "created_at": isoformat(group.created_at),
        "member_count": member_count,
    }


def _build_member_dict(membership: GroupMember) -> dict:
    return {
        **user_summary(membership.user),
        "joined_at": isoformat(membership.joined_at),
    }


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ── Registry ───────────────────────────────────────────────────────────────

class GroupRegistry:

    def __init__(
            self,
            session: Session,
            ledger: MembershipLedger,
            invites: InviteCodeAdmission,
            join_requests: JoinRequestWorkflow,
    ) -> None:
        self.session = session
        self.ledger = ledger
        self.invites = invites
        self.join_requests = join_requests

    def _members(self, group_id: int) -> list[GroupMember]:
        return list(self.session.execute(
            select(GroupMember)
            .where(GroupMember.group_id == group_id)
            .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
        ).scalars().all())

    def _build_group_detail(self, group: StudyGroup, viewer_id: int) -> dict:
        members = self._members(group.id)
        is_owner = group.owner_id == viewer_id
        return {
            **_build_group_summary(group, len(members)),
            "invite_code": group.invite_code,
            "updated_at": isoformat(group.updated_at),
            "owner": user_summary(group.owner),
            "is_owner": is_owner,
            "members": [_build_member_dict(m) for m in members],
            "pending_request_count": (
                self.join_requests.count_pending(group.id) if is_owner else None
            ),
        }

    # ── Public operations ──────────────────────────────────────────────────

    def create_group(
            self,
            name: str,
            owner_id: int,
            description: str | None = None,
    ) -> dict:
        """
        Creates a group with a fresh invite code. The creator becomes the
        owner and the first member in the same flush.

        generate_unique_code() checks the code is free, but a concurrent
        create can still take it before our insert. The insert runs in a
        savepoint so a unique violation only undoes this attempt; a fresh
        code is drawn and the insert retried.

        Raises:
          ValidationError(INVALID_FIELD) — name not 2–100 chars after trim,
                                           or description over 500 chars
          ConflictError(INVITE_CODE_UNAVAILABLE) — every attempt collided
        """
        cleaned_name = _clean_name(name)
        cleaned_description = _clean_description(description)

        for attempt in range(1, INVITE_CODE_INSERT_ATTEMPTS + 1):
            group = StudyGroup(
                name=cleaned_name,
                description=cleaned_description,
                invite_code=self.invites.generate_unique_code(),
                owner_id=owner_id,
            )
            try:
                with self.session.begin_nested():
                    self.session.add(group)
                    self.session.flush()  # populate group.id before the owner's edge
            except IntegrityError:
                logger.warning(
                    "Invite code %s taken at insert (attempt %s), drawing again",
                    group.invite_code,
                    attempt,
                )
                continue
            break
        else:
            raise ConflictError(
                ErrorCode.INVITE_CODE_UNAVAILABLE,
                "Could not allocate an invite code. Please try again.",
            )

        self.ledger.add_member(group.id, owner_id)

        logger.info("Group %s created by user %s", group.id, owner_id)
        return self._build_group_detail(group, owner_id)

    def get_group(self, group_id: int, requester_id: int) -> dict:
        """Group detail with member list. Members only."""
        group = get_group_or_404(group_id, self.session)
        self.ledger.require_member(group_id, requester_id)
        return self._build_group_detail(group, requester_id)

    def update_group(self, group_id: int, patch: dict, requester_id: int) -> dict:
        """
        Partial update of name and/or description. Owner only.

        Keys absent from `patch` are left unchanged; description=None clears it.

        Raises:
          NotFoundError(GROUP_NOT_FOUND)
          ForbiddenError(FORBIDDEN)
          ValidationError(INVALID_FIELD)
        """
        group = get_group_or_404(group_id, self.session)
        _require_owner(group, requester_id, "update")

        name = patch.get("name", _UNSET)
        description = patch.get("description", _UNSET)

        if name is not _UNSET:
            group.name = _clean_name(name)
        if description is not _UNSET:
            group.description = _clean_description(description)

        group.updated_at = datetime.now(timezone.utc)
        self.session.flush()

        return self._build_group_detail(group, requester_id)

    def delete_group(self, group_id: int, requester_id: int) -> None:
        """
        Deletes the group with all of its memberships, join requests and
        study sessions. Owner only.
        """
        group = get_group_or_404(group_id, self.session)
        _require_owner(group, requester_id, "delete")

        self.session.delete(group)
        self.session.flush()

        logger.info("Group %s deleted by owner %s", group_id, requester_id)

    def list_user_groups(self, user_id: int) -> list[dict]:
        """Groups the user belongs to, most recently joined first."""
        rows = self.session.execute(
            select(StudyGroup, GroupMember.joined_at)
            .join(GroupMember, GroupMember.group_id == StudyGroup.id)
            .where(GroupMember.user_id == user_id)
            .order_by(GroupMember.joined_at.desc(), GroupMember.id.desc())
        ).all()

        counts = self.ledger.count_members_by_group([group.id for group, _ in rows])

        return [
            {
                **_build_group_summary(group, counts.get(group.id, 0)),
                "is_owner": group.owner_id == user_id,
                "joined_at": isoformat(joined_at),
            }
            for group, joined_at in rows
        ]

    def list_members(self, group_id: int, requester_id: int) -> list[dict]:
        """Members of the group, oldest first. Members only."""
        get_group_or_404(group_id, self.session)
        self.ledger.require_member(group_id, requester_id)
        return [_build_member_dict(m) for m in self._members(group_id)]

    def search_groups(self, query: str | None, limit: int = 20) -> list[dict]:
        """
        Public, case-insensitive substring search over group names.

        Returns summary fields only: id, name, description, owner_name,
        member_count. A blank query returns no results.
        """
        term = (query or "").strip()
        if not term:
            return []

        rows = self.session.execute(
            select(StudyGroup, User.name)
            .join(User, User.id == StudyGroup.owner_id)
            .where(StudyGroup.name.ilike(f"%{_escape_like(term)}%", escape="\\"))
            .order_by(StudyGroup.name.asc(), StudyGroup.id.asc())
            .limit(limit)
        ).all()

        counts = self.ledger.count_members_by_group([group.id for group, _ in rows])

        return [
            {
                "id": group.id,
                "name": group.name,
                "description": group.description,
                "owner_name": owner_name,
                "member_count": counts.get(group.id, 0),
            }
            for group, owner_name in rows
        ]
