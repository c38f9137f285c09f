"""
services/membership_service.py — the Membership Ledger.

The ledger is the single source of truth for "is this user a member of this
group". Every membership-gated operation (group detail, study sessions, join
request review) routes through is_member() / require_member().

Rules:
  - One edge per (group, user). add_member() rejects duplicates with
    ALREADY_MEMBER (409); it is never an upsert.
  - Leave:  requester == user. The owner may not leave (OWNER_CANNOT_LEAVE).
  - Kick:   requester == owner. The owner may not be kicked, not even by
    themself (OWNER_CANNOT_BE_REMOVED).
  - Anyone else removing a member gets FORBIDDEN.

Layer rules:
  - No Flask imports. Works on the SQLAlchemy session it was built with.
  - Flushes only; the route commits. A unique-constraint violation rolls the
    request transaction back before the ConflictError is raised.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studybuddy.app.errors import (
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
)
from studybuddy.app.models.group import StudyGroup
from studybuddy.app.models.membership import GroupMember
from studybuddy.app.models.user import User

logger = logging.getLogger(__name__)


# ── Shared helpers ─────────────────────────────────────────────────────────

def get_group_or_404(group_id: int, session: Session) -> StudyGroup:
    """Returns the StudyGroup or raises GROUP_NOT_FOUND (404)."""
    group = session.get(StudyGroup, group_id)
    if group is None:
        raise NotFoundError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
        )
    return group


def user_summary(user: User | None) -> dict | None:
    """Public identity fields for embedding in other payloads."""
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
    }


def as_utc(value: datetime) -> datetime:
    """Naive datetimes (SQLite drops the offset) are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    """ISO 8601 in UTC with an explicit +00:00 offset, or None."""
    return as_utc(value).isoformat() if value is not None else None


# ── Ledger ─────────────────────────────────────────────────────────────────

class MembershipLedger:

    def __init__(self, session: Session) -> None:
        self.session = session

    def _get_edge(self, group_id: int, user_id: int) -> GroupMember | None:
        return self.session.execute(
            select(GroupMember).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        ).scalar_one_or_none()

    def is_member(self, group_id: int, user_id: int) -> bool:
        return self._get_edge(group_id, user_id) is not None

    def require_member(self, group_id: int, user_id: int) -> None:
        """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
        if not self.is_member(group_id, user_id):
            raise ForbiddenError(
                ErrorCode.FORBIDDEN,
                f"You are not a member of group {group_id}.",
            )

    def count_members(self, group_id: int) -> int:
        return self.session.execute(
            select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id)
        ).scalar_one()

    def count_members_by_group(self, group_ids: list[int]) -> dict[int, int]:
        """Member counts for several groups in one query. Missing ids count 0."""
        if not group_ids:
            return {}
        rows = self.session.execute(
            select(GroupMember.group_id, func.count(GroupMember.id))
            .where(GroupMember.group_id.in_(group_ids))
            .group_by(GroupMember.group_id)
        ).all()
        counts = {group_id: 0 for group_id in group_ids}
        counts.update({group_id: count for group_id, count in rows})
        return counts

    def add_member(self, group_id: int, user_id: int) -> GroupMember:
        """
        Inserts the (group, user) edge.

        Raises:
          ConflictError(ALREADY_MEMBER) — the edge already exists, either on the
          pre-check or when a concurrent insert wins the unique constraint.
        """
        if self.is_member(group_id, user_id):
            raise ConflictError(
                ErrorCode.ALREADY_MEMBER,
                f"User {user_id} is already a member of group {group_id}.",
            )

        membership = GroupMember(group_id=group_id, user_id=user_id)
        self.session.add(membership)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(
                ErrorCode.ALREADY_MEMBER,
                f"User {user_id} is already a member of group {group_id}.",
            )

        logger.info("User %s joined group %s", user_id, group_id)
        return membership

    def remove_member(self, group_id: int, user_id: int, requester_id: int) -> None:
        """
        Removes user_id from group_id on behalf of requester_id.

        Raises:
          NotFoundError(GROUP_NOT_FOUND)          — group does not exist
          ForbiddenError(OWNER_CANNOT_LEAVE)      — owner trying to leave
          ForbiddenError(OWNER_CANNOT_BE_REMOVED) — anyone removing the owner
          ForbiddenError(FORBIDDEN)               — neither self nor owner
          NotFoundError(MEMBER_NOT_FOUND)         — no such edge
        """
        group = get_group_or_404(group_id, self.session)

        is_self = requester_id == user_id
        is_owner = requester_id == group.owner_id

        if user_id == group.owner_id:
            if is_self:
                raise ForbiddenError(
                    ErrorCode.OWNER_CANNOT_LEAVE,
                    "The group owner cannot leave. Delete the group instead.",
                )
            raise ForbiddenError(
                ErrorCode.OWNER_CANNOT_BE_REMOVED,
                "The group owner cannot be removed from the group.",
            )

        if not (is_self or is_owner):
            raise ForbiddenError(
                ErrorCode.FORBIDDEN,
                "You may only remove yourself from a group unless you are the owner.",
            )

        membership = self._get_edge(group_id, user_id)
        if membership is None:
            raise NotFoundError(
                ErrorCode.MEMBER_NOT_FOUND,
                f"User {user_id} is not a member of group {group_id}.",
            )

        self.session.delete(membership)
        self.session.flush()

        logger.info(
            "User %s removed from group %s (%s)",
            user_id,
            group_id,
            "left" if is_self else f"kicked by {requester_id}",
        )
