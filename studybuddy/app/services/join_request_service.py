"""
services/join_request_service.py — the Join-Request Workflow.

State machine per (group, user):

    ∅ ──create──▶ PENDING ──accept──▶ ACCEPTED   (+ membership edge)
                     │    ──reject──▶ REJECTED
                     └────cancel────▶ ∅          (row deleted)

  - Only the group owner accepts or rejects, and only from PENDING.
    ACCEPTED and REJECTED are terminal (REQUEST_ALREADY_PROCESSED, 409).
  - Only the requester cancels, and only while PENDING. Cancelling deletes
    the row; rejecting keeps it as history.
  - A new request is allowed only when no PENDING or ACCEPTED request exists
    for the pair and the user is not already a member.

Accepting is the one multi-row write: the status change and the membership
edge are flushed in the same session and committed together by the route.
If the edge cannot be inserted the whole transaction is rolled back, so an
ACCEPTED request without a membership (or the reverse) is never committed.

Layer rules:
  - No Flask imports. Flushes only; the route commits.
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
from studybuddy.app.models.join_request import GroupJoinRequest, JoinRequestStatus
from studybuddy.app.services.membership_service import (
    MembershipLedger,
    get_group_or_404,
    isoformat,
    user_summary,
)

logger = logging.getLogger(__name__)


def _build_request_dict(request: GroupJoinRequest) -> dict:
    """Serialises a GroupJoinRequest to a plain dict."""
    return {
        "id": request.id,
        "group_id": request.group_id,
        "user_id": request.user_id,
        "status": request.status.value,
        "created_at": isoformat(request.created_at),
        "updated_at": isoformat(request.updated_at),
        "user": user_summary(request.user),
    }


class JoinRequestWorkflow:

    def __init__(self, session: Session, ledger: MembershipLedger) -> None:
        self.session = session
        self.ledger = ledger

    # ── Private helpers ────────────────────────────────────────────────────

    def _get_request_or_404(
            self,
            request_id: int,
            group_id: int | None = None,
    ) -> GroupJoinRequest:
        """
        Returns the request or raises REQUEST_NOT_FOUND (404).
        When group_id is given, a request belonging to another group is
        treated as missing.
        """
        request = self.session.get(GroupJoinRequest, request_id)
        if request is None or (group_id is not None and request.group_id != group_id):
            raise NotFoundError(
                ErrorCode.REQUEST_NOT_FOUND,
                f"Join request {request_id} does not exist.",
            )
        return request

    def _require_owner(self, group: StudyGroup, user_id: int, action: str) -> None:
        if group.owner_id != user_id:
            raise ForbiddenError(
                ErrorCode.FORBIDDEN,
                f"Only the group owner can {action} join requests.",
            )

    @staticmethod
    def _require_pending(request: GroupJoinRequest) -> None:
        if request.status is not JoinRequestStatus.PENDING:
            raise ConflictError(
                ErrorCode.REQUEST_ALREADY_PROCESSED,
                f"Join request {request.id} has already been "
                f"{request.status.value.lower()}.",
            )

    def _get_live_request(self, group_id: int, user_id: int) -> GroupJoinRequest | None:
        """The PENDING or ACCEPTED request for the pair, if any."""
        return self.session.execute(
            select(GroupJoinRequest).where(
                GroupJoinRequest.group_id == group_id,
                GroupJoinRequest.user_id == user_id,
                GroupJoinRequest.status != JoinRequestStatus.REJECTED,
            )
        ).scalars().first()

    def _decide(
            self,
            request_id: int,
            owner_id: int,
            group_id: int | None,
            action: str,
    ) -> tuple[GroupJoinRequest, StudyGroup]:
        request = self._get_request_or_404(request_id, group_id)
        group = get_group_or_404(request.group_id, self.session)
        self._require_owner(group, owner_id, action)
        self._require_pending(request)
        return request, group

    # ── Public operations ──────────────────────────────────────────────────

    def create_request(self, group_id: int, user_id: int) -> dict:
        """
        Files a PENDING request for user_id to join group_id.

        Raises:
          NotFoundError(GROUP_NOT_FOUND)
          ConflictError(REQUEST_ALREADY_PENDING) — a PENDING request exists
          ConflictError(ALREADY_MEMBER)          — ACCEPTED request exists or
                                                   the user is already a member
        """
        get_group_or_404(group_id, self.session)

        existing = self._get_live_request(group_id, user_id)
        if existing is not None:
            if existing.status is JoinRequestStatus.PENDING:
                raise ConflictError(
                    ErrorCode.REQUEST_ALREADY_PENDING,
                    "You already have a pending request for this group.",
                )
            raise ConflictError(
                ErrorCode.ALREADY_MEMBER,
                "You are already a member of this group.",
            )

        if self.ledger.is_member(group_id, user_id):
            raise ConflictError(
                ErrorCode.ALREADY_MEMBER,
                "You are already a member of this group.",
            )

        request = GroupJoinRequest(
            group_id=group_id,
            user_id=user_id,
            status=JoinRequestStatus.PENDING,
        )
        self.session.add(request)
        try:
            self.session.flush()
        except IntegrityError:
            # A concurrent request for the same pair won the partial unique index.
            self.session.rollback()
            raise ConflictError(
                ErrorCode.REQUEST_ALREADY_PENDING,
                "You already have a pending request for this group.",
            )

        logger.info("Join request %s created: user %s -> group %s", request.id, user_id, group_id)
        return _build_request_dict(request)

    def accept_request(
            self,
            request_id: int,
            owner_id: int,
            group_id: int | None = None,
    ) -> dict:
        """
        Marks the request ACCEPTED and inserts the membership edge, as one unit.

        Raises:
          NotFoundError(REQUEST_NOT_FOUND)
          ForbiddenError(FORBIDDEN)                 — caller is not the owner
          ConflictError(REQUEST_ALREADY_PROCESSED)  — not PENDING
          ConflictError(ALREADY_MEMBER)             — user joined by invite code
                                                      meanwhile; nothing changes
        """
        request, group = self._decide(request_id, owner_id, group_id, "accept")

        if self.ledger.is_member(group.id, request.user_id):
            raise ConflictError(
                ErrorCode.ALREADY_MEMBER,
                f"User {request.user_id} is already a member of this group.",
            )

        request.status = JoinRequestStatus.ACCEPTED
        request.updated_at = datetime.now(timezone.utc)
        # Same transaction as the status change; a failure here rolls both back.
        self.ledger.add_member(group.id, request.user_id)

        logger.info("Join request %s accepted by owner %s", request.id, owner_id)
        return _build_request_dict(request)

    def reject_request(
            self,
            request_id: int,
            owner_id: int,
            group_id: int | None = None,
    ) -> dict:
        """
        Marks the request REJECTED. No membership side effect.

        Raises the same errors as accept_request (minus ALREADY_MEMBER).
        """
        request, _ = self._decide(request_id, owner_id, group_id, "reject")

        request.status = JoinRequestStatus.REJECTED
        request.updated_at = datetime.now(timezone.utc)
        self.session.flush()

        logger.info("Join request %s rejected by owner %s", request.id, owner_id)
        return _build_request_dict(request)

    def cancel_request(
            self,
            request_id: int,
            user_id: int,
            group_id: int | None = None,
    ) -> None:
        """
        Deletes the caller's own PENDING request.

        Raises:
          NotFoundError(REQUEST_NOT_FOUND)
          ForbiddenError(FORBIDDEN)                 — not the requester
          ConflictError(REQUEST_ALREADY_PROCESSED)  — not PENDING
        """
        request = self._get_request_or_404(request_id, group_id)

        if request.user_id != user_id:
            raise ForbiddenError(
                ErrorCode.FORBIDDEN,
                "You can only cancel your own requests.",
            )

        self._require_pending(request)

        self.session.delete(request)
        self.session.flush()

        logger.info("Join request %s cancelled by user %s", request_id, user_id)

    def get_pending_requests(self, group_id: int, requester_id: int) -> list[dict]:
        """Owner-only review queue, oldest first."""
        group = get_group_or_404(group_id, self.session)
        self._require_owner(group, requester_id, "view")

        requests = self.session.execute(
            select(GroupJoinRequest)
            .where(
                GroupJoinRequest.group_id == group_id,
                GroupJoinRequest.status == JoinRequestStatus.PENDING,
            )
            .order_by(GroupJoinRequest.created_at.asc(), GroupJoinRequest.id.asc())
        ).scalars().all()

        return [_build_request_dict(r) for r in requests]

    def get_user_request(self, group_id: int, user_id: int) -> dict | None:
        """
        The caller's most recent request for the group, whatever its status.
        REJECTED requests are visible to their requester.
        """
        get_group_or_404(group_id, self.session)

        request = self.session.execute(
            select(GroupJoinRequest)
            .where(
                GroupJoinRequest.group_id == group_id,
                GroupJoinRequest.user_id == user_id,
            )
            .order_by(GroupJoinRequest.created_at.desc(), GroupJoinRequest.id.desc())
            .limit(1)
        ).scalar_one_or_none()

        return _build_request_dict(request) if request is not None else None

    def count_pending(self, group_id: int) -> int:
        return self.session.execute(
            select(func.count(GroupJoinRequest.id)).where(
                GroupJoinRequest.group_id == group_id,
                GroupJoinRequest.status == JoinRequestStatus.PENDING,
            )
        ).scalar_one()

    def count_pending_for_owner(self, owner_id: int) -> int:
        """Pending requests across every group owner_id owns."""
        return self.session.execute(
            select(func.count(GroupJoinRequest.id))
            .join(StudyGroup, StudyGroup.id == GroupJoinRequest.group_id)
            .where(
                StudyGroup.owner_id == owner_id,
                GroupJoinRequest.status == JoinRequestStatus.PENDING,
            )
        ).scalar_one()
