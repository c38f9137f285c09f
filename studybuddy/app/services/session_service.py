"""
services/session_service.py — Study sessions scheduled inside a group.

Authorization rules:
  - Create / list:    group members only (via the MembershipLedger)
  - Update / delete:  the session's creator or the group owner

Datetimes are stored timezone-aware in UTC. A naive scheduled_at coming in
from the API is taken to be UTC already.

Layer rules:
  - No Flask imports. Flushes only; the route commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from studybuddy.app.errors import (
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from studybuddy.app.models.study_session import (
    SESSION_TITLE_MAX,
    SESSION_TITLE_MIN,
    StudySession,
)
from studybuddy.app.services.membership_service import (
    MembershipLedger,
    as_utc,
    get_group_or_404,
    isoformat,
    user_summary,
)

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("title", "description", "scheduled_at", "link", "location")


def _clean_title(title: str) -> str:
    """Trims and length-checks a title. Raises INVALID_FIELD (400)."""
    cleaned = title.strip()
    if not SESSION_TITLE_MIN <= len(cleaned) <= SESSION_TITLE_MAX:
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            f"Title must be between {SESSION_TITLE_MIN} and {SESSION_TITLE_MAX} characters.",
            field="title",
        )
    return cleaned


def _build_session_dict(study_session: StudySession) -> dict:
    return {
        "id": study_session.id,
        "group_id": study_session.group_id,
        "title": study_session.title,
        "description": study_session.description,
        "scheduled_at": isoformat(study_session.scheduled_at),
        "link": study_session.link,
        "location": study_session.location,
        "created_by": user_summary(study_session.creator),
        "created_at": isoformat(study_session.created_at),
        "updated_at": isoformat(study_session.updated_at),
    }


class SessionService:

    def __init__(self, session: Session, ledger: MembershipLedger) -> None:
        self.session = session
        self.ledger = ledger

    def _get_session_or_404(self, session_id: int) -> StudySession:
        study_session = self.session.get(StudySession, session_id)
        if study_session is None:
            raise NotFoundError(
                ErrorCode.SESSION_NOT_FOUND,
                f"Study session {session_id} does not exist.",
            )
        return study_session

    def _require_creator_or_owner(self, study_session: StudySession, user_id: int) -> None:
        group = get_group_or_404(study_session.group_id, self.session)
        if user_id not in (study_session.created_by, group.owner_id):
            raise ForbiddenError(
                ErrorCode.FORBIDDEN,
                "Only the session creator or the group owner can change this session.",
            )

    def create_session(
            self,
            group_id: int,
            user_id: int,
            title: str,
            scheduled_at: datetime,
            description: str | None = None,
            link: str | None = None,
            location: str | None = None,
    ) -> dict:
        """
        Schedules a session in group_id. Members only.

        Raises:
          NotFoundError(GROUP_NOT_FOUND)
          ForbiddenError(FORBIDDEN) — caller is not a member
          ValidationError(INVALID_FIELD) — title shorter than 2 after trim
        """
        get_group_or_404(group_id, self.session)
        self.ledger.require_member(group_id, user_id)

        study_session = StudySession(
            group_id=group_id,
            created_by=user_id,
            title=_clean_title(title),
            description=description,
            scheduled_at=as_utc(scheduled_at),
            link=link,
            location=location,
        )
        self.session.add(study_session)
        self.session.flush()

        logger.info("Study session %s scheduled in group %s by user %s",
                    study_session.id, group_id, user_id)
        return _build_session_dict(study_session)

    def list_sessions(self, group_id: int, user_id: int, when: str = "all") -> list[dict]:
        """
        Sessions of the group. Members only.

        when="upcoming" and "all" are ordered soonest first; "past" is ordered
        most recent first.
        """
        get_group_or_404(group_id, self.session)
        self.ledger.require_member(group_id, user_id)

        now = datetime.now(timezone.utc)
        query = select(StudySession).where(StudySession.group_id == group_id)

        if when == "upcoming":
            query = query.where(StudySession.scheduled_at >= now)
        elif when == "past":
            query = query.where(StudySession.scheduled_at < now)

        if when == "past":
            query = query.order_by(StudySession.scheduled_at.desc(), StudySession.id.desc())
        else:
            query = query.order_by(StudySession.scheduled_at.asc(), StudySession.id.asc())

        return [
            _build_session_dict(s)
            for s in self.session.execute(query).scalars().all()
        ]

    def update_session(self, session_id: int, user_id: int, patch: dict) -> dict:
        """
        Partial update. Creator or group owner only.

        Raises:
          NotFoundError(SESSION_NOT_FOUND)
          ForbiddenError(FORBIDDEN)
        """
        study_session = self._get_session_or_404(session_id)
        self._require_creator_or_owner(study_session, user_id)

        for field in _EDITABLE_FIELDS:
            if field not in patch:
                continue
            value = patch[field]
            if field == "scheduled_at":
                value = as_utc(value)
            elif field == "title":
                value = _clean_title(value)
            setattr(study_session, field, value)

        study_session.updated_at = datetime.now(timezone.utc)
        self.session.flush()

        return _build_session_dict(study_session)

    def delete_session(self, session_id: int, user_id: int) -> None:
        """Creator or group owner only."""
        study_session = self._get_session_or_404(session_id)
        self._require_creator_or_owner(study_session, user_id)

        self.session.delete(study_session)
        self.session.flush()

        logger.info("Study session %s deleted by user %s", session_id, user_id)
