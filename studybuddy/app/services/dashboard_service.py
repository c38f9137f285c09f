"""
services/dashboard_service.py — Counters for the signed-in user's dashboard.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studybuddy.app.models.group_file import GroupFile
from studybuddy.app.models.membership import GroupMember
from studybuddy.app.models.study_session import StudySession
from studybuddy.app.services.join_request_service import JoinRequestWorkflow


class DashboardService:

    def __init__(self, session: Session, join_requests: JoinRequestWorkflow) -> None:
        self.session = session
        self.join_requests = join_requests

    def get_stats(self, user_id: int) -> dict:
        """
        groups            — groups the user belongs to
        sessions          — sessions across those groups
        upcoming_sessions — of which scheduled from now on
        pending_requests  — pending join requests across groups the user owns
        files             — files shared across the user's groups
        """
        my_group_ids = select(GroupMember.group_id).where(GroupMember.user_id == user_id)

        groups = self.session.execute(
            select(func.count(GroupMember.id)).where(GroupMember.user_id == user_id)
        ).scalar_one()

        sessions = self.session.execute(
            select(func.count(StudySession.id))
            .where(StudySession.group_id.in_(my_group_ids))
        ).scalar_one()

        upcoming = self.session.execute(
            select(func.count(StudySession.id))
            .where(
                StudySession.group_id.in_(my_group_ids),
                StudySession.scheduled_at >= datetime.now(timezone.utc),
            )
        ).scalar_one()

        files = self.session.execute(
            select(func.count(GroupFile.id))
            .where(GroupFile.group_id.in_(my_group_ids))
        ).scalar_one()

        return {
            "groups": groups,
            "sessions": sessions,
            "upcoming_sessions": upcoming,
            "pending_requests": self.join_requests.count_pending_for_owner(user_id),
            "files": files,
        }
