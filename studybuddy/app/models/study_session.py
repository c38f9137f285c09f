"""
models/study_session.py — StudySession table definition.

No business logic. No imports from services or routes.

A scheduled meeting of a group. Only members may see or create sessions;
only the creator or the group owner may edit or delete one.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studybuddy.app.extensions import db

SESSION_TITLE_MIN = 2
SESSION_TITLE_MAX = 200


class StudySession(db.Model):
    __tablename__ = "study_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("study_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_by: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(SESSION_TITLE_MAX), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    location: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["StudyGroup"] = relationship(  # noqa: F821
        "StudyGroup",
        back_populates="sessions",
    )

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[created_by],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<StudySession id={self.id} "
            f"group_id={self.group_id} "
            f"title={self.title!r}>"
        )
