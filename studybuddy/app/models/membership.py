"""
models/membership.py — GroupMember junction table definition.

No business logic. No imports from services or routes.

UNIQUE(group_id, user_id): a user holds at most one membership edge per
group. A duplicate insert is a conflict, never an upsert.

FK policy: group_id ON DELETE CASCADE (the edge belongs to the group);
user_id ON DELETE RESTRICT.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studybuddy.app.extensions import db


class GroupMember(db.Model):
    __tablename__ = "group_members"

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("study_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="memberships",
    )

    group: Mapped["StudyGroup"] = relationship(  # noqa: F821
        "StudyGroup",
        back_populates="members",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupMember id={self.id} "
            f"group_id={self.group_id} "
            f"user_id={self.user_id}>"
        )
