"""
models/group.py — StudyGroup table definition.

No business logic. No imports from services or routes.

The invite code is a 6-character token drawn from an unambiguous alphabet
(see services/invite_service.py). It is globally unique.

FK policy:
  owner_id ON DELETE RESTRICT — a user who owns a group cannot be deleted
  while the group exists.
  Memberships, join requests, study sessions and shared files are owned by
  the group: deleting the group deletes them in the same transaction (ORM
  cascade, backed by ON DELETE CASCADE in the schema).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studybuddy.app.extensions import db

INVITE_CODE_LENGTH = 6
GROUP_NAME_MIN = 2
GROUP_NAME_MAX = 100
GROUP_DESCRIPTION_MAX = 500


class StudyGroup(db.Model):
    __tablename__ = "study_groups"

    __table_args__ = (
        # Also enforced by the group schema and group_service; the DB is the last resort.
        CheckConstraint(
            "LENGTH(TRIM(name)) >= 2",
            name="ck_study_groups_name_min_length",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(GROUP_NAME_MAX),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(GROUP_DESCRIPTION_MAX),
        nullable=True,
    )

    invite_code: Mapped[str] = mapped_column(
        String(INVITE_CODE_LENGTH),
        nullable=False,
        unique=True,
    )

    owner_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Set on every successful PATCH.
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    owner: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="owned_groups",
        foreign_keys=[owner_id],
    )

    members: Mapped[list["GroupMember"]] = relationship(  # noqa: F821
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    join_requests: Mapped[list["GroupJoinRequest"]] = relationship(  # noqa: F821
        "GroupJoinRequest",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    sessions: Mapped[list["StudySession"]] = relationship(  # noqa: F821
        "StudySession",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    files: Mapped[list["GroupFile"]] = relationship(  # noqa: F821
        "GroupFile",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<StudyGroup id={self.id} name={self.name!r}>"
