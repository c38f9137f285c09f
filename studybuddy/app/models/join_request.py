"""
models/join_request.py — GroupJoinRequest table definition.

No business logic. No imports from services or routes.

State machine per (group_id, user_id):
    ∅ → PENDING → ACCEPTED | REJECTED

PENDING rows may also be deleted by their creator (cancellation).
ACCEPTED and REJECTED are terminal; REJECTED rows are kept as history and a
fresh PENDING row may be created beside them.

The partial unique index allows any number of REJECTED rows but at most one
live (PENDING or ACCEPTED) row per pair. Concurrent duplicate requests are
therefore stopped by the database, not by application locking.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studybuddy.app.extensions import db
from studybuddy.app.models.user import enum_values


class JoinRequestStatus(str, enum.Enum):
    PENDING  = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self is not JoinRequestStatus.PENDING


_LIVE_REQUEST_CLAUSE = text("status <> 'REJECTED'")


class GroupJoinRequest(db.Model):
    __tablename__ = "group_join_requests"

    __table_args__ = (
        Index(
            "uq_group_join_requests_live_pair",
            "group_id",
            "user_id",
            unique=True,
            postgresql_where=_LIVE_REQUEST_CLAUSE,
            sqlite_where=_LIVE_REQUEST_CLAUSE,
        ),
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

    status: Mapped[JoinRequestStatus] = mapped_column(
        Enum(
            JoinRequestStatus,
            name="join_request_status_enum",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=JoinRequestStatus.PENDING,
        server_default=JoinRequestStatus.PENDING.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Set when the owner accepts or rejects.
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["StudyGroup"] = relationship(  # noqa: F821
        "StudyGroup",
        back_populates="join_requests",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupJoinRequest id={self.id} "
            f"group_id={self.group_id} "
            f"user_id={self.user_id} "
            f"status={self.status.value}>"
        )
