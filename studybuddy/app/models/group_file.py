"""
models/group_file.py — GroupFile table definition.

No business logic. No imports from services or routes.

A file shared inside a group. The bytes live in the row itself (BYTEA on
PostgreSQL). `data` is deferred so listing a group's files, or cascading a
group delete, never pulls the blobs into memory.

FK policy:
  group_id    ON DELETE CASCADE  — files are owned by the group
  uploader_id ON DELETE RESTRICT
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studybuddy.app.extensions import db

MAX_FILE_SIZE = 5 * 1024 * 1024  # 5 MiB
FILENAME_MAX = 255

ALLOWED_FILE_TYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "text/plain",
})


class GroupFile(db.Model):
    __tablename__ = "group_files"

    __table_args__ = (
        CheckConstraint("size >= 0", name="ck_group_files_size_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("study_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    uploader_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    filename: Mapped[str] = mapped_column(String(FILENAME_MAX), nullable=False)

    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)

    # Byte count of `data`, kept so listings need not load the blob.
    size: Mapped[int] = mapped_column(Integer, nullable=False)

    data: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        deferred=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["StudyGroup"] = relationship(  # noqa: F821
        "StudyGroup",
        back_populates="files",
    )

    uploader: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[uploader_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupFile id={self.id} "
            f"group_id={self.group_id} "
            f"filename={self.filename!r}>"
        )
