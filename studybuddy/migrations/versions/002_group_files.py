"""Shared group files.

Revision: 002_group_files
Parent:   001_initial_schema

The file bytes are stored in the row (BYTEA on PostgreSQL). Deleting a group
deletes its files; a user who uploaded files cannot be deleted while they
exist.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "002_group_files"
down_revision: str | None = "001_initial_schema"
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    op.create_table(
        "group_files",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("study_groups.id", ondelete="CASCADE", name="fk_group_files_group"),
            nullable=False,
        ),
        sa.Column(
            "uploader_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_group_files_uploader"),
            nullable=False,
        ),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_group_files"),
        sa.CheckConstraint("size >= 0", name="ck_group_files_size_nonnegative"),
    )

    op.create_index("ix_group_files_group_id", "group_files", ["group_id"])
    op.create_index("ix_group_files_created_at", "group_files", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_group_files_created_at", table_name="group_files")
    op.drop_index("ix_group_files_group_id", table_name="group_files")
    op.drop_table("group_files")
