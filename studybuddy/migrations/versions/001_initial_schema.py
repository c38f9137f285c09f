"""Initial schema — users, study groups, memberships, join requests, sessions.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  Tables in FK dependency order (users → study_groups → group_members,
  group_join_requests, study_sessions), then indexes.

Enums are stored as VARCHAR(16) (models use Enum(native_enum=False)), so no
PostgreSQL enum types are created here.

ON DELETE policies:
  study_groups.owner_id            → RESTRICT  (cannot delete a user who owns a group)
  group_members.group_id           → CASCADE   (edge owned by group)
  group_join_requests.group_id     → CASCADE   (request owned by group)
  study_sessions.group_id          → CASCADE   (session owned by group)
  every other user_id column       → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── Step 1: users ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.String(16),
            nullable=False,
            server_default="USER",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_users_name_nonempty",
        ),
        sa.CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    # ── Step 2: study_groups ───────────────────────────────────────────────

    op.create_table(
        "study_groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("invite_code", sa.String(6), nullable=False),
        sa.Column(
            "owner_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_study_groups_owner"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_study_groups"),
        sa.UniqueConstraint("invite_code", name="uq_study_groups_invite_code"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) >= 2",
            name="ck_study_groups_name_min_length",
        ),
    )

    # ── Step 3: group_members ──────────────────────────────────────────────
    # UNIQUE(group_id, user_id): one edge per pair.

    op.create_table(
        "group_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("study_groups.id", ondelete="CASCADE", name="fk_group_members_group"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_group_members_user"),
            nullable=False,
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_group_members"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )

    # ── Step 4: group_join_requests ────────────────────────────────────────

    op.create_table(
        "group_join_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey(
                "study_groups.id",
                ondelete="CASCADE",
                name="fk_group_join_requests_group",
            ),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_group_join_requests_user"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.String(16),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_group_join_requests"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'ACCEPTED', 'REJECTED')",
            name="ck_group_join_requests_status",
        ),
    )

    # ── Step 5: study_sessions ─────────────────────────────────────────────

    op.create_table(
        "study_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("study_groups.id", ondelete="CASCADE", name="fk_study_sessions_group"),
            nullable=False,
        ),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_study_sessions_creator"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("link", sa.String(500), nullable=True),
        sa.Column("location", sa.String(200), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_study_sessions"),
    )

    # ── Step 6: Indexes ────────────────────────────────────────────────────

    op.create_index("ix_study_groups_owner_id", "study_groups", ["owner_id"])
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])
    op.create_index("ix_group_join_requests_group_id", "group_join_requests", ["group_id"])
    op.create_index("ix_group_join_requests_user_id", "group_join_requests", ["user_id"])
    op.create_index("ix_study_sessions_group_id", "study_sessions", ["group_id"])
    op.create_index("ix_study_sessions_scheduled_at", "study_sessions", ["scheduled_at"])

    # Partial unique index: any number of REJECTED rows, at most one PENDING
    # or ACCEPTED row per (group, user).
    op.create_index(
        "uq_group_join_requests_live_pair",
        "group_join_requests",
        ["group_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'REJECTED'"),
    )


def downgrade() -> None:
    """Drops everything created in upgrade(), in reverse dependency order."""

    op.drop_index("uq_group_join_requests_live_pair", table_name="group_join_requests")
    op.drop_index("ix_study_sessions_scheduled_at",   table_name="study_sessions")
    op.drop_index("ix_study_sessions_group_id",       table_name="study_sessions")
    op.drop_index("ix_group_join_requests_user_id",   table_name="group_join_requests")
    op.drop_index("ix_group_join_requests_group_id",  table_name="group_join_requests")
    op.drop_index("ix_group_members_user_id",         table_name="group_members")
    op.drop_index("ix_group_members_group_id",        table_name="group_members")
    op.drop_index("ix_study_groups_owner_id",         table_name="study_groups")

    op.drop_table("study_sessions")
    op.drop_table("group_join_requests")
    op.drop_table("group_members")
    op.drop_table("study_groups")
    op.drop_table("users")
