"""
models/user.py — User table definition.

No business logic. No imports from services or routes.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studybuddy.app.extensions import db


class UserRole(str, enum.Enum):
    USER  = "USER"
    ADMIN = "ADMIN"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values, not member names."""
    return [member.value for member in enum_cls]


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_users_name_nonempty",
        ),
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="user_role_enum",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=UserRole.USER,
        server_default=UserRole.USER.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────
    # Read-only navigation — no logic here.

    memberships: Mapped[list["GroupMember"]] = relationship(  # noqa: F821
        "GroupMember",
        back_populates="user",
    )

    owned_groups: Mapped[list["StudyGroup"]] = relationship(  # noqa: F821
        "StudyGroup",
        back_populates="owner",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} email={self.email!r}>"
