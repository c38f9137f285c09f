"""
services/invite_service.py — Invite-Code Admission.

Invite codes are 6 symbols drawn independently and uniformly from a 32-symbol
alphabet with the visually confusable characters removed (no I, 1, O, 0), so
a code can be read aloud or copied by hand.

Collisions are resolved by drawing again until an unused code is found. With
32**6 ≈ 1.07e9 codes the loop almost always runs once; it has no upper bound.

Presenting a valid code admits the user immediately. This path bypasses the
join-request workflow entirely: the code itself is the owner's consent.
"""

from __future__ import annotations

import logging
import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session

from studybuddy.app.errors import ConflictError, ErrorCode, NotFoundError
from studybuddy.app.models.group import INVITE_CODE_LENGTH, StudyGroup
from studybuddy.app.services.membership_service import MembershipLedger

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_code() -> str:
    """Draws one candidate code. Uniqueness is not checked here."""
    return "".join(
        secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH)
    )


class InviteCodeAdmission:

    def __init__(self, session: Session, ledger: MembershipLedger) -> None:
        self.session = session
        self.ledger = ledger

    def resolve_by_code(self, code: str) -> StudyGroup | None:
        """Exact, case-sensitive lookup."""
        return self.session.execute(
            select(StudyGroup).where(StudyGroup.invite_code == code)
        ).scalar_one_or_none()

    def generate_unique_code(self) -> str:
        code = generate_code()
        while self.resolve_by_code(code) is not None:
            logger.debug("Invite code collision, drawing again")
            code = generate_code()
        return code

    def admit_by_code(self, code: str, user_id: int) -> int:
        """
        Adds user_id to the group holding `code` without owner approval.

        Raises:
          NotFoundError(INVITE_CODE_NOT_FOUND) — no group has this code
          ConflictError(ALREADY_MEMBER)        — user already belongs to it

        Returns: the group id.
        """
        group = self.resolve_by_code(code)
        if group is None:
            raise NotFoundError(
                ErrorCode.INVITE_CODE_NOT_FOUND,
                "Invalid invite code.",
                field="code",
            )

        if self.ledger.is_member(group.id, user_id):
            raise ConflictError(
                ErrorCode.ALREADY_MEMBER,
                "You are already a member of this group.",
            )

        self.ledger.add_member(group.id, user_id)
        logger.info("User %s admitted to group %s by invite code", user_id, group.id)
        return group.id
