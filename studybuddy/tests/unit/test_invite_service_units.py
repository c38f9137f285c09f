"""
Unit tests for invite code generation and admission.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from studybuddy.app.errors import AppError, ErrorCode
from studybuddy.app.models.group import INVITE_CODE_LENGTH
from studybuddy.app.services import invite_service
from studybuddy.app.services.invite_service import (
    INVITE_CODE_ALPHABET,
    InviteCodeAdmission,
)


def _admission(member: bool = False):
    ledger = MagicMock()
    ledger.is_member.return_value = member
    return InviteCodeAdmission(MagicMock(), ledger), ledger


def test_alphabet_excludes_confusable_symbols():
    assert len(INVITE_CODE_ALPHABET) == 32
    assert len(set(INVITE_CODE_ALPHABET)) == 32
    for symbol in "I1O0":
        assert symbol not in INVITE_CODE_ALPHABET


def test_generated_code_shape():
    for _ in range(200):
        code = invite_service.generate_code()
        assert len(code) == INVITE_CODE_LENGTH
        assert set(code) <= set(INVITE_CODE_ALPHABET)


def test_thousand_issued_codes_are_unique():
    admission, _ = _admission()
    issued: set[str] = set()

    # Every code handed out so far is "taken" from the registry's point of view.
    def resolve(code):
        return SimpleNamespace(invite_code=code) if code in issued else None

    with patch.object(InviteCodeAdmission, "resolve_by_code", side_effect=resolve):
        for _ in range(1000):
            code = admission.generate_unique_code()
            assert code not in issued
            assert len(code) == INVITE_CODE_LENGTH
            issued.add(code)

    assert len(issued) == 1000


@patch("studybuddy.app.services.invite_service.generate_code")
def test_collision_draws_again(mock_generate_code):
    mock_generate_code.side_effect = ["AAAAAA", "AAAAAA", "BBBBBB"]
    admission, _ = _admission()

    taken = {"AAAAAA": SimpleNamespace(id=1)}
    with patch.object(InviteCodeAdmission, "resolve_by_code", side_effect=taken.get):
        assert admission.generate_unique_code() == "BBBBBB"

    assert mock_generate_code.call_count == 3


def test_admit_unknown_code_is_not_found():
    admission, ledger = _admission()

    with patch.object(InviteCodeAdmission, "resolve_by_code", return_value=None):
        with pytest.raises(AppError) as exc_info:
            admission.admit_by_code("ZZZZZZ", user_id=20)

    err = exc_info.value
    assert err.code == ErrorCode.INVITE_CODE_NOT_FOUND
    assert err.http_status == 404
    assert err.field == "code"
    ledger.add_member.assert_not_called()


def test_admit_existing_member_conflicts():
    admission, ledger = _admission(member=True)

    with patch.object(
        InviteCodeAdmission, "resolve_by_code", return_value=SimpleNamespace(id=3),
    ):
        with pytest.raises(AppError) as exc_info:
            admission.admit_by_code("ABCDEF", user_id=20)

    assert exc_info.value.code == ErrorCode.ALREADY_MEMBER
    ledger.add_member.assert_not_called()


def test_admit_adds_member_and_returns_group_id():
    admission, ledger = _admission()

    with patch.object(
        InviteCodeAdmission, "resolve_by_code", return_value=SimpleNamespace(id=3),
    ):
        assert admission.admit_by_code("ABCDEF", user_id=20) == 3

    ledger.add_member.assert_called_once_with(3, 20)
