"""
services/file_service.py — Files shared inside a group.

Authorization rules:
  - Upload / list / download:  group members only (via the MembershipLedger)
  - Delete:                    the uploader or the group owner

Limits:
  - At most MAX_FILE_SIZE bytes (FILE_TOO_LARGE, 413)
  - mime_type must be in ALLOWED_FILE_TYPES (FILE_TYPE_NOT_ALLOWED, 400)

The bytes are stored in the row. Listings never touch the `data` column.

Layer rules:
  - No Flask imports. Flushes only; the route commits.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, undefer

from studybuddy.app.errors import (
    AppError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from studybuddy.app.models.group_file import (
    ALLOWED_FILE_TYPES,
    FILENAME_MAX,
    MAX_FILE_SIZE,
    GroupFile,
)
from studybuddy.app.services.membership_service import (
    MembershipLedger,
    get_group_or_404,
    isoformat,
    user_summary,
)

logger = logging.getLogger(__name__)


def _clean_filename(filename: str | None) -> str:
    """
    Keeps only the last path component. Browsers on Windows may send the
    full client path.
    """
    cleaned = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    if not cleaned:
        raise ValidationError(
            ErrorCode.MISSING_FIELD,
            "No file uploaded.",
            field="file",
        )
    if len(cleaned) > FILENAME_MAX:
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            f"File name must be at most {FILENAME_MAX} characters.",
            field="file",
        )
    return cleaned


def _normalise_mime_type(mime_type: str | None) -> str:
    # "text/plain; charset=utf-8" → "text/plain"
    return (mime_type or "").split(";", 1)[0].strip().lower()


def _build_file_dict(group_file: GroupFile) -> dict:
    return {
        "id": group_file.id,
        "group_id": group_file.group_id,
        "filename": group_file.filename,
        "mime_type": group_file.mime_type,
        "size": group_file.size,
        "uploader": user_summary(group_file.uploader),
        "created_at": isoformat(group_file.created_at),
    }


class FileService:

    def __init__(self, session: Session, ledger: MembershipLedger) -> None:
        self.session = session
        self.ledger = ledger

    def _get_file_or_404(self, file_id: int, with_data: bool = False) -> GroupFile:
        query = select(GroupFile).where(GroupFile.id == file_id)
        if with_data:
            query = query.options(undefer(GroupFile.data))
        group_file = self.session.execute(query).scalar_one_or_none()
        if group_file is None:
            raise NotFoundError(
                ErrorCode.FILE_NOT_FOUND,
                f"File {file_id} does not exist.",
            )
        return group_file

    def upload_file(
            self,
            group_id: int,
            user_id: int,
            filename: str | None,
            mime_type: str | None,
            data: bytes,
    ) -> dict:
        """
        Stores `data` as a file of group_id. Members only.

        Raises:
          NotFoundError(GROUP_NOT_FOUND)
          ForbiddenError(FORBIDDEN)                  — caller is not a member
          ValidationError(MISSING_FIELD)             — no file name
          AppError(FILE_TOO_LARGE, 413)              — over MAX_FILE_SIZE
          ValidationError(FILE_TYPE_NOT_ALLOWED)     — mime type not allowed
        """
        get_group_or_404(group_id, self.session)
        self.ledger.require_member(group_id, user_id)

        cleaned_name = _clean_filename(filename)

        if len(data) > MAX_FILE_SIZE:
            raise AppError(
                ErrorCode.FILE_TOO_LARGE,
                f"File size exceeds the {MAX_FILE_SIZE // (1024 * 1024)} MB limit.",
                http_status=413,
                field="file",
            )

        cleaned_type = _normalise_mime_type(mime_type)
        if cleaned_type not in ALLOWED_FILE_TYPES:
            raise ValidationError(
                ErrorCode.FILE_TYPE_NOT_ALLOWED,
                f"File type {cleaned_type or 'unknown'!r} is not allowed.",
                field="file",
            )

        group_file = GroupFile(
            group_id=group_id,
            uploader_id=user_id,
            filename=cleaned_name,
            mime_type=cleaned_type,
            size=len(data),
            data=data,
        )
        self.session.add(group_file)
        self.session.flush()

        logger.info(
            "File %s (%s bytes) uploaded to group %s by user %s",
            group_file.id,
            group_file.size,
            group_id,
            user_id,
        )
        return _build_file_dict(group_file)

    def list_files(self, group_id: int, user_id: int) -> list[dict]:
        """Files of the group, newest first. Members only."""
        get_group_or_404(group_id, self.session)
        self.ledger.require_member(group_id, user_id)

        files = self.session.execute(
            select(GroupFile)
            .where(GroupFile.group_id == group_id)
            .options(selectinload(GroupFile.uploader))
            .order_by(GroupFile.created_at.desc(), GroupFile.id.desc())
        ).scalars().all()

        return [_build_file_dict(f) for f in files]

    def get_file_for_download(self, file_id: int, user_id: int) -> GroupFile:
        """
        The GroupFile with its bytes loaded. Members of the file's group only.

        Raises:
          NotFoundError(FILE_NOT_FOUND)
          ForbiddenError(FORBIDDEN)
        """
        group_file = self._get_file_or_404(file_id, with_data=True)
        self.ledger.require_member(group_file.group_id, user_id)
        return group_file

    def delete_file(self, file_id: int, user_id: int) -> None:
        """
        Uploader or group owner only. The uploader keeps this right after
        leaving the group.
        """
        group_file = self._get_file_or_404(file_id)
        group = get_group_or_404(group_file.group_id, self.session)
        if user_id not in (group_file.uploader_id, group.owner_id):
            raise ForbiddenError(
                ErrorCode.FORBIDDEN,
                "Only the uploader or the group owner can delete this file.",
            )

        self.session.delete(group_file)
        self.session.flush()

        logger.info("File %s deleted from group %s by user %s",
                    file_id, group_file.group_id, user_id)
