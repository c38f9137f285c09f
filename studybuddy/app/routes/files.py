"""
routes/files.py — Shared file route handlers.

Registered at url_prefix=/api/v1, like sessions_bp, because it owns both the
group-scoped paths (/groups/:id/files) and the file-ID paths (/files/:id).

Endpoints:
  GET    /groups/:id/files        → 200  list, newest first (members only)
  POST   /groups/:id/files        → 201  upload, multipart field "file" (members only)
  GET    /files/:id/download      → 200  the bytes as an attachment (members only)
  DELETE /files/:id               → 200  delete (uploader or owner)
"""

from __future__ import annotations

from io import BytesIO

from flask import Blueprint, g, jsonify, request, send_file

from studybuddy.app.errors import ErrorCode, ValidationError
from studybuddy.app.extensions import db
from studybuddy.app.middleware.auth_middleware import require_auth
from studybuddy.app.services import build_services

files_bp = Blueprint("files", __name__)


# ── Group-scoped file routes ───────────────────────────────────────────────

@files_bp.route("/groups/<int:group_id>/files", methods=["GET"])
@require_auth
def list_files(group_id: int):
    result = build_services(db.session).files.list_files(
        group_id=group_id,
        user_id=g.user_id,
    )
    return jsonify({"data": result, "warnings": []}), 200


@files_bp.route("/groups/<int:group_id>/files", methods=["POST"])
@require_auth
def upload_file(group_id: int):
    """POST /groups/:id/files — multipart/form-data with one "file" part."""
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError(
            ErrorCode.MISSING_FIELD,
            "No file uploaded.",
            field="file",
        )

    result = build_services(db.session).files.upload_file(
        group_id=group_id,
        user_id=g.user_id,
        filename=upload.filename,
        mime_type=upload.mimetype,
        data=upload.read(),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


# ── File-ID routes ─────────────────────────────────────────────────────────

@files_bp.route("/files/<int:file_id>/download", methods=["GET"])
@require_auth
def download_file(file_id: int):
    group_file = build_services(db.session).files.get_file_for_download(
        file_id=file_id,
        user_id=g.user_id,
    )
    return send_file(
        BytesIO(group_file.data),
        mimetype=group_file.mime_type,
        as_attachment=True,
        download_name=group_file.filename,
        max_age=0,
    )


@files_bp.route("/files/<int:file_id>", methods=["DELETE"])
@require_auth
def delete_file(file_id: int):
    """DELETE /files/:id — Uploader or group owner."""
    build_services(db.session).files.delete_file(
        file_id=file_id,
        user_id=g.user_id,
    )
    db.session.commit()
    return jsonify({
        "data": {"deleted": True, "file_id": file_id},
        "warnings": [],
    }), 200
