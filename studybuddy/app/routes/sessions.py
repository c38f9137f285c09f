"""
routes/sessions.py — Study session route handlers.

Registered at url_prefix=/api/v1 because this blueprint owns both the
group-scoped paths (/groups/:id/sessions) and the session-ID paths
(/sessions/:id).

Endpoints:
  GET    /groups/:id/sessions?when=   → 200  list (members only)
  POST   /groups/:id/sessions         → 201  schedule (members only)
  PATCH  /sessions/:id                → 200  update (creator or owner)
  DELETE /sessions/:id                → 200  delete (creator or owner)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from studybuddy.app.extensions import db
from studybuddy.app.middleware.auth_middleware import require_auth
from studybuddy.app.schemas.session_schema import (
    CreateSessionSchema,
    SessionListQuerySchema,
    UpdateSessionSchema,
)
from studybuddy.app.services import build_services

sessions_bp = Blueprint("sessions", __name__)


# ── Group-scoped session routes ────────────────────────────────────────────

@sessions_bp.route("/groups/<int:group_id>/sessions", methods=["GET"])
@require_auth
def list_sessions(group_id: int):
    """GET /groups/:id/sessions — all, upcoming or past sessions of the group."""
    query = SessionListQuerySchema().load(request.args.to_dict())
    result = build_services(db.session).sessions.list_sessions(
        group_id=group_id,
        user_id=g.user_id,
        when=query["when"],
    )
    return jsonify({"data": result, "warnings": []}), 200


@sessions_bp.route("/groups/<int:group_id>/sessions", methods=["POST"])
@require_auth
def create_session(group_id: int):
    """POST /groups/:id/sessions — Schedule a session."""
    data = CreateSessionSchema().load(request.get_json(force=True) or {})
    result = build_services(db.session).sessions.create_session(
        group_id=group_id,
        user_id=g.user_id,
        title=data["title"],
        scheduled_at=data["scheduled_at"],
        description=data.get("description"),
        link=data.get("link"),
        location=data.get("location"),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


# ── Session-ID routes ──────────────────────────────────────────────────────

@sessions_bp.route("/sessions/<int:session_id>", methods=["PATCH"])
@require_auth
def update_session(session_id: int):
    """PATCH /sessions/:id — Partial update. Creator or group owner."""
    data = UpdateSessionSchema().load(request.get_json(force=True) or {})
    result = build_services(db.session).sessions.update_session(
        session_id=session_id,
        user_id=g.user_id,
        patch=data,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@sessions_bp.route("/sessions/<int:session_id>", methods=["DELETE"])
@require_auth
def delete_session(session_id: int):
    """DELETE /sessions/:id — Creator or group owner."""
    build_services(db.session).sessions.delete_session(
        session_id=session_id,
        user_id=g.user_id,
    )
    db.session.commit()
    return jsonify({
        "data": {"deleted": True, "session_id": session_id},
        "warnings": [],
    }), 200
