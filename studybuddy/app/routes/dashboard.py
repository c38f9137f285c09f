"""
routes/dashboard.py — Dashboard counters for the signed-in user.

Endpoints (url_prefix=/api/v1/dashboard):
  GET    /dashboard/stats   → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from studybuddy.app.extensions import db
from studybuddy.app.middleware.auth_middleware import require_auth
from studybuddy.app.services import build_services

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/stats", methods=["GET"])
@require_auth
def stats():
    """GET /dashboard/stats — groups, sessions, upcoming sessions, pending requests."""
    result = build_services(db.session).dashboard.get_stats(user_id=g.user_id)
    return jsonify({"data": result, "warnings": []}), 200
