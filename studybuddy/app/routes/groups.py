"""
routes/groups.py — Group, membership and join-request route handlers.

Layer rules:
  - Parse, validate, call ONE service operation, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/groups):
  GET    /groups/search?q=               → 200  public search
  GET    /groups                         → 200  caller's groups
  POST   /groups                         → 201  create group
  POST   /groups/join-by-code            → 201  join with an invite code
  GET    /groups/:id                     → 200  group detail + members
  PATCH  /groups/:id                     → 200  update (owner only)
  DELETE /groups/:id                     → 200  delete (owner only)
  GET    /groups/:id/members             → 200  member list
  POST   /groups/:id/leave               → 200  leave the group
  DELETE /groups/:id/members/:uid        → 200  remove a member (owner only)
  POST   /groups/:id/join                → 201  request to join
  GET    /groups/:id/requests            → 200  pending requests (owner only)
  GET    /groups/:id/requests/mine       → 200  caller's latest request
  POST   /groups/:id/requests/handle     → 200  accept or reject (owner only)
  DELETE /groups/:id/requests/:rid       → 200  cancel own pending request
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from studybuddy.app.extensions import db
from studybuddy.app.middleware.auth_middleware import require_auth
from studybuddy.app.schemas.group_schema import (
    CreateGroupSchema,
    GroupSearchResultSchema,
    HandleJoinRequestSchema,
    JoinByCodeSchema,
    UpdateGroupSchema,
)
from studybuddy.app.services import build_services

groups_bp = Blueprint("groups", __name__)


# ── Groups ─────────────────────────────────────────────────────────────────

@groups_bp.route("/search", methods=["GET"])
def search_groups():
    """GET /groups/search?q= — Public search by name. No auth required."""
    results = build_services(db.session).registry.search_groups(
        query=request.args.get("q", ""),
        limit=current_app.config["GROUP_SEARCH_LIMIT"],
    )
    data = GroupSearchResultSchema(many=True).dump(results)
    return jsonify({"data": data, "warnings": []}), 200


@groups_bp.route("/", methods=["GET"])
@require_auth
def list_groups():
    """GET /groups — Groups the authenticated user belongs to."""
    result = build_services(db.session).registry.list_user_groups(user_id=g.user_id)
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a group. Caller becomes owner and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = build_services(db.session).registry.create_group(
        name=data["name"],
        owner_id=g.user_id,
        description=data.get("description"),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/join-by-code", methods=["POST"])
@require_auth
def join_by_code():
    """POST /groups/join-by-code — Join immediately with a valid invite code."""
    data = JoinByCodeSchema().load(request.get_json(force=True) or {})
    services = build_services(db.session)
    group_id = services.invites.admit_by_code(code=data["code"], user_id=g.user_id)
    db.session.commit()
    result = services.registry.get_group(group_id=group_id, requester_id=g.user_id)
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id — Group detail with member list. Caller must be a member."""
    result = build_services(db.session).registry.get_group(
        group_id=group_id,
        requester_id=g.user_id,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["PATCH"])
@require_auth
def update_group(group_id: int):
    """PATCH /groups/:id — Rename or re-describe the group. Owner only."""
    data = UpdateGroupSchema().load(request.get_json(force=True) or {})
    result = build_services(db.session).registry.update_group(
        group_id=group_id,
        patch=data,
        requester_id=g.user_id,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    """DELETE /groups/:id — Delete the group and everything in it. Owner only."""
    build_services(db.session).registry.delete_group(
        group_id=group_id,
        requester_id=g.user_id,
    )
    db.session.commit()
    return jsonify({
        "data": {"deleted": True, "group_id": group_id},
        "warnings": [],
    }), 200


# ── Membership ─────────────────────────────────────────────────────────────

@groups_bp.route("/<int:group_id>/members", methods=["GET"])
@require_auth
def list_members(group_id: int):
    """GET /groups/:id/members — Members, oldest first. Caller must be a member."""
    result = build_services(db.session).registry.list_members(
        group_id=group_id,
        requester_id=g.user_id,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/leave", methods=["POST"])
@require_auth
def leave_group(group_id: int):
    """POST /groups/:id/leave — Leave the group. The owner cannot leave."""
    build_services(db.session).ledger.remove_member(
        group_id=group_id,
        user_id=g.user_id,
        requester_id=g.user_id,
    )
    db.session.commit()
    return jsonify({
        "data": {"removed": True, "group_id": group_id, "user_id": g.user_id},
        "warnings": [],
    }), 200


@groups_bp.route("/<int:group_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: int):
    """DELETE /groups/:id/members/:uid — Owner removes a member; a member removes self."""
    build_services(db.session).ledger.remove_member(
        group_id=group_id,
        user_id=target_uid,
        requester_id=g.user_id,
    )
    db.session.commit()
    return jsonify({
        "data": {"removed": True, "group_id": group_id, "user_id": target_uid},
        "warnings": [],
    }), 200


# ── Join requests ──────────────────────────────────────────────────────────

@groups_bp.route("/<int:group_id>/join", methods=["POST"])
@require_auth
def request_to_join(group_id: int):
    """POST /groups/:id/join — File a pending join request."""
    result = build_services(db.session).join_requests.create_request(
        group_id=group_id,
        user_id=g.user_id,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>/requests", methods=["GET"])
@require_auth
def list_pending_requests(group_id: int):
    """GET /groups/:id/requests — Pending requests, oldest first. Owner only."""
    result = build_services(db.session).join_requests.get_pending_requests(
        group_id=group_id,
        requester_id=g.user_id,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/requests/mine", methods=["GET"])
@require_auth
def my_request(group_id: int):
    """GET /groups/:id/requests/mine — Caller's latest request, or null."""
    result = build_services(db.session).join_requests.get_user_request(
        group_id=group_id,
        user_id=g.user_id,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/requests/handle", methods=["POST"])
@require_auth
def handle_request(group_id: int):
    """POST /groups/:id/requests/handle — Accept or reject a pending request."""
    data = HandleJoinRequestSchema().load(request.get_json(force=True) or {})
    workflow = build_services(db.session).join_requests
    decide = workflow.accept_request if data["action"] == "accept" else workflow.reject_request
    result = decide(
        request_id=data["request_id"],
        owner_id=g.user_id,
        group_id=group_id,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/requests/<int:request_id>", methods=["DELETE"])
@require_auth
def cancel_request(group_id: int, request_id: int):
    """DELETE /groups/:id/requests/:rid — Withdraw the caller's pending request."""
    build_services(db.session).join_requests.cancel_request(
        request_id=request_id,
        user_id=g.user_id,
        group_id=group_id,
    )
    db.session.commit()
    return jsonify({
        "data": {"cancelled": True, "request_id": request_id},
        "warnings": [],
    }), 200
