"""
tests/integration/test_join_requests.py — Join-request workflow over HTTP.

Endpoints covered:
  POST   /groups/:id/join              → create PENDING request
  GET    /groups/:id/requests          → owner's review queue
  GET    /groups/:id/requests/mine     → requester's latest request
  POST   /groups/:id/requests/handle   → accept / reject
  DELETE /groups/:id/requests/:rid     → requester cancels

Properties:
  - accept sets ACCEPTED and adds the member in one transaction, or neither
  - a second request while one is PENDING is a conflict
  - after a rejection the same user may request again
  - a cancelled request is gone and the user may request again at once
  - the store itself refuses a second PENDING or ACCEPTED row per pair
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from studybuddy.app.extensions import db
from studybuddy.app.models.join_request import GroupJoinRequest, JoinRequestStatus
from studybuddy.app.models.membership import GroupMember
from studybuddy.app.services.membership_service import MembershipLedger

from .conftest import (
    handle_request,
    join_by_code,
    make_group,
    member_ids,
    register,
    request_join,
    signed_in,
)


def _owner_and_requester(client, app, name: str = "CS101"):
    """Alice owns a group; Bob is signed in but not a member."""
    register(client, "Alice")
    group = make_group(client, name)
    bob_client, bob = signed_in(app, "Bob")
    return group, bob_client, bob


def _pending(client, group_id: int) -> list[dict]:
    resp = client.get(f"/api/v1/groups/{group_id}/requests")
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


# ═══════════════════════════════════════════════════════════════════════════
# Creating requests
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateRequest:

    def test_create_returns_pending_request(self, client, app):
        group, bob_client, bob = _owner_and_requester(client, app)

        resp = request_join(bob_client, group["id"])
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["status"] == "PENDING"
        assert data["group_id"] == group["id"]
        assert data["user_id"] == bob["id"]
        assert data["user"]["name"] == "Bob"

        # Requesting does not grant access.
        assert bob_client.get(f"/api/v1/groups/{group['id']}").status_code == 403

    def test_second_request_while_pending_conflicts(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)

        assert request_join(bob_client, group["id"]).status_code == 201
        resp = request_join(bob_client, group["id"])
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "REQUEST_ALREADY_PENDING"
        assert len(_pending(client, group["id"])) == 1

    def test_member_cannot_request(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        join_by_code(bob_client, group["invite_code"])

        resp = request_join(bob_client, group["id"])
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"

    def test_owner_cannot_request_own_group(self, client):
        register(client, "Alice")
        group = make_group(client)

        resp = request_join(client, group["id"])
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"

    def test_request_for_missing_group_returns_404(self, client):
        register(client, "Alice")
        resp = request_join(client, 999999)
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "GROUP_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Owner review queue
# ═══════════════════════════════════════════════════════════════════════════

class TestPendingRequests:

    def test_queue_is_oldest_first_and_pending_only(self, client, app):
        register(client, "Alice")
        group = make_group(client)
        gid = group["id"]

        bob_client, bob = signed_in(app, "Bob")
        carol_client, carol = signed_in(app, "Carol")
        dave_client, _ = signed_in(app, "Dave")
        request_join(bob_client, gid)
        request_join(carol_client, gid)
        dave_request = request_join(dave_client, gid).get_json()["data"]
        handle_request(client, gid, dave_request["id"], "reject")

        assert [r["user_id"] for r in _pending(client, gid)] == [bob["id"], carol["id"]]

        detail = client.get(f"/api/v1/groups/{gid}").get_json()["data"]
        assert detail["pending_request_count"] == 2

    def test_member_cannot_view_queue(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        join_by_code(bob_client, group["invite_code"])

        resp = bob_client.get(f"/api/v1/groups/{group['id']}/requests")
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"


# ═══════════════════════════════════════════════════════════════════════════
# Accept / reject
# ═══════════════════════════════════════════════════════════════════════════

class TestAcceptRequest:

    def test_cs101_scenario(self, client, app):
        group, bob_client, bob = _owner_and_requester(client, app, "CS101")
        req = request_join(bob_client, group["id"]).get_json()["data"]

        resp = handle_request(client, group["id"], req["id"], "accept")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "ACCEPTED"

        assert bob["id"] in member_ids(client, group["id"])
        assert _pending(client, group["id"]) == []
        assert bob_client.get(f"/api/v1/groups/{group['id']}").status_code == 200

    def test_accepted_request_cannot_be_decided_again(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]
        handle_request(client, group["id"], req["id"], "accept")

        for action in ("accept", "reject"):
            resp = handle_request(client, group["id"], req["id"], action)
            assert resp.status_code == 409
            assert resp.get_json()["error"]["code"] == "REQUEST_ALREADY_PROCESSED"

    def test_accepted_request_blocks_new_request(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]
        handle_request(client, group["id"], req["id"], "accept")
        bob_client.post(f"/api/v1/groups/{group['id']}/leave")

        resp = request_join(bob_client, group["id"])
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"

    def test_non_owner_cannot_accept(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        carol_client, _ = signed_in(app, "Carol")
        join_by_code(carol_client, group["invite_code"])
        req = request_join(bob_client, group["id"]).get_json()["data"]

        resp = handle_request(carol_client, group["id"], req["id"], "accept")
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"
        assert _pending(client, group["id"])[0]["status"] == "PENDING"

    def test_request_from_another_group_is_not_found(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        other = make_group(client, "Other")
        req = request_join(bob_client, group["id"]).get_json()["data"]

        resp = handle_request(client, other["id"], req["id"], "accept")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "REQUEST_NOT_FOUND"

    def test_accept_after_joining_by_code_conflicts_and_changes_nothing(self, client, app):
        group, bob_client, bob = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]
        join_by_code(bob_client, group["invite_code"])

        resp = handle_request(client, group["id"], req["id"], "accept")
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"

        mine = bob_client.get(f"/api/v1/groups/{group['id']}/requests/mine").get_json()["data"]
        assert mine["status"] == "PENDING"

    def test_failure_while_adding_member_rolls_back_status(self, client, app):
        group, bob_client, bob = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]

        def add_then_fail(self, group_id, user_id):
            self.session.add(GroupMember(group_id=group_id, user_id=user_id))
            self.session.flush()
            raise RuntimeError("connection lost")

        with patch.object(MembershipLedger, "add_member", add_then_fail):
            resp = handle_request(client, group["id"], req["id"], "accept")

        assert resp.status_code == 500
        assert resp.get_json()["error"]["code"] == "INTERNAL_ERROR"

        # Neither half of the accept was committed.
        assert bob["id"] not in member_ids(client, group["id"])
        pending = _pending(client, group["id"])
        assert [r["id"] for r in pending] == [req["id"]]
        assert pending[0]["status"] == "PENDING"

        with app.app_context():
            assert db.session.query(GroupMember).filter_by(
                group_id=group["id"], user_id=bob["id"],
            ).count() == 0

    def test_invalid_action_returns_400(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]

        resp = handle_request(client, group["id"], req["id"], "approve")
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_FIELD"
        assert error["field"] == "action"

    def test_missing_request_returns_404(self, client):
        register(client, "Alice")
        group = make_group(client)
        resp = handle_request(client, group["id"], 999999, "accept")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "REQUEST_NOT_FOUND"


class TestRejectRequest:

    def test_reject_then_request_again_succeeds(self, client, app):
        group, bob_client, bob = _owner_and_requester(client, app)
        first = request_join(bob_client, group["id"]).get_json()["data"]

        resp = handle_request(client, group["id"], first["id"], "reject")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "REJECTED"
        assert bob["id"] not in member_ids(client, group["id"])

        resp = request_join(bob_client, group["id"])
        assert resp.status_code == 201
        second = resp.get_json()["data"]
        assert second["id"] != first["id"]
        assert second["status"] == "PENDING"

    def test_requester_sees_rejection(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]
        handle_request(client, group["id"], req["id"], "reject")

        resp = bob_client.get(f"/api/v1/groups/{group['id']}/requests/mine")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "REJECTED"

    def test_rejected_request_cannot_be_accepted(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]
        handle_request(client, group["id"], req["id"], "reject")

        resp = handle_request(client, group["id"], req["id"], "accept")
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "REQUEST_ALREADY_PROCESSED"


# ═══════════════════════════════════════════════════════════════════════════
# Cancel and "mine"
# ═══════════════════════════════════════════════════════════════════════════

class TestCancelRequest:

    def test_cancel_deletes_and_allows_new_request(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]

        resp = bob_client.delete(f"/api/v1/groups/{group['id']}/requests/{req['id']}")
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"cancelled": True, "request_id": req["id"]}

        assert bob_client.get(f"/api/v1/groups/{group['id']}/requests/mine").get_json()["data"] is None
        assert _pending(client, group["id"]) == []
        assert request_join(bob_client, group["id"]).status_code == 201

    def test_only_requester_can_cancel(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]

        resp = client.delete(f"/api/v1/groups/{group['id']}/requests/{req['id']}")
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_cannot_cancel_decided_request(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        req = request_join(bob_client, group["id"]).get_json()["data"]
        handle_request(client, group["id"], req["id"], "reject")

        resp = bob_client.delete(f"/api/v1/groups/{group['id']}/requests/{req['id']}")
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "REQUEST_ALREADY_PROCESSED"

    def test_cancel_missing_request_returns_404(self, client):
        register(client, "Alice")
        group = make_group(client)
        resp = client.delete(f"/api/v1/groups/{group['id']}/requests/999999")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "REQUEST_NOT_FOUND"


class TestMyRequest:

    def test_no_request_returns_null(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        resp = bob_client.get(f"/api/v1/groups/{group['id']}/requests/mine")
        assert resp.status_code == 200
        assert resp.get_json()["data"] is None

    def test_latest_request_wins_after_rejection(self, client, app):
        group, bob_client, _ = _owner_and_requester(client, app)
        first = request_join(bob_client, group["id"]).get_json()["data"]
        handle_request(client, group["id"], first["id"], "reject")
        second = request_join(bob_client, group["id"]).get_json()["data"]

        mine = bob_client.get(f"/api/v1/groups/{group['id']}/requests/mine").get_json()["data"]
        assert mine["id"] == second["id"]
        assert mine["status"] == "PENDING"


# ═══════════════════════════════════════════════════════════════════════════
# Store-level guarantee: uq_group_join_requests_live_pair
# ═══════════════════════════════════════════════════════════════════════════

class TestLiveRequestIndex:
    """
    Rows are written straight through db.session, bypassing the workflow's
    pre-checks, so only the partial unique index stands in the way.
    """

    @staticmethod
    def _row(group_id: int, user_id: int, status: JoinRequestStatus) -> GroupJoinRequest:
        return GroupJoinRequest(group_id=group_id, user_id=user_id, status=status)

    def test_rejected_rows_may_repeat_beside_one_live_row(self, client, app):
        group, _, bob = _owner_and_requester(client, app)

        with app.app_context():
            db.session.add_all([
                self._row(group["id"], bob["id"], JoinRequestStatus.REJECTED),
                self._row(group["id"], bob["id"], JoinRequestStatus.REJECTED),
                self._row(group["id"], bob["id"], JoinRequestStatus.PENDING),
            ])
            db.session.commit()

            assert db.session.query(GroupJoinRequest).filter_by(
                group_id=group["id"], user_id=bob["id"],
            ).count() == 3

    @pytest.mark.parametrize(
        "second",
        [JoinRequestStatus.PENDING, JoinRequestStatus.ACCEPTED],
    )
    def test_second_live_row_is_rejected_by_the_store(self, client, app, second):
        group, _, bob = _owner_and_requester(client, app)

        with app.app_context():
            db.session.add(self._row(group["id"], bob["id"], JoinRequestStatus.PENDING))
            db.session.commit()

            db.session.add(self._row(group["id"], bob["id"], second))
            with pytest.raises(IntegrityError):
                db.session.commit()
            db.session.rollback()

            live = db.session.query(GroupJoinRequest).filter(
                GroupJoinRequest.group_id == group["id"],
                GroupJoinRequest.user_id == bob["id"],
                GroupJoinRequest.status != JoinRequestStatus.REJECTED,
            ).count()
            assert live == 1

    def test_live_rows_for_different_users_coexist(self, client, app):
        group, _, bob = _owner_and_requester(client, app)
        _, carol = signed_in(app, "Carol")

        with app.app_context():
            db.session.add_all([
                self._row(group["id"], bob["id"], JoinRequestStatus.PENDING),
                self._row(group["id"], carol["id"], JoinRequestStatus.PENDING),
            ])
            db.session.commit()
