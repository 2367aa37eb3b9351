"""
Notification hub tests — group membership and fan-out, the SSE stream,
method invocation and the workflow → hub wiring.
"""

import json

import pytest

from app.blueprints.hub_bp import format_sse
from app.services.notification_hub import (
    EVENT_DECISION_MADE,
    EVENT_NEW_COMMENT,
    EVENT_RECEIVE_NOTIFICATION,
    EVENT_REPORT_STATUS_CHANGED,
    GROUP_ALL,
    NotificationHub,
    report_group,
    user_group,
)
from conftest import auth_headers, make_user


def _drain(connection):
    messages = []
    while True:
        message = connection.receive(timeout=0)
        if message is None:
            return messages
        messages.append(message)


def _events(connection):
    return [m["event"] for m in _drain(connection)]


def _parse_sse(chunk: bytes):
    lines = chunk.decode("utf-8").strip().split("\n")
    event = lines[0].split(": ", 1)[1]
    data = json.loads(lines[1].split(": ", 1)[1])
    return event, data


# ═══════════════════════════════════════════════════════════════
# BLOCK 1: Hub registry (unit)
# ═══════════════════════════════════════════════════════════════

class TestHubGroups:
    def test_connect_joins_identity_groups(self):
        hub = NotificationHub()
        conn = hub.connect("u-1", "QS")
        assert hub.groups_for(conn.id) == {"user-u-1", "QSs"}
        assert conn.id in hub.group_members(GROUP_ALL)

    def test_unknown_role_joins_user_group_only(self):
        hub = NotificationHub()
        conn = hub.connect("u-1", "Auditor")
        assert hub.groups_for(conn.id) == {"user-u-1"}

    def test_anonymous_connection_joins_no_named_groups(self):
        hub = NotificationHub()
        conn = hub.connect(None, "QS")
        assert hub.groups_for(conn.id) == set()
        assert hub.send_to_group("QSs", "X", {}) == 0
        assert hub.send_to_all("X", {}) == 1

    def test_disconnect_is_idempotent_and_cleans_groups(self):
        hub = NotificationHub()
        conn = hub.connect("u-1", "RM")
        hub.join_group(conn.id, report_group("r-1"))
        assert hub.disconnect(conn.id) is True
        assert hub.disconnect(conn.id) is False
        assert hub.connection_count == 0
        assert hub.group_members("RMs") == set()
        assert hub.group_members(report_group("r-1")) == set()
        assert hub.send_to_all("X", {}) == 0

    def test_join_and_leave(self):
        hub = NotificationHub()
        conn = hub.connect("u-1", "RM")
        assert hub.join_group(conn.id, "report-9") is True
        assert hub.send_to_group("report-9", "X", {}) == 1
        assert hub.leave_group(conn.id, "report-9") is True
        assert hub.send_to_group("report-9", "X", {}) == 0
        assert hub.join_group("no-such-connection", "report-9") is False

    def test_user_fan_out_reaches_every_connection(self):
        hub = NotificationHub()
        a = hub.connect("u-1", "RM")
        b = hub.connect("u-1", "RM")
        other = hub.connect("u-2", "RM")
        assert hub.notify_user("u-1", {"hello": 1}) == 2
        assert _events(a) == [EVENT_RECEIVE_NOTIFICATION]
        assert _events(b) == [EVENT_RECEIVE_NOTIFICATION]
        assert _events(other) == []

    def test_report_events(self):
        hub = NotificationHub()
        watcher = hub.connect("u-1", "QS")
        bystander = hub.connect("u-2", "QS")
        hub.join_group(watcher.id, report_group("r-1"))

        hub.report_status_changed("r-1", "draft", "pending_qs_review")
        hub.new_comment("r-1", "c-1", "u-3")
        hub.decision_made("r-1", "approved", "u-3")

        assert _events(watcher) == [EVENT_REPORT_STATUS_CHANGED, EVENT_NEW_COMMENT, EVENT_DECISION_MADE]
        # Status changes go to everyone, comments and decisions to watchers only
        assert _events(bystander) == [EVENT_REPORT_STATUS_CHANGED]

    def test_status_payload(self):
        hub = NotificationHub()
        conn = hub.connect("u-1", "RM")
        hub.report_status_changed("r-1", "under_review", "approved")
        message = conn.receive(timeout=0)
        assert message["data"]["report_id"] == "r-1"
        assert message["data"]["old_status"] == "under_review"
        assert message["data"]["new_status"] == "approved"
        assert "timestamp" in message["data"]

    def test_group_name_helpers(self):
        assert user_group("abc") == "user-abc"
        assert report_group("abc") == "report-abc"

    def test_format_sse(self):
        assert format_sse("TestResponse", "ok") == b'event: TestResponse\ndata: "ok"\n\n'


# ═══════════════════════════════════════════════════════════════
# BLOCK 2: SSE stream & invocation (HTTP)
# ═══════════════════════════════════════════════════════════════

class TestHubHttp:
    def _open(self, client, user):
        res = client.get(
            f"/hub/notificationHub/stream?access_token={auth_headers(user)['Authorization'][7:]}",
            buffered=False,
        )
        assert res.status_code == 200
        assert res.mimetype == "text/event-stream"
        stream = iter(res.response)
        event, data = _parse_sse(next(stream))
        assert event == "Connected"
        return res, stream, data

    def test_stream_requires_token(self, client):
        assert client.get("/hub/notificationHub/stream").status_code == 401

    def test_connected_event_lists_groups(self, client, hub, qs_user):
        res, _, data = self._open(client, qs_user)
        try:
            assert data["user_id"] == qs_user.id
            assert data["groups"] == sorted([f"user-{qs_user.id}", "QSs"])
            assert hub.connection_count == 1
        finally:
            res.close()
        assert hub.connection_count == 0

    def test_stream_delivers_messages_and_keepalives(self, client, hub, rm_user):
        res, stream, _ = self._open(client, rm_user)
        try:
            hub.notify_user(rm_user.id, {"msg": "hi"})
            event, data = _parse_sse(next(stream))
            assert event == EVENT_RECEIVE_NOTIFICATION
            assert data == {"msg": "hi"}
            assert next(stream) == b": keepalive\n\n"
        finally:
            res.close()

    def test_invoke_test_connection(self, client, hub, rm_user, rm_headers):
        res, stream, data = self._open(client, rm_user)
        try:
            inv = client.post(f"/hub/notificationHub/{data['connection_id']}/invoke",
                              json={"method": "TestConnection"}, headers=rm_headers)
            assert inv.status_code == 200
            assert inv.get_json() == {"method": "TestConnection", "result": 1}
            event, payload = _parse_sse(next(stream))
            assert event == "TestResponse"
            assert payload == "Connection successful"
        finally:
            res.close()

    def test_invoke_join_group_then_receive(self, client, hub, rm_user, rm_headers):
        res, stream, data = self._open(client, rm_user)
        try:
            inv = client.post(f"/hub/notificationHub/{data['connection_id']}/invoke",
                              json={"method": "JoinGroup", "args": ["report-42"]}, headers=rm_headers)
            assert inv.get_json()["result"] is True
            hub.new_comment("42", "c-1", "someone")
            event, payload = _parse_sse(next(stream))
            assert event == EVENT_NEW_COMMENT
            assert payload["comment_id"] == "c-1"
        finally:
            res.close()

    @pytest.mark.parametrize("group", ["Admins", "QSs", "user-someone-else"])
    def test_join_reserved_group_forbidden(self, client, hub, rm_user, rm_headers, group):
        conn = hub.connect(rm_user.id, "RM")
        res = client.post(f"/hub/notificationHub/{conn.id}/invoke",
                          json={"method": "JoinGroup", "args": [group]}, headers=rm_headers)
        assert res.status_code == 403
        assert group not in hub.groups_for(conn.id)

    def test_join_own_groups_allowed(self, client, hub, rm_user, rm_headers):
        conn = hub.connect(rm_user.id, "RM")
        for group in (f"user-{rm_user.id}", "RMs", "report-7"):
            res = client.post(f"/hub/notificationHub/{conn.id}/invoke",
                              json={"method": "JoinGroup", "args": [group]}, headers=rm_headers)
            assert res.status_code == 200

    def test_invoke_unknown_connection(self, client, rm_headers):
        res = client.post("/hub/notificationHub/nope/invoke",
                          json={"method": "TestConnection"}, headers=rm_headers)
        assert res.status_code == 404

    def test_invoke_other_users_connection_forbidden(self, client, hub, rm_user, qs_headers):
        conn = hub.connect(rm_user.id, "RM")
        res = client.post(f"/hub/notificationHub/{conn.id}/invoke",
                          json={"method": "TestConnection"}, headers=qs_headers)
        assert res.status_code == 403

    def test_invoke_unknown_method(self, client, hub, rm_user, rm_headers):
        conn = hub.connect(rm_user.id, "RM")
        res = client.post(f"/hub/notificationHub/{conn.id}/invoke",
                          json={"method": "DropTables"}, headers=rm_headers)
        assert res.status_code == 400
        assert "TestConnection" in res.get_json()["details"]["allowed"]

    def test_invoke_missing_argument(self, client, hub, rm_user, rm_headers):
        conn = hub.connect(rm_user.id, "RM")
        res = client.post(f"/hub/notificationHub/{conn.id}/invoke",
                          json={"method": "SendToUser", "args": []}, headers=rm_headers)
        assert res.status_code == 400


# ═══════════════════════════════════════════════════════════════
# BLOCK 3: Workflow → hub wiring
# ═══════════════════════════════════════════════════════════════

class TestWorkflowNotifications:
    @pytest.fixture()
    def qs_conn(self, hub, qs_user):
        return hub.connect(qs_user.id, "QS")

    @pytest.fixture()
    def rm_conn(self, hub, rm_user):
        return hub.connect(rm_user.id, "RM")

    def test_earlier_events_are_not_replayed(self, submitted_checklist, qs_conn, rm_conn):
        assert _drain(qs_conn) == []
        assert _drain(rm_conn) == []

    def test_submission_broadcasts(self, client, make_checklist, rm_user, rm_headers, qs_conn):
        created = make_checklist()
        client.put(f"/api/v1/checklists/{created['id']}", headers=rm_headers, json={
            "customer_number": "CN-1001", "customer_name": "Jane Wanjiku",
            "project_name": "Construction Loan", "ibps_no": "IBPS-77",
            "assigned_to_rm": rm_user.id, "status": "submitted",
        })
        messages = _drain(qs_conn)
        assert [m["event"] for m in messages] == [EVENT_REPORT_STATUS_CHANGED, EVENT_RECEIVE_NOTIFICATION]
        assert messages[0]["data"]["new_status"] == "pending_qs_review"
        assert messages[1]["data"]["type"] == "submitted"

    def test_unchanged_status_sends_nothing(self, client, make_checklist, rm_user, rm_headers, qs_conn):
        created = make_checklist()
        client.put(f"/api/v1/checklists/{created['id']}", headers=rm_headers, json={
            "customer_number": "CN-1001", "customer_name": "Renamed",
            "project_name": "Construction Loan", "ibps_no": "IBPS-77",
            "assigned_to_rm": rm_user.id,
        })
        assert _drain(qs_conn) == []

    def test_decision_reaches_rm_and_watchers(self, client, hub, submitted_checklist, qs_headers, rm_conn):
        cid = submitted_checklist["id"]
        watcher = hub.connect(make_user("w@geobuild.example.com").id, "RM")
        hub.join_group(watcher.id, report_group(cid))

        client.post(f"/api/v1/qs/reviews/{cid}/reject", json={"reason": "No BQ"}, headers=qs_headers)

        rm_messages = _drain(rm_conn)
        assert [m["event"] for m in rm_messages] == [EVENT_REPORT_STATUS_CHANGED, EVENT_RECEIVE_NOTIFICATION]
        assert rm_messages[1]["data"]["decision"] == "rejected"
        assert rm_messages[1]["data"]["message"] == "No BQ"

        assert _events(watcher) == [EVENT_REPORT_STATUS_CHANGED, EVENT_DECISION_MADE, EVENT_NEW_COMMENT]

    def test_assign_notifies_rm(self, client, submitted_checklist, qs_headers, rm_conn):
        client.post(f"/api/v1/qs/reviews/{submitted_checklist['id']}/assign", headers=qs_headers)
        messages = _drain(rm_conn)
        assert messages[-1]["event"] == EVENT_RECEIVE_NOTIFICATION
        assert messages[-1]["data"]["type"] == "review_started"

    def test_failed_action_sends_nothing(self, client, submitted_checklist, qs_headers, rm_conn):
        client.post(f"/api/v1/qs/reviews/{submitted_checklist['id']}/reject", json={}, headers=qs_headers)
        assert _drain(rm_conn) == []
