"""
Notification Hub — in-process pub/sub fan-out over persistent connections.

Each live client (an SSE stream, see ``hub_bp``) owns one ``HubConnection``
with an unbounded queue.  Connections are members of named groups:

    user-<id>            every connection of one user
    RMs / QSs / Admins   role groups derived from the token at connect time
    report-<id>          joined explicitly by clients watching one report

Delivery is best-effort: only currently connected subscribers receive a
message, nothing is replayed.  Membership is guarded by a single lock;
publishing copies the target list under the lock and enqueues outside it.

Usage:
    from app.services.notification_hub import get_hub

    get_hub().report_status_changed(report_id, "under_review", "approved")
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from flask import current_app

logger = logging.getLogger(__name__)

GROUP_ALL = "__all__"

ROLE_GROUPS = {
    "RM": "RMs",
    "QS": "QSs",
    "Admin": "Admins",
}

# Client-facing event names
EVENT_CONNECTED = "Connected"
EVENT_TEST_RESPONSE = "TestResponse"
EVENT_RECEIVE_NOTIFICATION = "ReceiveNotification"
EVENT_REPORT_STATUS_CHANGED = "ReportStatusChanged"
EVENT_NEW_COMMENT = "NewComment"
EVENT_DECISION_MADE = "DecisionMade"


def user_group(user_id: str) -> str:
    return f"user-{user_id}"


def report_group(report_id: str) -> str:
    return f"report-{report_id}"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class HubConnection:
    """One subscriber: an identity snapshot plus its outbound message queue."""

    def __init__(self, user_id: str | None = None, role: str | None = None) -> None:
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self.role = role
        self.connected_at = datetime.now(timezone.utc)
        self.messages: queue.Queue = queue.Queue()

    def deliver(self, event: str, data: Any) -> None:
        self.messages.put_nowait({"event": event, "data": data})

    def receive(self, timeout: float | None = None) -> dict | None:
        """Pop the next message, or None if nothing arrives within ``timeout``."""
        try:
            return self.messages.get(timeout=timeout)
        except queue.Empty:
            return None

    def __repr__(self) -> str:
        return f"<HubConnection {self.id} user={self.user_id} role={self.role}>"


class NotificationHub:
    """Thread-safe registry of connections and group memberships."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: dict[str, HubConnection] = {}
        self._groups: dict[str, set[str]] = defaultdict(set)
        self._memberships: dict[str, set[str]] = defaultdict(set)

    # ── Connection lifecycle ───────────────────────────────────────────────

    def connect(self, user_id: str | None = None, role: str | None = None) -> HubConnection:
        """Register a connection and join the groups its identity implies.

        Connections without a user id join no groups at all (not even a
        role group), so they only receive broadcasts to everyone and
        messages addressed to their connection id.
        """
        connection = HubConnection(user_id=user_id, role=role)
        with self._lock:
            self._connections[connection.id] = connection
            self._add(connection.id, GROUP_ALL)
            if user_id:
                self._add(connection.id, user_group(user_id))
                role_group = ROLE_GROUPS.get(role or "")
                if role_group:
                    self._add(connection.id, role_group)
        logger.info(
            "Hub connection %s opened for user %s with role %s",
            connection.id, user_id, role,
            extra={"user_id": user_id, "event_type": "hub_connect"},
        )
        return connection

    def disconnect(self, connection_id: str) -> bool:
        """Drop a connection from every group. Idempotent.

        Returns True if the connection was registered.
        """
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            for group in self._memberships.pop(connection_id, set()):
                members = self._groups.get(group)
                if members is None:
                    continue
                members.discard(connection_id)
                if not members:
                    del self._groups[group]
        if connection is None:
            return False
        logger.info(
            "Hub connection %s closed for user %s",
            connection_id, connection.user_id,
            extra={"user_id": connection.user_id, "event_type": "hub_disconnect"},
        )
        return True

    def get_connection(self, connection_id: str) -> HubConnection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def groups_for(self, connection_id: str) -> set[str]:
        """Named groups a connection belongs to (the implicit all-group excluded)."""
        with self._lock:
            return {g for g in self._memberships.get(connection_id, ()) if g != GROUP_ALL}

    def group_members(self, group: str) -> set[str]:
        with self._lock:
            return set(self._groups.get(group, ()))

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    # ── Group membership ───────────────────────────────────────────────────

    def join_group(self, connection_id: str, group: str) -> bool:
        """Add a live connection to ``group``; False if the connection is unknown."""
        with self._lock:
            if connection_id not in self._connections:
                return False
            self._add(connection_id, group)
        logger.info("Hub connection %s joined group %s", connection_id, group)
        return True

    def leave_group(self, connection_id: str, group: str) -> bool:
        with self._lock:
            if connection_id not in self._connections:
                return False
            self._memberships[connection_id].discard(group)
            members = self._groups.get(group)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self._groups[group]
        logger.info("Hub connection %s left group %s", connection_id, group)
        return True

    def _add(self, connection_id: str, group: str) -> None:
        # Caller holds self._lock
        self._groups[group].add(connection_id)
        self._memberships[connection_id].add(group)

    # ── Delivery ───────────────────────────────────────────────────────────

    def _publish(self, connection_ids, event: str, data: Any) -> int:
        with self._lock:
            targets = [self._connections[c] for c in connection_ids if c in self._connections]
        for connection in targets:
            connection.deliver(event, data)
        return len(targets)

    def send_to_all(self, event: str, data: Any) -> int:
        return self._publish(self.group_members(GROUP_ALL), event, data)

    def send_to_group(self, group: str, event: str, data: Any) -> int:
        return self._publish(self.group_members(group), event, data)

    def send_to_user(self, user_id: str, event: str, data: Any) -> int:
        return self.send_to_group(user_group(user_id), event, data)

    def send_to_connection(self, connection_id: str, event: str, data: Any) -> int:
        return self._publish([connection_id], event, data)

    # ── Hub operations ─────────────────────────────────────────────────────

    def test_connection(self, connection_id: str) -> int:
        return self.send_to_connection(connection_id, EVENT_TEST_RESPONSE, "Connection successful")

    def notify_user(self, user_id: str, notification: Any) -> int:
        return self.send_to_user(user_id, EVENT_RECEIVE_NOTIFICATION, notification)

    def notify_group(self, group: str, notification: Any) -> int:
        return self.send_to_group(group, EVENT_RECEIVE_NOTIFICATION, notification)

    def report_status_changed(self, report_id: str, old_status: str | None, new_status: str) -> int:
        return self.send_to_all(EVENT_REPORT_STATUS_CHANGED, {
            "report_id": report_id,
            "old_status": old_status,
            "new_status": new_status,
            "timestamp": _timestamp(),
        })

    def new_comment(self, report_id: str, comment_id: str, user_id: str) -> int:
        return self.send_to_group(report_group(report_id), EVENT_NEW_COMMENT, {
            "report_id": report_id,
            "comment_id": comment_id,
            "user_id": user_id,
            "timestamp": _timestamp(),
        })

    def decision_made(self, report_id: str, decision: str, qs_id: str) -> int:
        return self.send_to_group(report_group(report_id), EVENT_DECISION_MADE, {
            "report_id": report_id,
            "decision": decision,
            "qs_id": qs_id,
            "timestamp": _timestamp(),
        })


def init_notification_hub(app) -> NotificationHub:
    """Attach a fresh hub to the app (one per process)."""
    hub = NotificationHub()
    app.extensions["notification_hub"] = hub
    return hub


def get_hub() -> NotificationHub:
    return current_app.extensions["notification_hub"]
