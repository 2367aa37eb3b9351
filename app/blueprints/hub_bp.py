"""
Notification Hub Blueprint — live channel over Server-Sent Events.

  GET  /hub/notificationHub/stream                    — open a connection (SSE)
  POST /hub/notificationHub/<connection_id>/invoke    — call a hub method

Authentication: bearer header, or ``?access_token=`` for EventSource
clients.  The first event on a stream is ``Connected`` with the
connection id and the groups derived from the token; after that the
stream carries hub events and ``: keepalive`` comments.

Invoke body: ``{"method": "<HubMethod>", "args": [...]}``
"""

import json
import logging
import time

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from app.blueprints import register_error_handlers
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.middleware.jwt_auth import get_identity
from app.services.notification_hub import EVENT_CONNECTED, ROLE_GROUPS, get_hub, user_group

logger = logging.getLogger(__name__)

hub_bp = Blueprint("hub_bp", __name__, url_prefix="/hub/notificationHub")
register_error_handlers(hub_bp)


def format_sse(event: str, data) -> bytes:
    payload = json.dumps(data, default=str)
    return f"event: {event}\ndata: {payload}\n\n".encode("utf-8")


@hub_bp.route("/stream", methods=["GET"])
def stream():
    identity = get_identity()
    hub = get_hub()
    connection = hub.connect(identity.user_id, identity.role)
    connected = {
        "connection_id": connection.id,
        "user_id": connection.user_id,
        "groups": sorted(hub.groups_for(connection.id)),
    }
    keepalive_interval = current_app.config["HUB_KEEPALIVE_SECONDS"]
    queue_wait = current_app.config["HUB_QUEUE_WAIT_SECONDS"]

    def _generate():
        try:
            yield format_sse(EVENT_CONNECTED, connected)
            keepalive_deadline = time.monotonic() + keepalive_interval
            while True:
                message = connection.receive(timeout=min(queue_wait, keepalive_interval))
                if message is not None:
                    yield format_sse(message["event"], message["data"])
                    keepalive_deadline = time.monotonic() + keepalive_interval

                now = time.monotonic()
                if now >= keepalive_deadline:
                    yield b": keepalive\n\n"
                    keepalive_deadline = now + keepalive_interval
        finally:
            hub.disconnect(connection.id)

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
    }
    response = Response(
        stream_with_context(_generate()),
        mimetype="text/event-stream",
        headers=headers,
    )
    # Covers clients that go away before the generator is first advanced
    response.call_on_close(lambda: hub.disconnect(connection.id))
    return response


# ═════════════════════════════════════════════════════════════════════════
# Invocation
# ═════════════════════════════════════════════════════════════════════════


def _arg(args, index, name):
    if len(args) <= index or args[index] in (None, ""):
        raise ValidationError(f"Missing argument '{name}'", details={"argument": name})
    return args[index]


def _invoke_test_connection(hub, connection, args):
    return hub.test_connection(connection.id)


def _invoke_send_to_user(hub, connection, args):
    return hub.notify_user(str(_arg(args, 0, "user_id")), args[1] if len(args) > 1 else None)


def _invoke_send_to_group(hub, connection, args):
    return hub.notify_group(str(_arg(args, 0, "group")), args[1] if len(args) > 1 else None)


def _invoke_join_group(hub, connection, args):
    group = str(_arg(args, 0, "group"))
    # Personal and role groups: only the caller's own
    reserved = group.startswith("user-") or group in ROLE_GROUPS.values()
    own = (user_group(connection.user_id), ROLE_GROUPS.get(connection.role or ""))
    if reserved and group not in own:
        raise ForbiddenError(f"Cannot join group '{group}'")
    return hub.join_group(connection.id, group)


def _invoke_leave_group(hub, connection, args):
    return hub.leave_group(connection.id, str(_arg(args, 0, "group")))


def _invoke_report_status_changed(hub, connection, args):
    return hub.report_status_changed(
        str(_arg(args, 0, "report_id")),
        args[1] if len(args) > 1 else None,
        str(_arg(args, 2, "new_status")),
    )


def _invoke_new_comment(hub, connection, args):
    return hub.new_comment(
        str(_arg(args, 0, "report_id")),
        str(_arg(args, 1, "comment_id")),
        str(_arg(args, 2, "user_id")),
    )


def _invoke_decision_made(hub, connection, args):
    return hub.decision_made(
        str(_arg(args, 0, "report_id")),
        str(_arg(args, 1, "decision")),
        str(_arg(args, 2, "qs_id")),
    )


HUB_METHODS = {
    "TestConnection": _invoke_test_connection,
    "SendToUser": _invoke_send_to_user,
    "SendToGroup": _invoke_send_to_group,
    "JoinGroup": _invoke_join_group,
    "LeaveGroup": _invoke_leave_group,
    "ReportStatusChanged": _invoke_report_status_changed,
    "NewComment": _invoke_new_comment,
    "DecisionMade": _invoke_decision_made,
}


@hub_bp.route("/<connection_id>/invoke", methods=["POST"])
def invoke(connection_id):
    hub = get_hub()
    connection = hub.get_connection(connection_id)
    if connection is None:
        raise NotFoundError(resource="Connection", resource_id=connection_id)

    identity = get_identity()
    if connection.user_id != identity.user_id:
        raise ForbiddenError("Connection belongs to another user")

    data = request.get_json(silent=True) or {}
    method = data.get("method")
    handler = HUB_METHODS.get(method)
    if handler is None:
        raise ValidationError(
            f"Unknown hub method '{method}'",
            details={"allowed": sorted(HUB_METHODS)},
        )
    args = data.get("args") or []
    if not isinstance(args, list):
        raise ValidationError("args must be a list")

    result = handler(hub, connection, args)
    logger.debug("Hub method %s invoked on %s", method, connection_id)
    return jsonify({"method": method, "result": result}), 200
