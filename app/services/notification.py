"""
GeoBuild Back-Office API
Notification Service — workflow → hub wiring.

Called by the checklist workflow AFTER each transition commits, so
subscribers never see a state the database rolled back.
"""

import logging

from app.services.notification_hub import get_hub

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class translating workflow events into hub broadcasts."""

    @staticmethod
    def status_changed(checklist, old_status):
        """Broadcast a status change to everyone; no-op when the status did not move."""
        if old_status == checklist.status:
            return
        get_hub().report_status_changed(checklist.id, old_status, checklist.status)
        logger.info(
            "Checklist %s status %s → %s",
            checklist.dcl_no, old_status, checklist.status,
            extra={"report_id": checklist.id, "event_type": "status_changed"},
        )

    @staticmethod
    def comment_added(comment):
        get_hub().new_comment(comment.report_id, comment.id, comment.user_id)

    @staticmethod
    def decision(checklist, decision, qs_id, message=""):
        """Announce a QS decision to report watchers and the assigned RM."""
        hub = get_hub()
        hub.decision_made(checklist.id, decision, qs_id)
        if checklist.assigned_to_rm:
            hub.notify_user(checklist.assigned_to_rm, {
                "type": "decision",
                "report_id": checklist.id,
                "dcl_no": checklist.dcl_no,
                "decision": decision,
                "message": message,
            })

    @staticmethod
    def review_started(checklist):
        """Tell the assigned RM their checklist was picked up by a QS."""
        if checklist.assigned_to_rm:
            get_hub().notify_user(checklist.assigned_to_rm, {
                "type": "review_started",
                "report_id": checklist.id,
                "dcl_no": checklist.dcl_no,
                "message": f"{checklist.assigned_to_qs_name or 'A QS'} started reviewing {checklist.dcl_no}",
            })

    @staticmethod
    def submitted_for_review(checklist):
        """Tell every QS a checklist is waiting for review."""
        get_hub().notify_group("QSs", {
            "type": "submitted",
            "report_id": checklist.id,
            "dcl_no": checklist.dcl_no,
            "message": f"{checklist.dcl_no} submitted for QS review",
        })
