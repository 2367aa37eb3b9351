"""
Review Service — QS review workflow, comment log and dashboard aggregation.

Transitions:
    assign    → under_review        (assigned_to_qs = caller)
    revision  → revision_requested  (+ comment "Revision requested: …")
    approve   → approved            (+ comment "Approved: …" only when notes given)
    reject    → rejected            (+ comment "Rejected: …", reason required)

Each transition and its comment commit together, then the hub is told.
Review actions are open to any authenticated caller; only the lock
guard and the identity check apply.
"""

import logging
import math
from datetime import timedelta

from flask import current_app

from app.core.exceptions import ValidationError
from app.models import db
from app.models.checklist import (
    CRITICAL_PRIORITIES,
    STATUS_APPROVED,
    STATUS_PENDING_QS_REVIEW,
    STATUS_REJECTED,
    STATUS_REVISION_REQUESTED,
    STATUS_UNDER_REVIEW,
    Checklist,
    Comment,
    validate_report_transition,
)
from app.services.checklist_service import ensure_not_locked, get_checklist, require_identity
from app.services.notification import NotificationService
from app.utils.helpers import as_utc, parse_bool, utcnow

logger = logging.getLogger(__name__)

DECISION_APPROVED = "approved"
DECISION_REJECTED = "rejected"
DECISION_REVISION = "revision_requested"


def _plain_text(value):
    # JSON numbers are accepted as their text form
    return "" if value is None else str(value).strip()


def _new_comment(checklist, identity, text, is_internal=False):
    comment = Comment(
        report_id=checklist.id,
        user_id=identity.user_id,
        user_name=identity.name or identity.email or identity.user_id,
        user_role=identity.role or "",
        text=text,
        is_internal=bool(is_internal),
    )
    db.session.add(comment)
    return comment


def _set_status(checklist, new_status):
    old_status = checklist.status
    if not validate_report_transition(old_status, new_status):
        logger.warning(
            "Off-lifecycle review transition %s → %s on %s",
            old_status, new_status, checklist.dcl_no,
            extra={"report_id": checklist.id, "event_type": "transition_unusual"},
        )
    checklist.status = new_status
    return old_status


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════


def assign_to_reviewer(checklist_id, identity) -> Checklist:
    """Caller takes the checklist for review."""
    require_identity(identity)
    checklist = get_checklist(checklist_id)
    ensure_not_locked(checklist, identity)

    checklist.assigned_to_qs = identity.user_id
    checklist.assigned_to_qs_name = identity.name
    old_status = _set_status(checklist, STATUS_UNDER_REVIEW)
    db.session.commit()

    logger.info(
        "Checklist %s assigned to %s", checklist.dcl_no, identity.user_id,
        extra={"report_id": checklist.id, "user_id": identity.user_id, "event_type": "review_assigned"},
    )
    NotificationService.status_changed(checklist, old_status)
    NotificationService.review_started(checklist)
    return checklist


def request_revision(checklist_id, identity, notes=None, required_changes=None) -> Checklist:
    """Send the checklist back to the RM with notes."""
    require_identity(identity)
    checklist = get_checklist(checklist_id)
    ensure_not_locked(checklist, identity)

    if required_changes is not None and not isinstance(required_changes, list):
        raise ValidationError("required_changes must be a list")

    old_status = _set_status(checklist, STATUS_REVISION_REQUESTED)
    text = f"Revision requested: {notes or ''}"
    changes = [str(c) for c in (required_changes or []) if str(c).strip()]
    if changes:
        text += f"\nRequired changes: {', '.join(changes)}"
    comment = _new_comment(checklist, identity, text)
    db.session.commit()

    logger.info(
        "Revision requested on %s by %s", checklist.dcl_no, identity.user_id,
        extra={"report_id": checklist.id, "user_id": identity.user_id, "event_type": "revision_requested"},
    )
    NotificationService.status_changed(checklist, old_status)
    NotificationService.decision(checklist, DECISION_REVISION, identity.user_id, text)
    NotificationService.comment_added(comment)
    return checklist


def approve(checklist_id, identity, notes=None) -> Checklist:
    """Approve; a comment is written only when notes are supplied."""
    require_identity(identity)
    checklist = get_checklist(checklist_id)
    ensure_not_locked(checklist, identity)

    old_status = _set_status(checklist, STATUS_APPROVED)
    checklist.reviewed_at = utcnow()
    checklist.reviewed_by = identity.user_id
    comment = None
    if notes:
        comment = _new_comment(checklist, identity, f"Approved: {notes}")
    db.session.commit()

    logger.info(
        "Checklist %s approved by %s", checklist.dcl_no, identity.user_id,
        extra={"report_id": checklist.id, "user_id": identity.user_id, "event_type": "approved"},
    )
    NotificationService.status_changed(checklist, old_status)
    NotificationService.decision(checklist, DECISION_APPROVED, identity.user_id, notes or "")
    if comment is not None:
        NotificationService.comment_added(comment)
    return checklist


def reject(checklist_id, identity, reason=None) -> Checklist:
    """Reject with a mandatory reason, always recorded as a comment."""
    require_identity(identity)
    reason = _plain_text(reason)
    if not reason:
        raise ValidationError("Rejection reason is required", details={"reason": "required"})
    checklist = get_checklist(checklist_id)
    ensure_not_locked(checklist, identity)

    old_status = _set_status(checklist, STATUS_REJECTED)
    checklist.reviewed_at = utcnow()
    checklist.reviewed_by = identity.user_id
    comment = _new_comment(checklist, identity, f"Rejected: {reason}")
    db.session.commit()

    logger.info(
        "Checklist %s rejected by %s", checklist.dcl_no, identity.user_id,
        extra={"report_id": checklist.id, "user_id": identity.user_id, "event_type": "rejected"},
    )
    NotificationService.status_changed(checklist, old_status)
    NotificationService.decision(checklist, DECISION_REJECTED, identity.user_id, reason)
    NotificationService.comment_added(comment)
    return checklist


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


def list_comments(checklist_id):
    """All comments for a checklist, newest first."""
    get_checklist(checklist_id)
    return (
        Comment.query.filter_by(report_id=checklist_id)
        .order_by(Comment.created_at.desc())
        .all()
    )


def add_comment(checklist_id, identity, text, is_internal=False) -> Comment:
    """Append a comment with an author snapshot taken now."""
    require_identity(identity, need_name=True)
    text = _plain_text(text)
    if not text:
        raise ValidationError("Comment text is required", details={"comment": "required"})
    checklist = get_checklist(checklist_id)

    comment = _new_comment(checklist, identity, text, is_internal=parse_bool(is_internal))
    db.session.commit()
    logger.info(
        "Comment added to %s by %s", checklist.dcl_no, identity.user_id,
        extra={"report_id": checklist.id, "user_id": identity.user_id, "event_type": "comment_added"},
    )
    NotificationService.comment_added(comment)
    return comment


# ═════════════════════════════════════════════════════════════════════════════
# Review lists
# ═════════════════════════════════════════════════════════════════════════════


def pending_reviews_query():
    return (
        Checklist.query.filter(Checklist.status == STATUS_PENDING_QS_REVIEW)
        .order_by(db.func.coalesce(Checklist.submitted_at, Checklist.created_at).desc())
    )


def in_progress_reviews_query():
    return (
        Checklist.query.filter(Checklist.status == STATUS_UNDER_REVIEW)
        .order_by(Checklist.updated_at.desc())
    )


def completed_reviews_query():
    return (
        Checklist.query.filter(Checklist.status == STATUS_APPROVED)
        .order_by(Checklist.updated_at.desc())
    )


def my_active_reviews(identity):
    require_identity(identity)
    return (
        Checklist.query.filter(
            Checklist.assigned_to_qs == identity.user_id,
            Checklist.status == STATUS_UNDER_REVIEW,
        )
        .order_by(Checklist.updated_at.desc())
        .all()
    )


# ═════════════════════════════════════════════════════════════════════════════
# Dashboard
# ═════════════════════════════════════════════════════════════════════════════


def format_average_response_time(durations_hours) -> str:
    """Mean of ``durations_hours`` rounded half-up to whole hours, e.g. ``"3h"``."""
    durations_hours = list(durations_hours)
    if not durations_hours:
        return "0h"
    mean = sum(durations_hours) / len(durations_hours)
    return f"{math.floor(mean + 0.5)}h"


def average_response_time() -> str:
    rows = (
        db.session.query(Checklist.submitted_at, Checklist.reviewed_at)
        .filter(
            Checklist.status == STATUS_APPROVED,
            Checklist.submitted_at.isnot(None),
            Checklist.reviewed_at.isnot(None),
        )
        .all()
    )
    return format_average_response_time(
        (as_utc(reviewed) - as_utc(submitted)).total_seconds() / 3600
        for submitted, reviewed in rows
    )


def dashboard_stats(identity) -> dict:
    """Aggregate counters for the QS dashboard (UTC day boundaries)."""
    now = utcnow()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    tomorrow_start = today_start + timedelta(days=1)
    overdue_cutoff = (now - timedelta(days=current_app.config["REVIEW_OVERDUE_DAYS"])).replace(tzinfo=None)

    q = Checklist.query
    user_id = identity.user_id if identity else None

    my_active = 0
    if user_id:
        my_active = q.filter(
            Checklist.assigned_to_qs == user_id,
            Checklist.status == STATUS_UNDER_REVIEW,
        ).count()

    return {
        "pending_reviews": q.filter(Checklist.status == STATUS_PENDING_QS_REVIEW).count(),
        "in_progress": q.filter(Checklist.status == STATUS_UNDER_REVIEW).count(),
        "completed_today": q.filter(
            Checklist.status == STATUS_APPROVED,
            Checklist.updated_at >= today_start,
            Checklist.updated_at < tomorrow_start,
        ).count(),
        "scheduled_visits": 0,
        "average_response_time": average_response_time(),
        "critical_issues": q.filter(Checklist.priority.in_(CRITICAL_PRIORITIES)).count(),
        "my_active_reviews": my_active,
        "overdue_reviews": q.filter(
            Checklist.status == STATUS_UNDER_REVIEW,
            Checklist.updated_at < overdue_cutoff,
        ).count(),
    }
