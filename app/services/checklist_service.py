"""
Checklist Service — RM-side checklist lifecycle.

Create, update, delete, list and lock checklists.  QS review actions
live in ``review_service``; both share the lock guard defined here.

All write functions own their commit.  Hub broadcasts are sent only
after the commit succeeded.
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.auth import ROLE_ADMIN, User
from app.models.checklist import (
    LEGACY_STATUS_ALIASES,
    PRIORITIES,
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_PENDING_QS_REVIEW,
    Checklist,
    validate_report_transition,
)
from app.services.checklist_forms import parse_documents, parse_site_visit_form
from app.services.notification import NotificationService
from app.services.report_number_service import allocate_report_number
from app.utils.helpers import run_with_db_retry, utcnow

logger = logging.getLogger(__name__)

# Status spellings the update endpoint recognises; anything else keeps the stored status.
UPDATE_STATUS_WHITELIST = {
    "draft": STATUS_DRAFT,
    "pending_qs_review": STATUS_PENDING_QS_REVIEW,
    "pendingqsreview": STATUS_PENDING_QS_REVIEW,
    "submitted": STATUS_PENDING_QS_REVIEW,
}

REQUIRED_FIELDS = ("customer_number", "customer_name", "project_name", "assigned_to_rm", "ibps_no")


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def require_identity(identity, *, need_name=False):
    """Raise AuthorizationError unless the caller's id (and optionally name) is known."""
    if identity is None or not identity.user_id:
        raise AuthorizationError("User not authenticated")
    if need_name and not identity.name:
        raise AuthorizationError("User not authenticated")


def get_checklist(checklist_id) -> Checklist:
    checklist = db.session.get(Checklist, checklist_id)
    if not checklist:
        raise NotFoundError(resource="Report", resource_id=checklist_id)
    return checklist


def ensure_not_locked(checklist, identity):
    """Reject a mutation when someone else holds an unexpired lock.

    Expired locks are force-released on the way (the caller commits).
    """
    if checklist.is_locked and checklist.lock_expired:
        logger.info(
            "Releasing expired lock on %s held by %s",
            checklist.dcl_no, checklist.locked_by_user_id,
            extra={"report_id": checklist.id, "event_type": "lock_expired"},
        )
        checklist.release_lock()
    user_id = identity.user_id if identity else None
    if checklist.is_locked_for(user_id):
        raise ConflictError(
            "Checklist", "lock", checklist.locked_by_user_name,
            message=f"Checklist is locked by {checklist.locked_by_user_name or 'another user'}",
        )


def _text(data, key, *aliases):
    for k in (key, *aliases):
        value = data.get(k)
        if value is not None:
            return str(value).strip()
    return ""


def _clean_fields(data: dict) -> dict:
    """Extract and validate the RM-editable fields shared by create and update."""
    fields = {
        "customer_id": _text(data, "customer_id", "customerId") or None,
        "customer_number": _text(data, "customer_number", "customerNumber"),
        "customer_name": _text(data, "customer_name", "customerName"),
        "customer_email": _text(data, "customer_email", "customerEmail") or None,
        "project_name": _text(data, "project_name", "projectName") or _text(data, "loan_type", "loanType"),
        "ibps_no": _text(data, "ibps_no", "ibpsNo"),
        "assigned_to_rm": _text(data, "assigned_to_rm", "assignedToRM", "assignedToRm"),
    }
    missing = [f for f in REQUIRED_FIELDS if not fields[f]]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )

    priority = data.get("priority")
    if priority not in (None, ""):
        priority = str(priority).strip().lower()
        if priority not in PRIORITIES:
            raise ValidationError(
                f"Invalid priority '{priority}'. Must be one of: {', '.join(sorted(PRIORITIES))}",
                details={"priority": "invalid"},
            )
        fields["priority"] = priority

    if "documents" in data:
        fields["documents"] = parse_documents(data.get("documents"))
    return fields


def _site_visit_payload(data):
    if "site_visit_form" in data:
        return True, data.get("site_visit_form")
    if "siteVisitForm" in data:
        return True, data.get("siteVisitForm")
    return False, None


def resolve_assigned_rms(checklists) -> dict:
    """Map ``assigned_to_rm`` ids to User rows for rendering."""
    ids = {c.assigned_to_rm for c in checklists if c.assigned_to_rm}
    if not ids:
        return {}
    users = User.query.filter(User.id.in_(ids)).all()
    return {u.id: u for u in users}


def serialize_checklists(checklists) -> list[dict]:
    users = resolve_assigned_rms(checklists)
    return [c.to_dict(assigned_rm=users.get(c.assigned_to_rm)) for c in checklists]


def serialize_checklist(checklist) -> dict:
    return serialize_checklists([checklist])[0]


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def list_checklists(status=None, assigned_to_rm=None, search=None):
    """All checklists, newest first, optionally filtered."""
    q = Checklist.query
    if status:
        q = q.filter(Checklist.status == status)
    if assigned_to_rm:
        q = q.filter(Checklist.assigned_to_rm == assigned_to_rm)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Checklist.dcl_no.ilike(like),
            Checklist.customer_name.ilike(like),
            Checklist.customer_number.ilike(like),
            Checklist.project_name.ilike(like),
        ))
    return q.order_by(Checklist.created_at.desc()).all()


# ═════════════════════════════════════════════════════════════════════════════
# Create / Update / Delete
# ═════════════════════════════════════════════════════════════════════════════


def create_checklist(data: dict, identity) -> Checklist:
    """Validate and create a checklist with a freshly allocated report number."""
    require_identity(identity)
    fields = _clean_fields(data)
    fields.setdefault("documents", [])
    _, raw_form = _site_visit_payload(data)
    site_visit_form = parse_site_visit_form(raw_form)
    max_retries = current_app.config.get("REPORT_NUMBER_MAX_RETRIES", 5)

    def _work():
        checklist = Checklist(
            dcl_no=allocate_report_number(),
            status=STATUS_PENDING,
            site_visit_form=site_visit_form,
            created_by=identity.user_id,
            **fields,
        )
        db.session.add(checklist)
        db.session.commit()
        return checklist

    checklist = run_with_db_retry(
        _work, attempts=max_retries, retry_on=(IntegrityError, OperationalError),
    )
    logger.info(
        "Checklist created: %s for %s", checklist.dcl_no, checklist.customer_number,
        extra={"report_id": checklist.id, "user_id": identity.user_id, "event_type": "checklist_created"},
    )
    return checklist


def normalize_update_status(raw, current):
    """Map a client-supplied status through the update whitelist."""
    if raw is None:
        return current
    return UPDATE_STATUS_WHITELIST.get(str(raw).strip().lower(), current)


def update_checklist(checklist_id, data: dict, identity) -> Checklist:
    """Update RM-editable fields and (whitelisted) status."""
    require_identity(identity)
    checklist = get_checklist(checklist_id)
    ensure_not_locked(checklist, identity)

    fields = _clean_fields(data)
    for key, value in fields.items():
        setattr(checklist, key, value)

    has_form, raw_form = _site_visit_payload(data)
    if has_form and raw_form is not None:
        checklist.site_visit_form = parse_site_visit_form(raw_form)

    old_status = checklist.status
    new_status = normalize_update_status(data.get("status"), old_status)
    if new_status != old_status:
        if validate_report_transition(old_status, new_status):
            checklist.status = new_status
            if new_status == STATUS_PENDING_QS_REVIEW:
                checklist.submitted_at = utcnow()
        else:
            logger.warning(
                "Ignoring status change %s → %s on %s",
                old_status, new_status, checklist.dcl_no,
                extra={"report_id": checklist.id, "event_type": "status_ignored"},
            )

    db.session.commit()

    if checklist.status != old_status:
        NotificationService.status_changed(checklist, old_status)
        if checklist.status == STATUS_PENDING_QS_REVIEW:
            NotificationService.submitted_for_review(checklist)
    return checklist


def delete_checklist(checklist_id, identity) -> None:
    """Hard-delete a checklist; its comments cascade."""
    require_identity(identity)
    checklist = get_checklist(checklist_id)
    ensure_not_locked(checklist, identity)
    dcl_no = checklist.dcl_no
    db.session.delete(checklist)
    db.session.commit()
    logger.info(
        "Checklist deleted: %s", dcl_no,
        extra={"report_id": checklist_id, "user_id": identity.user_id, "event_type": "checklist_deleted"},
    )


# ═════════════════════════════════════════════════════════════════════════════
# Locking
# ═════════════════════════════════════════════════════════════════════════════


def acquire_lock(checklist_id, identity, duration_minutes=None) -> Checklist:
    """Lock a checklist for editing, or refresh the caller's own lock."""
    require_identity(identity)
    cfg = current_app.config
    if duration_minutes in (None, ""):
        duration_minutes = cfg["CHECKLIST_LOCK_TTL_MINUTES"]
    try:
        duration_minutes = int(duration_minutes)
    except (TypeError, ValueError):
        raise ValidationError("duration_minutes must be an integer")
    if duration_minutes < 1 or duration_minutes > cfg["CHECKLIST_LOCK_MAX_MINUTES"]:
        raise ValidationError(
            f"duration_minutes must be between 1 and {cfg['CHECKLIST_LOCK_MAX_MINUTES']}",
        )

    checklist = get_checklist(checklist_id)
    ensure_not_locked(checklist, identity)

    now = utcnow()
    if not (checklist.is_locked and checklist.locked_by_user_id == identity.user_id):
        checklist.locked_at = now
    checklist.is_locked = True
    checklist.locked_by_user_id = identity.user_id
    checklist.locked_by_user_name = identity.name or identity.email or identity.user_id
    checklist.lock_expires_at = now + timedelta(minutes=duration_minutes)
    db.session.commit()
    logger.info(
        "Checklist %s locked by %s for %d min", checklist.dcl_no, identity.user_id, duration_minutes,
        extra={"report_id": checklist.id, "user_id": identity.user_id, "event_type": "lock_acquired"},
    )
    return checklist


def release_lock(checklist_id, identity) -> Checklist:
    """Release a lock. Only the holder or an Admin may do so."""
    require_identity(identity)
    checklist = get_checklist(checklist_id)
    if not checklist.is_locked:
        return checklist
    if checklist.lock_expired:
        checklist.release_lock()
        db.session.commit()
        return checklist
    if checklist.locked_by_user_id != identity.user_id and identity.role != ROLE_ADMIN:
        raise ConflictError(
            "Checklist", "lock", checklist.locked_by_user_name,
            message=f"Checklist is locked by {checklist.locked_by_user_name or 'another user'}",
        )
    checklist.release_lock()
    db.session.commit()
    logger.info(
        "Checklist %s unlocked by %s", checklist.dcl_no, identity.user_id,
        extra={"report_id": checklist.id, "user_id": identity.user_id, "event_type": "lock_released"},
    )
    return checklist


# ═════════════════════════════════════════════════════════════════════════════
# Maintenance
# ═════════════════════════════════════════════════════════════════════════════


def normalize_legacy_statuses() -> dict:
    """Rewrite legacy status spellings to the canonical vocabulary.

    Returns a ``{legacy_value: rows_updated}`` summary.
    """
    summary = {}
    for legacy, canonical in LEGACY_STATUS_ALIASES.items():
        count = (
            Checklist.query.filter(Checklist.status == legacy)
            .update({"status": canonical}, synchronize_session=False)
        )
        if count:
            summary[legacy] = count
    db.session.commit()
    if summary:
        logger.info("Normalized legacy checklist statuses: %s", summary)
    return summary
