"""
GeoBuild Back-Office API
Checklist (report) workflow models.

Models:
    - Checklist:       one loan/project review cycle ("report"), the workflow subject
    - Comment:         append-only annotation on a checklist, author snapshot at write time
    - ReportSequence:  atomic counter backing ``CRN-<seq>`` report numbers

Architecture:
    Checklist ──1:N──▶ Comment   (ON DELETE CASCADE)
    Checklist ──N:1──▶ User      (assigned_to_rm, not an enforced FK)

Lifecycle states:
    pending → draft → pending_qs_review → under_review
            → approved | rejected | revision_requested
    revision_requested → draft | pending_qs_review  (resubmission)
"""

import uuid
from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

STATUS_PENDING = "pending"
STATUS_DRAFT = "draft"
STATUS_PENDING_QS_REVIEW = "pending_qs_review"
STATUS_UNDER_REVIEW = "under_review"
STATUS_REVISION_REQUESTED = "revision_requested"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

REPORT_STATUSES = {
    STATUS_PENDING, STATUS_DRAFT, STATUS_PENDING_QS_REVIEW,
    STATUS_UNDER_REVIEW, STATUS_REVISION_REQUESTED,
    STATUS_APPROVED, STATUS_REJECTED,
}

REPORT_TRANSITIONS = {
    "pending":            ["draft", "pending_qs_review"],
    "draft":              ["draft", "pending_qs_review"],
    "pending_qs_review":  ["draft", "pending_qs_review", "under_review"],
    "under_review":       ["approved", "rejected", "revision_requested", "under_review"],
    "revision_requested": ["draft", "pending_qs_review", "under_review"],
    "approved":           [],
    "rejected":           [],
}

# Spellings written by earlier releases → canonical value
LEGACY_STATUS_ALIASES = {
    "Pending": STATUS_PENDING,
    "Draft": STATUS_DRAFT,
    "Submitted": STATUS_PENDING_QS_REVIEW,
    "submitted": STATUS_PENDING_QS_REVIEW,
    "PendingQSReview": STATUS_PENDING_QS_REVIEW,
    "pendingqsreview": STATUS_PENDING_QS_REVIEW,
    "UnderReview": STATUS_UNDER_REVIEW,
    "InReview": STATUS_UNDER_REVIEW,
    "in_review": STATUS_UNDER_REVIEW,
    "RevisionRequested": STATUS_REVISION_REQUESTED,
    "Approved": STATUS_APPROVED,
    "Completed": STATUS_APPROVED,
    "completed": STATUS_APPROVED,
    "Rejected": STATUS_REJECTED,
}

PRIORITIES = {"low", "medium", "high", "critical"}
CRITICAL_PRIORITIES = {"high", "critical"}


def validate_report_transition(old_status, new_status):
    """Return True if Checklist status transition follows the review lifecycle."""
    return new_status in REPORT_TRANSITIONS.get(old_status, [])


def canonical_status(value):
    """Map a stored or legacy status spelling onto the canonical vocabulary.

    Returns None for values that are neither canonical nor a known alias.
    """
    if value is None:
        return None
    if value in REPORT_STATUSES:
        return value
    return LEGACY_STATUS_ALIASES.get(value)


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# Checklist
# ═════════════════════════════════════════════════════════════════════════════


class Checklist(db.Model):
    """A construction-loan checklist moving through the QS review workflow."""

    __tablename__ = "checklists"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    dcl_no = db.Column(db.String(50), nullable=False)

    customer_id = db.Column(db.String(50))
    customer_number = db.Column(db.String(50), nullable=False)
    customer_name = db.Column(db.String(200), nullable=False)
    customer_email = db.Column(db.String(100))
    project_name = db.Column(db.String(200), nullable=False)
    ibps_no = db.Column(db.String(100))
    assigned_to_rm = db.Column(db.String(36), index=True)
    created_by = db.Column(db.String(36))

    documents = db.Column(db.JSON, nullable=False, default=list)
    site_visit_form = db.Column(db.JSON)

    status = db.Column(db.String(30), nullable=False, default=STATUS_PENDING, index=True)
    priority = db.Column(db.String(20))
    assigned_to_qs = db.Column(db.String(36), index=True)
    assigned_to_qs_name = db.Column(db.String(200))
    submitted_at = db.Column(db.DateTime)
    reviewed_at = db.Column(db.DateTime)
    reviewed_by = db.Column(db.String(36))

    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    locked_by_user_id = db.Column(db.String(36))
    locked_by_user_name = db.Column(db.String(200))
    locked_at = db.Column(db.DateTime)
    lock_expires_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    comments = db.relationship(
        "Comment",
        back_populates="checklist",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Comment.created_at.desc()",
    )

    __table_args__ = (
        db.UniqueConstraint("dcl_no", name="uq_checklists_dcl_no"),
    )

    @property
    def lock_expired(self):
        if not self.is_locked or self.lock_expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self.lock_expires_at.replace(tzinfo=timezone.utc)

    def is_locked_for(self, user_id):
        """True when an unexpired lock is held by someone other than ``user_id``."""
        return (
            self.is_locked
            and not self.lock_expired
            and self.locked_by_user_id is not None
            and self.locked_by_user_id != user_id
        )

    def release_lock(self):
        self.is_locked = False
        self.locked_by_user_id = None
        self.locked_by_user_name = None
        self.locked_at = None
        self.lock_expires_at = None

    def to_dict(self, assigned_rm=None):
        """Serialize the checklist.

        Args:
            assigned_rm: Optional ``User`` resolved from ``assigned_to_rm``;
                rendered as ``{"id", "name", "email"}``.
        """
        rm_ref = None
        if assigned_rm is not None:
            rm_ref = {
                "id": assigned_rm.id,
                "name": assigned_rm.full_name,
                "email": assigned_rm.email,
            }
        elif self.assigned_to_rm:
            rm_ref = {"id": self.assigned_to_rm, "name": "", "email": ""}

        locked_by = None
        if self.is_locked and self.locked_by_user_id:
            locked_by = {"id": self.locked_by_user_id, "name": self.locked_by_user_name or ""}

        return {
            "id": self.id,
            "dcl_no": self.dcl_no,
            "call_report_no": self.dcl_no,
            "customer_id": self.customer_id,
            "customer_number": self.customer_number,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "project_name": self.project_name,
            "loan_type": self.project_name,
            "ibps_no": self.ibps_no,
            "status": self.status,
            "priority": self.priority,
            "assigned_to_rm": rm_ref,
            "documents": self.documents or [],
            "site_visit_form": self.site_visit_form,
            "is_locked": bool(self.is_locked),
            "locked_by": locked_by,
            "locked_at": _iso(self.locked_at),
            "lock_expires_at": _iso(self.lock_expires_at),
            "assigned_to_qs": self.assigned_to_qs,
            "assigned_to_qs_name": self.assigned_to_qs_name,
            "submitted_at": _iso(self.submitted_at),
            "reviewed_at": _iso(self.reviewed_at),
            "reviewed_by": self.reviewed_by,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Checklist {self.dcl_no} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# Comment (append-only)
# ═════════════════════════════════════════════════════════════════════════════


class Comment(db.Model):
    """Annotation on a checklist.

    Author name and role are snapshots taken at write time and are never
    re-synced with the users table.
    """

    __tablename__ = "comments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    report_id = db.Column(
        db.String(36),
        db.ForeignKey("checklists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.String(36), nullable=False)
    user_name = db.Column(db.String(200), nullable=False)
    user_role = db.Column(db.String(20), nullable=False)
    text = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    checklist = db.relationship("Checklist", back_populates="comments")

    def to_dict(self):
        return {
            "id": self.id,
            "report_id": self.report_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_role": self.user_role,
            "text": self.text,
            "is_internal": self.is_internal,
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Report number counter
# ═════════════════════════════════════════════════════════════════════════════


class ReportSequence(db.Model):
    __tablename__ = "report_sequences"

    name = db.Column(db.String(50), primary_key=True)
    value = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ReportSequence {self.name}={self.value}>"
