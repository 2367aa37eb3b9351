"""
QS Blueprint — review workflow endpoints.

  GET  /api/v1/qs/dashboard/stats
  GET  /api/v1/qs/reviews/pending            — paginated
  GET  /api/v1/qs/reviews/in-progress        — paginated
  GET  /api/v1/qs/reviews/completed          — paginated
  GET  /api/v1/qs/reviews/my-active
  GET  /api/v1/qs/reviews/<id>
  GET  /api/v1/qs/reviews/<id>/comments
  POST /api/v1/qs/reviews/<id>/comments      — { "comment", "is_internal" }
  POST /api/v1/qs/reviews/<id>/assign
  POST /api/v1/qs/reviews/<id>/revision      — { "notes", "required_changes": [] }
  POST /api/v1/qs/reviews/<id>/approve       — { "notes"? }
  POST /api/v1/qs/reviews/<id>/reject        — { "reason" }
  GET  /api/v1/qs/site-visits/upcoming       — always []
"""

from flask import Blueprint, jsonify, request

from app.blueprints import paginate_query, register_error_handlers
from app.middleware.jwt_auth import get_identity
from app.services import checklist_service, review_service

qs_bp = Blueprint("qs_bp", __name__, url_prefix="/api/v1/qs")
register_error_handlers(qs_bp)


def _paginated(query):
    page = paginate_query(query, serialize=lambda c: c)
    page["items"] = checklist_service.serialize_checklists(page["items"])
    return jsonify(page), 200


# ═════════════════════════════════════════════════════════════════════════
# Dashboard & lists
# ═════════════════════════════════════════════════════════════════════════


@qs_bp.route("/dashboard/stats", methods=["GET"])
def dashboard_stats():
    return jsonify(review_service.dashboard_stats(get_identity())), 200


@qs_bp.route("/reviews/pending", methods=["GET"])
def pending_reviews():
    return _paginated(review_service.pending_reviews_query())


@qs_bp.route("/reviews/in-progress", methods=["GET"])
def in_progress_reviews():
    return _paginated(review_service.in_progress_reviews_query())


@qs_bp.route("/reviews/completed", methods=["GET"])
def completed_reviews():
    return _paginated(review_service.completed_reviews_query())


@qs_bp.route("/reviews/my-active", methods=["GET"])
def my_active_reviews():
    checklists = review_service.my_active_reviews(get_identity())
    return jsonify(checklist_service.serialize_checklists(checklists)), 200


@qs_bp.route("/reviews/<checklist_id>", methods=["GET"])
def get_review(checklist_id):
    checklist = checklist_service.get_checklist(checklist_id)
    return jsonify(checklist_service.serialize_checklist(checklist)), 200


@qs_bp.route("/site-visits/upcoming", methods=["GET"])
def upcoming_site_visits():
    return jsonify([]), 200


# ═════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════


@qs_bp.route("/reviews/<checklist_id>/comments", methods=["GET"])
def list_comments(checklist_id):
    comments = review_service.list_comments(checklist_id)
    return jsonify([c.to_dict() for c in comments]), 200


@qs_bp.route("/reviews/<checklist_id>/comments", methods=["POST"])
def add_comment(checklist_id):
    data = request.get_json(silent=True) or {}
    comment = review_service.add_comment(
        checklist_id,
        get_identity(),
        data.get("comment", data.get("text")),
        is_internal=data.get("is_internal", data.get("isInternal", False)),
    )
    return jsonify(comment.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════


@qs_bp.route("/reviews/<checklist_id>/assign", methods=["POST"])
def assign(checklist_id):
    checklist = review_service.assign_to_reviewer(checklist_id, get_identity())
    return jsonify({
        "message": "Report assigned successfully",
        "report": checklist_service.serialize_checklist(checklist),
    }), 200


@qs_bp.route("/reviews/<checklist_id>/revision", methods=["POST"])
def request_revision(checklist_id):
    data = request.get_json(silent=True) or {}
    checklist = review_service.request_revision(
        checklist_id,
        get_identity(),
        notes=data.get("notes"),
        required_changes=data.get("required_changes", data.get("requiredChanges")),
    )
    return jsonify({
        "message": "Revision requested successfully",
        "report": checklist_service.serialize_checklist(checklist),
    }), 200


@qs_bp.route("/reviews/<checklist_id>/approve", methods=["POST"])
def approve(checklist_id):
    data = request.get_json(silent=True) or {}
    checklist = review_service.approve(checklist_id, get_identity(), notes=data.get("notes"))
    return jsonify({
        "message": "Report approved successfully",
        "report": checklist_service.serialize_checklist(checklist),
    }), 200


@qs_bp.route("/reviews/<checklist_id>/reject", methods=["POST"])
def reject(checklist_id):
    data = request.get_json(silent=True) or {}
    checklist = review_service.reject(checklist_id, get_identity(), reason=data.get("reason"))
    return jsonify({
        "message": "Report rejected successfully",
        "report": checklist_service.serialize_checklist(checklist),
    }), 200
