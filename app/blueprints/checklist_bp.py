"""
Checklist Blueprint — RM checklist endpoints and site-visit photos.

  GET    /api/v1/checklists                      — newest first (status, assigned_to_rm, search)
  POST   /api/v1/checklists                      — create (report number allocated)
  GET    /api/v1/checklists/<id>
  PUT    /api/v1/checklists/<id>                 — update fields / whitelisted status
  DELETE /api/v1/checklists/<id>                 — Admin only, comments cascade
  POST   /api/v1/checklists/<id>/lock            — acquire / refresh edit lock
  POST   /api/v1/checklists/<id>/unlock          — release (holder or Admin)
  POST   /api/v1/checklists/photos               — multipart upload (file, section, slot)
  GET    /api/v1/checklists/photos/<file_name>
"""

import logging

from flask import Blueprint, jsonify, request, send_from_directory, url_for

from app.blueprints import register_error_handlers
from app.middleware.jwt_auth import get_identity
from app.middleware.permission_required import require_role
from app.models.auth import ROLE_ADMIN
from app.services import checklist_service, photo_service

logger = logging.getLogger(__name__)

checklist_bp = Blueprint("checklist_bp", __name__, url_prefix="/api/v1/checklists")
register_error_handlers(checklist_bp)


# ═════════════════════════════════════════════════════════════════════════
# Photos  (registered before /<checklist_id> routes)
# ═════════════════════════════════════════════════════════════════════════


@checklist_bp.route("/photos", methods=["POST"])
def upload_photo():
    stored = photo_service.save_photo(
        request.files.get("file"),
        section=request.form.get("section"),
        slot=request.form.get("slot"),
    )
    url = url_for("checklist_bp.get_photo", file_name=stored["file_name"])
    return jsonify({
        "url": url,
        "file_name": stored["file_name"],
        "section": stored["section"],
        "slot": stored["slot"],
        "size": stored["size"],
    }), 200


@checklist_bp.route("/photos/<path:file_name>", methods=["GET"])
def get_photo(file_name):
    safe_name = photo_service.resolve_photo(file_name)
    return send_from_directory(photo_service.upload_folder(), safe_name)


# ═════════════════════════════════════════════════════════════════════════
# Checklists
# ═════════════════════════════════════════════════════════════════════════


@checklist_bp.route("", methods=["GET"])
def list_checklists():
    checklists = checklist_service.list_checklists(
        status=request.args.get("status"),
        assigned_to_rm=request.args.get("assigned_to_rm"),
        search=request.args.get("search"),
    )
    return jsonify(checklist_service.serialize_checklists(checklists)), 200


@checklist_bp.route("", methods=["POST"])
def create_checklist():
    data = request.get_json(silent=True) or {}
    checklist = checklist_service.create_checklist(data, get_identity())
    return jsonify(checklist_service.serialize_checklist(checklist)), 201


@checklist_bp.route("/<checklist_id>", methods=["GET"])
def get_checklist(checklist_id):
    checklist = checklist_service.get_checklist(checklist_id)
    return jsonify(checklist_service.serialize_checklist(checklist)), 200


@checklist_bp.route("/<checklist_id>", methods=["PUT"])
def update_checklist(checklist_id):
    data = request.get_json(silent=True) or {}
    checklist = checklist_service.update_checklist(checklist_id, data, get_identity())
    return jsonify(checklist_service.serialize_checklist(checklist)), 200


@checklist_bp.route("/<checklist_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def delete_checklist(checklist_id):
    checklist_service.delete_checklist(checklist_id, get_identity())
    return "", 204


@checklist_bp.route("/<checklist_id>/lock", methods=["POST"])
def lock_checklist(checklist_id):
    data = request.get_json(silent=True) or {}
    duration = data.get("duration_minutes", data.get("lockDurationMinutes"))
    checklist = checklist_service.acquire_lock(checklist_id, get_identity(), duration)
    return jsonify(checklist_service.serialize_checklist(checklist)), 200


@checklist_bp.route("/<checklist_id>/unlock", methods=["POST"])
def unlock_checklist(checklist_id):
    checklist = checklist_service.release_lock(checklist_id, get_identity())
    return jsonify(checklist_service.serialize_checklist(checklist)), 200
