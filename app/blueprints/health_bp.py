"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — minimal status
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — dependency status (database, uploads, hub)
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify

from app.models import db
from app.services.notification_hub import get_hub

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": "GeoBuild Back-Office API"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Upload directory ─────────────────────────────────────────────
    folder = current_app.config["UPLOAD_FOLDER"]
    if os.path.isdir(folder):
        writable = os.access(folder, os.W_OK)
        checks["uploads"] = {"status": "ok" if writable else "read_only"}
    else:
        checks["uploads"] = {"status": "missing", "detail": "created on first upload"}

    # ── Notification hub ─────────────────────────────────────────────
    checks["hub"] = {"status": "ok", "connections": get_hub().connection_count}

    status_code = 200 if overall else 503
    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), status_code
