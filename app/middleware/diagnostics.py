"""
Startup diagnostics — runs once when the Flask app starts.

Checks critical dependencies and logs a summary banner.
"""

import logging
import os
import sys

from flask import Flask

from app.models import db

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        # ── Python version ───────────────────────────────────────────
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Table count ──────────────────────────────────────────────
        try:
            from sqlalchemy import inspect as sa_inspect
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found — run 'flask db upgrade'")
        except Exception:
            table_count = "?"

        # ── Upload directory ─────────────────────────────────────────
        folder = app.config["UPLOAD_FOLDER"]
        if os.path.isdir(folder):
            uploads_status = "ok" if os.access(folder, os.W_OK) else "READ-ONLY"
            if uploads_status != "ok":
                issues.append(f"Upload folder is not writable: {folder}")
        else:
            uploads_status = "created on first upload"

        # ── JWT secret ───────────────────────────────────────────────
        jwt_secret = "env" if os.getenv("JWT_SECRET_KEY") else "generated (dev only)"
        if not os.getenv("JWT_SECRET_KEY") and not app.debug:
            issues.append("JWT_SECRET_KEY not set — tokens will not survive a restart")

        # ── Banner ───────────────────────────────────────────────────
        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  GeoBuild Back-Office API — Startup Diagnostics              ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Tables      : {str(table_count):<46s}║
║  Uploads     : {uploads_status:<46s}║
║  JWT secret  : {jwt_secret:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
