"""Shared utility functions.

run_with_db_retry:  bounded retry of a unit of work on transient DB errors
as_utc:             attach UTC to naive datetimes read back from SQLite
parse_bool:         lenient truthiness for JSON / form values
"""
import logging
import time
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import OperationalError

from app.models import db

logger = logging.getLogger(__name__)


def run_with_db_retry(work, *, attempts=None, backoff=None, retry_on=(OperationalError,)):
    """Run ``work()`` and retry it after a rollback when it raises ``retry_on``.

    ``work`` must be a complete unit of work (it commits itself), so a
    retry never replays a half-applied change.  The last error propagates.
    """
    attempts = attempts or current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    backoff = backoff if backoff is not None else current_app.config.get("DB_RETRY_BACKOFF", 0.05)
    for attempt in range(1, attempts + 1):
        try:
            return work()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts:
                raise
            logger.warning(
                "Transient DB error (attempt %d/%d): %s", attempt, attempts, exc,
            )
            time.sleep(backoff * attempt)


def as_utc(value):
    """Return ``value`` as an aware UTC datetime (None stays None)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow():
    return datetime.now(timezone.utc)


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
