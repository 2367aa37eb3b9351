"""
GeoBuild Back-Office API
Blueprint registry helpers.
"""

import logging
import math

from flask import request
from werkzeug.exceptions import HTTPException

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def get_page_args(default_page_size=DEFAULT_PAGE_SIZE, max_page_size=MAX_PAGE_SIZE):
    """Read ``page`` / ``page_size`` from the query string, clamped to sane bounds."""
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        page_size = int(request.args.get("page_size", request.args.get("pageSize", default_page_size)))
    except (ValueError, TypeError):
        page_size = default_page_size
    page_size = min(max(page_size, 1), max_page_size)
    return page, page_size


def paginate_query(query, serialize=None):
    """Apply page/page_size pagination to a SQLAlchemy query.

    Query params:
        page      — 1-based page number (default 1)
        page_size — items per page (default 10, capped at 100)

    Returns:
        {"items", "total", "page", "page_size", "total_pages"}
    """
    page, page_size = get_page_args()
    total = query.count()
    rows = query.limit(page_size).offset((page - 1) * page_size).all()
    serialize = serialize or (lambda row: row.to_dict())
    return {
        "items": [serialize(r) for r in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size) if total else 0,
    }


def register_error_handlers(bp):
    """Map the service-layer exception hierarchy onto HTTP responses for ``bp``."""

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(AuthorizationError)
    def _handle_unauthorized(error: AuthorizationError):
        return api_error(E.UNAUTHORIZED, str(error))

    @bp.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        code = E.CONFLICT_LOCKED if error.field == "lock" else E.CONFLICT_DUPLICATE
        details = {"field": error.field}
        if error.value is not None:
            details["value"] = str(error.value)[:100]
        return api_error(code, str(error), details=details)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
