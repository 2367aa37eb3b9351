"""
Role Decorators — JWT-aware role checks for route protection.

Usage:
    @checklist_bp.route("/<checklist_id>", methods=["DELETE"])
    @require_role("Admin")
    def delete_checklist(checklist_id):
        ...

The JWT middleware already rejects anonymous callers on protected
prefixes; these decorators only compare the role claim.
"""

import functools
import logging

from flask import g

from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_role(*roles: str):
    """
    Decorator: require the JWT user's role claim to be one of ``roles``.

    Args:
        roles: Accepted role names, e.g. "Admin", "QS".
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id = getattr(g, "jwt_user_id", None)
            if user_id is None:
                return api_error(E.UNAUTHORIZED, "User not authenticated")

            role = getattr(g, "jwt_role", None)
            if role not in roles:
                logger.warning(
                    "User %s denied: role '%s' not in %s on %s",
                    user_id, role, list(roles), f.__name__,
                )
                return api_error(
                    E.FORBIDDEN,
                    "Permission denied",
                    details={"required_roles": list(roles)},
                )

            return f(*args, **kwargs)
        return decorated
    return decorator
