"""
JWT Auth Middleware — Parses the bearer token, sets g.jwt_*.

Every ``/api/v1/`` route except the public auth and health endpoints
requires a valid access token.  The notification hub (``/hub/``) also
accepts the token as an ``access_token`` query parameter, since browser
EventSource clients cannot set headers.

Sets:
    g.jwt_user_id, g.jwt_role, g.jwt_email, g.jwt_name
"""

import logging
from dataclasses import dataclass

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import decode_access_token
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/auth/refresh-token",
    "/api/v1/health",
)

HUB_PREFIX = "/hub/"


@dataclass(frozen=True)
class Identity:
    """Caller identity taken from the access-token claims."""
    user_id: str | None
    role: str | None
    name: str | None
    email: str | None


def get_identity() -> Identity:
    """Return the identity for the current request (fields may be None)."""
    return Identity(
        user_id=getattr(g, "jwt_user_id", None),
        role=getattr(g, "jwt_role", None),
        name=getattr(g, "jwt_name", None),
        email=getattr(g, "jwt_email", None),
    )


def identity_from_claims(payload: dict) -> Identity:
    name = payload.get("name")
    if not name:
        name = " ".join(
            p for p in (payload.get("given_name"), payload.get("family_name")) if p
        ) or None
    return Identity(
        user_id=payload.get("sub"),
        role=payload.get("role"),
        name=name,
        email=payload.get("email"),
    )


def _extract_token(path: str) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]  # Strip "Bearer "
    if path.startswith(HUB_PREFIX):
        return request.args.get("access_token") or None
    return None


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        # Clear JWT context
        g.jwt_user_id = None
        g.jwt_role = None
        g.jwt_email = None
        g.jwt_name = None

        path = request.path
        if request.method == "OPTIONS":
            return None
        if not (path.startswith("/api/v1/") or path.startswith(HUB_PREFIX)):
            return None

        token = _extract_token(path)
        skipped = any(path.startswith(prefix) for prefix in JWT_SKIP_PREFIXES)

        if not token:
            if skipped:
                return None
            return api_error(E.UNAUTHORIZED, "Authentication required")

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            if skipped:
                return None
            return api_error(E.UNAUTHORIZED, "Token has expired")
        except pyjwt.InvalidTokenError as exc:
            if skipped:
                return None
            logger.info("Rejected bearer token on %s: %s", path, exc)
            return api_error(E.UNAUTHORIZED, "Invalid token")

        identity = identity_from_claims(payload)
        g.jwt_user_id = identity.user_id
        g.jwt_role = identity.role
        g.jwt_email = identity.email
        g.jwt_name = identity.name
        return None
