"""
JWT Service — access-token issuing/verification and refresh-session persistence.

Access token:  7 days by default (JWT_ACCESS_EXPIRES)
Refresh token: opaque random 128-bit value, base64 (JWT_REFRESH_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": <user_id>,
    "email": <email>,
    "role": "RM" | "QS" | "Admin",
    "given_name": <first_name>,
    "family_name": <last_name>,
    "name": <full name>,
    "iss": JWT_ISSUER,
    "aud": JWT_AUDIENCE,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Refresh tokens are never stored raw: ``auth_sessions.token_hash`` holds
their SHA-256 digest and every refresh rotates the session.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.models import db
from app.models.auth import AuthSession
from app.utils.crypto import generate_refresh_token, hash_token

ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config["JWT_ACCESS_EXPIRES"]


def _get_refresh_expires():
    return current_app.config["JWT_REFRESH_EXPIRES"]


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user) -> str:
    """Generate a signed access token carrying identity + role claims."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.role,
        "given_name": user.first_name,
        "family_name": user.last_name,
        "name": user.full_name,
        "iss": current_app.config["JWT_ISSUER"],
        "aud": current_app.config["JWT_AUDIENCE"],
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def generate_token_pair(user) -> dict:
    """Generate an access token plus an opaque refresh token."""
    refresh_token = generate_refresh_token()
    return {
        "access_token": generate_access_token(user),
        "refresh_token": refresh_token,
        "token_hash": hash_token(refresh_token),
        "expires_at": datetime.now(timezone.utc) + timedelta(seconds=_get_refresh_expires()),
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token (signature, issuer, audience, expiry).

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(
        token,
        _get_secret(),
        algorithms=[ALGORITHM],
        issuer=current_app.config["JWT_ISSUER"],
        audience=current_app.config["JWT_AUDIENCE"],
    )
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload


# ═══════════════════════════════════════════════════════════════
# Session Management
# All session persistence belongs in this service, not in blueprints.
# ═══════════════════════════════════════════════════════════════

def create_session(
    user_id: str,
    token_hash: str,
    ip_address: str | None,
    user_agent: str | None,
    expires_at: datetime,
) -> AuthSession:
    """Persist a new refresh-token session."""
    session = AuthSession(
        user_id=user_id,
        token_hash=token_hash,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=expires_at,
    )
    db.session.add(session)
    db.session.commit()
    return session


def get_active_session(token_hash: str) -> AuthSession | None:
    """Return the active session for a refresh-token hash, if any."""
    return AuthSession.query.filter_by(token_hash=token_hash, is_active=True).first()


def revoke_session(session: AuthSession) -> None:
    """Mark a session as inactive and commit."""
    session.is_active = False
    db.session.commit()


def revoke_session_by_token(token_hash: str) -> bool:
    """
    Find an active session by token hash and revoke it.

    Returns True if a session was found and revoked, False otherwise.
    """
    session = get_active_session(token_hash)
    if session:
        session.is_active = False
        db.session.commit()
        return True
    return False


def revoke_all_user_sessions(user_id: str) -> None:
    """Revoke all active sessions for a user (password change / logout-everywhere)."""
    AuthSession.query.filter_by(user_id=user_id, is_active=True).update({"is_active": False})
    db.session.commit()


def rotate_session(
    old_session: AuthSession,
    new_token_hash: str,
    new_expires_at: datetime,
    ip_address: str | None,
    user_agent: str | None,
) -> AuthSession:
    """
    Invalidate the old session and create its replacement in one commit.

    Token rotation prevents refresh token reuse.
    """
    old_session.is_active = False
    old_session.last_used_at = datetime.now(timezone.utc)

    new_session = AuthSession(
        user_id=old_session.user_id,
        token_hash=new_token_hash,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=new_expires_at,
    )
    db.session.add(new_session)
    db.session.commit()
    return new_session
