"""
Auth Blueprint — JWT authentication endpoints.

  POST /api/v1/auth/register         — Create account → JWT pair
  POST /api/v1/auth/login            — Email + password → JWT pair
  POST /api/v1/auth/refresh-token    — Opaque refresh token → rotated JWT pair
  POST /api/v1/auth/logout           — Revoke refresh token (or all sessions)
  GET  /api/v1/auth/me               — Current user profile
  POST /api/v1/auth/change-password  — Verify current password, set a new one
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.blueprints import register_error_handlers
from app.services.jwt_service import (
    create_session,
    generate_token_pair,
    get_active_session,
    revoke_all_user_sessions,
    revoke_session,
    revoke_session_by_token,
    rotate_session,
)
from app.services.user_service import (
    UserServiceError,
    authenticate_user,
    change_user_password,
    get_user_by_id,
    register_user,
)
from app.utils.crypto import hash_token

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")
register_error_handlers(auth_bp)


@auth_bp.errorhandler(UserServiceError)
def _handle_user_error(error: UserServiceError):
    return jsonify({"error": error.message}), error.status_code


def _token_body(user, tokens):
    return {
        "access_token": tokens["access_token"],
        "refresh_token": tokens["refresh_token"],
        "token_type": tokens["token_type"],
        "expires_in": tokens["expires_in"],
        "user": user.to_dict(),
    }


def _token_response(user, status=200):
    """Issue a token pair and open a new refresh session for it."""
    tokens = generate_token_pair(user)
    create_session(
        user.id, tokens["token_hash"],
        request.remote_addr, request.headers.get("User-Agent", ""),
        tokens["expires_at"],
    )
    return jsonify(_token_body(user, tokens)), status


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Create an account and log it in.

    Body: { "email", "password", "first_name", "last_name", "role"? }
    """
    data = request.get_json(silent=True) or {}
    user = register_user(
        email=data.get("email", ""),
        password=data.get("password", ""),
        first_name=data.get("first_name", data.get("firstName", "")),
        last_name=data.get("last_name", data.get("lastName", "")),
        role=data.get("role"),
    )
    return _token_response(user, 201)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return JWT pair.

    Body: { "email": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    user = authenticate_user(email, password)
    logger.info("User logged in: %s", user.id, extra={"user_id": user.id, "event_type": "login"})
    return _token_response(user)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/refresh-token
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/refresh-token", methods=["POST"])
def refresh():
    """
    Exchange a refresh token for a new pair (token rotation).

    Body: { "refresh_token": "..." }
    """
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token") or data.get("refreshToken") or ""

    if not refresh_token:
        return jsonify({"error": "Refresh token is required"}), 400

    session = get_active_session(hash_token(refresh_token))
    if not session:
        return jsonify({"error": "Invalid or revoked refresh token"}), 401

    if session.is_expired:
        revoke_session(session)
        return jsonify({"error": "Refresh token expired"}), 401

    user = get_user_by_id(session.user_id)
    if not user or not user.is_active:
        revoke_session(session)
        return jsonify({"error": "User inactive or not found"}), 401

    tokens = generate_token_pair(user)
    rotate_session(
        session,
        tokens["token_hash"],
        tokens["expires_at"],
        request.remote_addr,
        request.headers.get("User-Agent", ""),
    )
    return jsonify(_token_body(user, tokens)), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    """
    Revoke the given refresh token, or every session of the caller.

    Body: { "refresh_token": "..." }  (optional)
    """
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token") or data.get("refreshToken") or ""

    if refresh_token:
        revoke_session_by_token(hash_token(refresh_token))
    elif g.jwt_user_id:
        revoke_all_user_sessions(g.jwt_user_id)

    return jsonify({"message": "Logged out successfully"}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    """Get current user profile from JWT."""
    if not g.jwt_user_id:
        return jsonify({"error": "Authentication required"}), 401

    user = get_user_by_id(g.jwt_user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    return jsonify({"user": user.to_dict()}), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/change-password
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/change-password", methods=["POST"])
def change_password():
    """
    Change current user's password.

    Body: { "current_password", "new_password", "confirm_password"? }
    """
    if not g.jwt_user_id:
        return jsonify({"error": "Authentication required"}), 401

    data = request.get_json(silent=True) or {}
    current_pw = data.get("current_password", data.get("currentPassword", ""))
    new_pw = data.get("new_password", data.get("newPassword", ""))
    confirm_pw = data.get("confirm_password", data.get("confirmPassword"))

    if not current_pw or not new_pw:
        return jsonify({"error": "Both current and new password are required"}), 400

    change_user_password(g.jwt_user_id, current_pw, new_pw, confirm_pw)
    return jsonify({"message": "Password changed successfully"}), 200
