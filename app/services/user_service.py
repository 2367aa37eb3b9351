"""
User Service — registration, authentication, profile and password management.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError

from app.models import db
from app.models.auth import ROLE_RM, USER_ROLES, User
from app.services.jwt_service import revoke_all_user_sessions
from app.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserServiceError(Exception):
    """Custom exception for user service errors."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def normalize_email(email: str) -> str:
    """Validate and normalize an email address (lower-cased)."""
    try:
        valid = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise UserServiceError(f"Invalid email: {e}")
    return valid.normalized.lower()


def _check_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise UserServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


# ═══════════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════════
def register_user(
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str | None = None,
) -> User:
    """Create a new account. Duplicate emails are rejected with 409."""
    email = normalize_email(email)
    _check_password_strength(password)

    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name or not last_name:
        raise UserServiceError("First name and last name are required")

    role = role or ROLE_RM
    if role not in USER_ROLES:
        raise UserServiceError(f"Invalid role '{role}'. Must be one of: {', '.join(USER_ROLES)}")

    if User.query.filter_by(email=email).first():
        raise UserServiceError("User with this email already exists", 409)

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration for the same email
        db.session.rollback()
        raise UserServiceError("User with this email already exists", 409)

    logger.info("User registered: %s (%s)", user.id, role, extra={"event_type": "user_registered"})
    return user


# ═══════════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════════
def get_user_by_id(user_id: str) -> User | None:
    if not user_id:
        return None
    return db.session.get(User, user_id)


def get_user_by_email(email: str) -> User | None:
    return User.query.filter_by(email=(email or "").strip().lower()).first()


def authenticate_user(email: str, password: str) -> User:
    """Authenticate a user with email + password. Returns User on success."""
    user = get_user_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        raise UserServiceError("Invalid email or password", 401)

    if not user.is_active:
        raise UserServiceError("Account is deactivated", 403)

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user


# ═══════════════════════════════════════════════════════════════
# Password management
# ═══════════════════════════════════════════════════════════════
def change_user_password(
    user_id: str,
    current_password: str,
    new_password: str,
    confirm_password: str | None = None,
) -> User:
    """Change a password after verifying the current one; revokes refresh sessions."""
    user = get_user_by_id(user_id)
    if not user:
        raise UserServiceError("User not found", 404)

    if not verify_password(current_password, user.password_hash):
        raise UserServiceError("Current password is incorrect")

    if confirm_password is not None and new_password != confirm_password:
        raise UserServiceError("New password and confirmation do not match")

    _check_password_strength(new_password)

    user.password_hash = hash_password(new_password)
    db.session.commit()
    revoke_all_user_sessions(user.id)
    logger.info("Password changed for user %s", user.id, extra={"event_type": "password_changed"})
    return user
