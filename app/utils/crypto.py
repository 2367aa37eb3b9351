"""
Crypto utilities — bcrypt password hashing and opaque refresh tokens.

Refresh tokens are random 128-bit values (base64). Only their SHA-256
digest is persisted, in ``auth_sessions.token_hash``.
"""

import base64
import hashlib
import secrets

import bcrypt


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (12 rounds)."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash or not plain_password:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # Malformed stored hash
        return False


def generate_refresh_token() -> str:
    """Return a fresh opaque refresh token (16 random bytes, base64)."""
    return base64.b64encode(secrets.token_bytes(16)).decode("ascii")


def hash_token(token: str) -> str:
    """SHA-256 digest of a token; raw refresh tokens are never stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
