"""
Auth Unit & Integration Tests

Tests cover:
  - Password hashing (bcrypt) and refresh-token hashing
  - JWT access token claims / verification / expiry
  - Auth API: register, login, refresh (rotation), logout, me, change-password
  - JWT middleware on protected prefixes and role checks
"""

from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import pytest

from app.models import db
from app.models.auth import AuthSession, User
from app.services.jwt_service import decode_access_token, generate_access_token
from app.utils.crypto import generate_refresh_token, hash_password, hash_token, verify_password
from conftest import DEFAULT_PASSWORD, auth_headers, make_user


def _register(client, email="new@geobuild.example.com", password="LongEnough1", **extra):
    body = {"email": email, "password": password, "first_name": "New", "last_name": "Person"}
    body.update(extra)
    return client.post("/api/v1/auth/register", json=body)


def _login(client, email, password=DEFAULT_PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


# ═══════════════════════════════════════════════════════════════
# BLOCK 1: Crypto (bcrypt, refresh tokens)
# ═══════════════════════════════════════════════════════════════

class TestCrypto:
    def test_hash_and_verify(self):
        hashed = hash_password("S3cret-pass")
        assert hashed != "S3cret-pass"
        assert verify_password("S3cret-pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_verify_rejects_malformed_hash(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False
        assert verify_password("anything", "") is False

    def test_refresh_tokens_are_random_and_hashed(self):
        a, b = generate_refresh_token(), generate_refresh_token()
        assert a != b
        assert len(hash_token(a)) == 64
        assert hash_token(a) == hash_token(a)


# ═══════════════════════════════════════════════════════════════
# BLOCK 2: JWT service
# ═══════════════════════════════════════════════════════════════

class TestJWTService:
    def test_access_token_claims(self, app, rm_user):
        payload = decode_access_token(generate_access_token(rm_user))
        assert payload["sub"] == rm_user.id
        assert payload["email"] == rm_user.email
        assert payload["role"] == "RM"
        assert payload["given_name"] == "Rita"
        assert payload["family_name"] == "Mwangi"
        assert payload["name"] == "Rita Mwangi"
        assert payload["iss"] == app.config["JWT_ISSUER"]
        assert payload["aud"] == app.config["JWT_AUDIENCE"]
        assert payload["type"] == "access"

    def test_wrong_audience_rejected(self, app, rm_user):
        now = datetime.now(timezone.utc)
        token = pyjwt.encode(
            {"sub": rm_user.id, "iss": app.config["JWT_ISSUER"], "aud": "SomeoneElse",
             "type": "access", "iat": now, "exp": now + timedelta(minutes=5)},
            app.config["JWT_SECRET_KEY"], algorithm="HS256",
        )
        with pytest.raises(pyjwt.InvalidAudienceError):
            decode_access_token(token)

    def test_expired_token_rejected(self, app, rm_user):
        now = datetime.now(timezone.utc)
        token = pyjwt.encode(
            {"sub": rm_user.id, "iss": app.config["JWT_ISSUER"], "aud": app.config["JWT_AUDIENCE"],
             "type": "access", "iat": now - timedelta(hours=2), "exp": now - timedelta(hours=1)},
            app.config["JWT_SECRET_KEY"], algorithm="HS256",
        )
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_access_token(token)


# ═══════════════════════════════════════════════════════════════
# BLOCK 3: Register & login
# ═══════════════════════════════════════════════════════════════

class TestRegisterLogin:
    def test_register_returns_tokens(self, client):
        res = _register(client, role="QS")
        assert res.status_code == 201
        data = res.get_json()
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["token_type"] == "Bearer"
        assert data["user"]["email"] == "new@geobuild.example.com"
        assert data["user"]["role"] == "QS"
        assert "password_hash" not in data["user"]

    def test_register_defaults_to_rm(self, client):
        res = _register(client)
        assert res.get_json()["user"]["role"] == "RM"

    def test_register_duplicate_email_conflicts(self, client):
        assert _register(client).status_code == 201
        res = _register(client, email="NEW@geobuild.example.com")
        assert res.status_code == 409

    def test_register_short_password(self, client):
        res = _register(client, password="short")
        assert res.status_code == 400

    def test_register_invalid_role(self, client):
        res = _register(client, role="Superuser")
        assert res.status_code == 400

    def test_login_success_stamps_last_login(self, client, rm_user):
        res = _login(client, "rm@geobuild.example.com")
        assert res.status_code == 200
        assert res.get_json()["user"]["id"] == rm_user.id
        assert db.session.get(User, rm_user.id).last_login_at is not None

    def test_login_is_case_insensitive_on_email(self, client, rm_user):
        assert _login(client, "RM@GeoBuild.example.com").status_code == 200

    def test_login_wrong_password(self, client, rm_user):
        res = _login(client, "rm@geobuild.example.com", "nope-nope-nope")
        assert res.status_code == 401

    def test_login_unknown_email(self, client):
        assert _login(client, "ghost@geobuild.example.com").status_code == 401

    def test_login_missing_fields(self, client):
        res = client.post("/api/v1/auth/login", json={"email": "rm@geobuild.example.com"})
        assert res.status_code == 400

    def test_login_inactive_user(self, client):
        make_user("off@geobuild.example.com", is_active=False)
        assert _login(client, "off@geobuild.example.com").status_code == 403


# ═══════════════════════════════════════════════════════════════
# BLOCK 4: Refresh, logout, me, change-password
# ═══════════════════════════════════════════════════════════════

class TestSessions:
    def test_refresh_rotates_token(self, client, rm_user):
        first = _login(client, "rm@geobuild.example.com").get_json()
        res = client.post("/api/v1/auth/refresh-token", json={"refresh_token": first["refresh_token"]})
        assert res.status_code == 200
        second = res.get_json()
        assert second["refresh_token"] != first["refresh_token"]

        # Old token is single-use
        reuse = client.post("/api/v1/auth/refresh-token", json={"refresh_token": first["refresh_token"]})
        assert reuse.status_code == 401

    def test_refresh_expired_session(self, client, rm_user):
        tokens = _login(client, "rm@geobuild.example.com").get_json()
        sess = AuthSession.query.filter_by(token_hash=hash_token(tokens["refresh_token"])).one()
        sess.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        db.session.commit()
        res = client.post("/api/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
        assert res.status_code == 401

    def test_refresh_requires_token(self, client):
        assert client.post("/api/v1/auth/refresh-token", json={}).status_code == 400

    def test_logout_revokes_refresh_token(self, client, rm_user, rm_headers):
        tokens = _login(client, "rm@geobuild.example.com").get_json()
        res = client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]},
                          headers=rm_headers)
        assert res.status_code == 200
        again = client.post("/api/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
        assert again.status_code == 401

    def test_me(self, client, rm_user, rm_headers):
        res = client.get("/api/v1/auth/me", headers=rm_headers)
        assert res.status_code == 200
        assert res.get_json()["user"]["email"] == "rm@geobuild.example.com"

    def test_change_password(self, client, rm_user, rm_headers):
        tokens = _login(client, "rm@geobuild.example.com").get_json()
        res = client.post("/api/v1/auth/change-password", headers=rm_headers, json={
            "current_password": DEFAULT_PASSWORD,
            "new_password": "BrandNew-42",
            "confirm_password": "BrandNew-42",
        })
        assert res.status_code == 200
        assert _login(client, "rm@geobuild.example.com", "BrandNew-42").status_code == 200
        # Existing refresh sessions are revoked
        old = client.post("/api/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
        assert old.status_code == 401

    def test_change_password_wrong_current(self, client, rm_user, rm_headers):
        res = client.post("/api/v1/auth/change-password", headers=rm_headers, json={
            "current_password": "not-it-at-all",
            "new_password": "BrandNew-42",
        })
        assert res.status_code == 400

    def test_change_password_mismatch(self, client, rm_user, rm_headers):
        res = client.post("/api/v1/auth/change-password", headers=rm_headers, json={
            "current_password": DEFAULT_PASSWORD,
            "new_password": "BrandNew-42",
            "confirm_password": "Different-42",
        })
        assert res.status_code == 400


# ═══════════════════════════════════════════════════════════════
# BLOCK 5: Middleware & role checks
# ═══════════════════════════════════════════════════════════════

class TestMiddleware:
    def test_protected_route_requires_token(self, client):
        res = client.get("/api/v1/checklists")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_garbage_token_rejected(self, client):
        res = client.get("/api/v1/checklists", headers={"Authorization": "Bearer not.a.jwt"})
        assert res.status_code == 401

    def test_health_is_public(self, client):
        assert client.get("/api/v1/health").status_code == 200

    def test_admin_only_delete_forbidden_for_rm(self, client, make_checklist, rm_headers):
        created = make_checklist()
        res = client.delete(f"/api/v1/checklists/{created['id']}", headers=rm_headers)
        assert res.status_code == 403
        assert res.get_json()["details"]["required_roles"] == ["Admin"]

    def test_token_for_deleted_user_still_decodes(self, client):
        # Identity comes from claims alone; handlers that need the row 404
        user = make_user("gone@geobuild.example.com")
        headers = auth_headers(user)
        db.session.delete(user)
        db.session.commit()
        res = client.get("/api/v1/auth/me", headers=headers)
        assert res.status_code == 404

    def test_security_headers_present(self, client):
        res = client.get("/api/v1/health")
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Frame-Options"] == "DENY"
        assert "X-Request-ID" in res.headers
