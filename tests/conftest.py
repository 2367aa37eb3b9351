"""
Shared pytest fixtures for the GeoBuild back-office API test suite.

Provides:
    - app: Flask application (session-scoped, photos in a temp folder)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate, fresh hub (autouse)
    - client: Flask test client (function-scoped)
    - rm_user / qs_user / admin_user and their *_headers bearer headers
    - make_checklist: factory creating a checklist through the API
"""

import functools

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import ROLE_ADMIN, ROLE_QS, ROLE_RM, User
from app.services.jwt_service import generate_access_token
from app.services.notification_hub import init_notification_hub
from app.utils.crypto import hash_password

DEFAULT_PASSWORD = "Passw0rd!123"


@functools.lru_cache(maxsize=1)
def _default_password_hash():
    # bcrypt is slow on purpose; hash the shared test password once
    return hash_password(DEFAULT_PASSWORD)


def make_user(email, role=ROLE_RM, first_name="Test", last_name="User", is_active=True):
    """Insert a user directly (bypasses the register endpoint)."""
    user = User(
        email=email,
        password_hash=_default_password_hash(),
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=is_active,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def auth_headers(user):
    """Bearer header for ``user`` with a freshly signed access token."""
    return {"Authorization": f"Bearer {generate_access_token(user)}"}


def checklist_payload(rm_id, **overrides):
    payload = {
        "customer_number": "CN-1001",
        "customer_name": "Jane Wanjiku",
        "customer_email": "jane@example.com",
        "project_name": "Construction Loan",
        "ibps_no": "IBPS-77",
        "assigned_to_rm": rm_id,
    }
    payload.update(overrides)
    return payload


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    photos = tmp_path_factory.mktemp("rm-checklist-photos")
    application = create_app("testing", overrides={"UPLOAD_FOLDER": str(photos)})
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        init_notification_hub(app)
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def hub(app):
    return app.extensions["notification_hub"]


# ── Users ────────────────────────────────────────────────────────────────


@pytest.fixture()
def rm_user():
    return make_user("rm@geobuild.example.com", ROLE_RM, "Rita", "Mwangi")


@pytest.fixture()
def qs_user():
    return make_user("qs@geobuild.example.com", ROLE_QS, "Quentin", "Otieno")


@pytest.fixture()
def admin_user():
    return make_user("admin@geobuild.example.com", ROLE_ADMIN, "Ada", "Kamau")


@pytest.fixture()
def rm_headers(rm_user):
    return auth_headers(rm_user)


@pytest.fixture()
def qs_headers(qs_user):
    return auth_headers(qs_user)


@pytest.fixture()
def admin_headers(admin_user):
    return auth_headers(admin_user)


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_checklist(client, rm_user, rm_headers):
    """Factory: create a checklist through the API and return its JSON."""
    def _make(**overrides):
        res = client.post(
            "/api/v1/checklists",
            json=checklist_payload(rm_user.id, **overrides),
            headers=rm_headers,
        )
        assert res.status_code == 201, res.get_json()
        return res.get_json()
    return _make


@pytest.fixture()
def submitted_checklist(client, make_checklist, rm_headers, rm_user):
    """A checklist already sent to QS review (status pending_qs_review)."""
    created = make_checklist()
    res = client.put(
        f"/api/v1/checklists/{created['id']}",
        json=checklist_payload(rm_user.id, status="submitted"),
        headers=rm_headers,
    )
    assert res.status_code == 200
    assert res.get_json()["status"] == "pending_qs_review"
    return res.get_json()
