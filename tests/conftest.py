"""
Shared pytest fixtures for the Activity Tracker test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / alice / bob: users (admin is always id=1)
    - admin_headers / alice_headers / bob_headers: ready-made bearer headers
    - make_activity: factory that creates an activity through the service layer
"""

from datetime import date

import pytest

from tracker import create_app
from tracker.models import db as _db
from tracker.models.user import Role, User
from tracker.services.jwt_service import generate_access_token
from tracker.utils.crypto import hash_password


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
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
def session(app, _setup_db, tmp_path):
    """Per-test: open app context, rollback after test, recreate tables."""
    app.config["UPLOAD_FOLDER"] = str(tmp_path / "uploads")
    default_upload_limit = app.config["MAX_UPLOAD_BYTES"]
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
    app.config["MAX_UPLOAD_BYTES"] = default_upload_limit


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users ────────────────────────────────────────────────────────────────


def _make_user(username, role, password="secret123", notify_email=None):
    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        notify_email=notify_email,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {generate_access_token(user)}"}


@pytest.fixture()
def admin():
    """Main admin (id=1). Created first so it always gets the first id."""
    user = _make_user("admin", Role.ADMIN.value, password="admin123")
    assert user.id == 1
    return user


@pytest.fixture()
def alice(admin):
    return _make_user("alice", Role.CLIENT.value)


@pytest.fixture()
def bob(admin):
    return _make_user("bob", Role.CLIENT.value)


@pytest.fixture()
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture()
def alice_headers(alice):
    return auth_headers(alice)


@pytest.fixture()
def bob_headers(bob):
    return auth_headers(bob)


# ── Activities ───────────────────────────────────────────────────────────


def activity_payload(**overrides):
    """Minimal valid create/update body."""
    body = {
        "activity_name": "Patch server",
        "gxp_scope": "No",
        "priority": "High",
        "risk_level": "Medium",
        "activity_date": "2025-02-10",
        "status": "Planned",
    }
    body.update(overrides)
    return body


@pytest.fixture()
def make_activity():
    """Factory: make_activity(user, **fields) → committed Activity."""
    from tracker.services.activity_service import create_activity

    def _make(user, **overrides):
        return create_activity(activity_payload(**overrides), user)

    return _make


@pytest.fixture()
def today():
    return date.today()
