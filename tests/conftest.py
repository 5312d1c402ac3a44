"""
Shared pytest fixtures for the Team Resource Planner test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin_user / auth_headers: "admin" login and its Bearer header
    - member_factory: creates TeamMember rows
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.team import TeamMember
from app.services import auth_service


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
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Auth fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def admin_user():
    return auth_service.create_user("admin", "adminpass", force_password_change=False)


@pytest.fixture()
def auth_headers(client, admin_user):
    """Authorization header for the admin user, obtained through /auth/login."""
    res = client.post("/api/v1/auth/login", json={"username": "admin", "password": "adminpass"})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.get_json()['token']}"}


@pytest.fixture()
def login_as(client):
    """Create a user and return its Bearer header."""

    def _login(username, password="password123"):
        auth_service.create_user(username, password, force_password_change=False)
        res = client.post("/api/v1/auth/login", json={"username": username, "password": password})
        assert res.status_code == 200, res.get_json()
        return {"Authorization": f"Bearer {res.get_json()['token']}"}

    return _login


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def member_factory():
    """Create a TeamMember; keyword arguments override the defaults."""
    counter = {"n": 0}

    def _make(name=None, **kw):
        counter["n"] += 1
        member = TeamMember(
            name=name or f"Member {counter['n']}",
            email=kw.pop("email", f"member{counter['n']}@example.com"),
            role=kw.pop("role", "Engineer"),
            team=kw.pop("team", "Ecosystem Engineering"),
            weekly_hours=kw.pop("weekly_hours", 40),
            **kw,
        )
        _db.session.add(member)
        _db.session.commit()
        return member

    return _make
