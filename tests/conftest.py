"""Shared test fixtures for the BackOffice Autopilot test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: a coach with settings (6000 EUR, 3-day follow-ups) and a client
- other_user: a second coach with their own client (tenant isolation)
- auth_client: test client logged in as the seeded coach
"""

import pytest
from werkzeug.security import generate_password_hash

from backoffice import create_app
from backoffice.extensions import db as _db
from backoffice.models.client import Client
from backoffice.models.user import User, UserSettings

PASSWORD = "correct-horse-battery"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def _make_user(email, full_name):
    user = User(
        email=email,
        password_hash=generate_password_hash(PASSWORD),
        full_name=full_name,
    )
    _db.session.add(user)
    _db.session.flush()
    return user


@pytest.fixture
def seed_data(app, db_session):
    """Seed a coach, their settings and one client.

    Returns a dict with the objects and their plain ids.
    """
    user = _make_user("coach@example.com", "Casey Coach")

    settings = UserSettings(
        user_id=user.id,
        default_rate_cents=6000,
        default_currency="EUR",
        follow_up_days=3,
        invoice_reminder_days=7,
    )
    _db.session.add(settings)

    client = Client(user_id=user.id, name="Ada Student", email="ada@example.com")
    _db.session.add(client)
    _db.session.commit()

    return {
        "user": user,
        "user_id": user.id,
        "email": user.email,
        "settings": settings,
        "client": client,
        "client_id": client.id,
    }


@pytest.fixture
def other_user(app, db_session):
    """A second coach. Their data must never be visible to seed_data's user."""
    user = _make_user("other@example.com", "Other Coach")
    client = Client(user_id=user.id, name="Someone Else", email="else@example.com")
    _db.session.add(client)
    _db.session.commit()

    return {"user": user, "user_id": user.id, "client": client, "client_id": client.id}


@pytest.fixture
def auth_client(client, seed_data):
    """Test client with a logged-in session for the seeded coach."""
    resp = client.post(
        "/api/auth/login",
        json={"email": seed_data["email"], "password": PASSWORD},
    )
    assert resp.status_code == 200
    return client
