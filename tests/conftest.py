import os
import tempfile
from decimal import Decimal
from unittest.mock import patch

import pytest

# Set test environment variables
os.environ["TESTING"] = "true"
os.environ["SM_LOG_JSON"] = "false"


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Create and configure a new app instance for each test."""
    for name in ("SENDGRID_API_KEY", "REDIS_URL", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET",
                 "NOWPAYMENTS_API_KEY", "ADMIN_EMAIL"):
        monkeypatch.delenv(name, raising=False)

    db_fd, db_path = tempfile.mkstemp()
    with patch.dict(os.environ, {
        "DATABASE_URL": f"sqlite:///{db_path}",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "GENERATED_DIR": str(tmp_path / "generated"),
        "BASE_URL": "https://sm.test",
        "RATELIMIT_STORAGE_URI": "memory://",
        "SM_JWT_COOKIE_SECURE": "false",
        "SM_JWT_COOKIE_CSRF": "false",
    }):
        from secret_message.factory import create_app
        from secret_message.infra.db import db
        app = create_app()
        with app.app_context():
            db.create_all()
            yield app
            db.session.remove()
            db.drop_all()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def db(app):
    from secret_message.infra.db import db as _db
    return _db


@pytest.fixture
def make_user(db):
    from secret_message.models.user import User

    def _make(email="owner@example.com", password="correct-horse", **kwargs):
        user = User(email=email, **kwargs)
        if password:
            user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_message(db):
    from secret_message.models.message import Message

    def _make(owner, **kwargs):
        fields = {
            "title": "A secret",
            "recipient_identifier": "someone",
            "message_body": "meet me at noon",
            "price": Decimal("5.00"),
        }
        fields.update(kwargs)
        message = Message(user_id=owner.id, **fields)
        db.session.add(message)
        db.session.commit()
        return message

    return _make


@pytest.fixture
def login(client):
    def _login(email="owner@example.com", password="correct-horse"):
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp

    return _login


@pytest.fixture
def owner(make_user):
    return make_user()


@pytest.fixture
def owner_client(client, owner, login):
    login()
    return client
