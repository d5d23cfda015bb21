"""
Shared fixtures: an in-memory SQLite database per test and logged-in clients.

The environment is set before `app` is imported because the Flask app reads
its configuration at import time.
"""

import os
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

SHARED_KEY = 'test-shared-key'

os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['API_SHARED_KEY'] = SHARED_KEY

from app import app as flask_app  # noqa: E402
from models import db, User  # noqa: E402


@pytest.fixture
def app(monkeypatch):
    """The Flask app over a fresh schema. No app context is left pushed, so
    every test-client request runs in its own context like in production."""
    monkeypatch.delenv('OPENAI_API_KEY', raising=False)
    flask_app.config.update(TESTING=True, API_SHARED_KEY=SHARED_KEY)
    with flask_app.app_context():
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def db_session(app):
    """App context for tests that call the store directly."""
    with app.app_context():
        yield db.session
        db.session.remove()


@pytest.fixture
def make_user(db_session):
    def _make(user_id, email=None):
        user = User(id=user_id, email=email or f'{user_id}@example.com')
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def login_client(app):
    """Factory returning a test client with an open session for user_id."""
    def _login(user_id='user-a', **claims):
        client = app.test_client()
        payload = {'id': user_id, 'email': f'{user_id}@example.com'}
        payload.update(claims)
        resp = client.post('/api/login', json=payload, headers={'X-API-Key': SHARED_KEY})
        assert resp.status_code == 200, resp.get_json()
        return client
    return _login


@pytest.fixture
def client(login_client):
    return login_client('user-a')
