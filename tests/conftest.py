"""Pytest configuration: in-memory SQLite, fresh schema per test."""
import os

os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import timedelta

import pytest

from api import create_app
from models import storage
from models.db_storage import DBStorage
from models.base_model import utcnow
from models.token_store import TokenStore
from models.user import User
from utils.security import generate_token_id, hash_password

PASSWORD = "correct-horse-battery"


@pytest.fixture
def app():
    storage.drop_all()
    storage.reload()
    app = create_app("testing")
    yield app
    storage.close()


@pytest.fixture
def file_storage(tmp_path):
    """Separate storage on a SQLite file, so several connections and threads share one database."""
    db = DBStorage(f"sqlite:///{tmp_path / 'tokens.db'}")
    db.reload()
    yield db
    db.close()


@pytest.fixture
def client(app):
    # cookies are passed explicitly so tests can replay old refresh tokens
    return app.test_client(use_cookies=False)


@pytest.fixture
def tokens(app):
    return app.extensions["session_tokens"]


@pytest.fixture
def codec(tokens):
    return tokens.codec


@pytest.fixture
def store(app):
    return TokenStore(storage.get_session())


@pytest.fixture
def make_user(app):
    def _make(email="traveller@example.com", role="customer", password=PASSWORD, **kwargs):
        user = User(email=email, password_hash=hash_password(password), role=role, **kwargs)
        storage.new(user)
        storage.save()
        return user

    return _make


@pytest.fixture
def seed_token(store):
    """Append a refresh record with explicit timestamps, bypassing the issuer."""

    def _seed(user, created_at=None, expires_at=None, used=False):
        created_at = created_at or utcnow()
        expires_at = expires_at or created_at + timedelta(days=7)
        token_id = generate_token_id()
        store.append(user, token_id, f"seeded.{token_id}", created_at=created_at, expires_at=expires_at)
        store.commit()
        if used:
            assert store.mark_used(user.id, token_id)
            store.commit()
        return token_id

    return _seed


@pytest.fixture
def bearer(tokens, store):
    def _bearer(user):
        pair = tokens.issuer.issue(store, user)
        return {"Authorization": f"Bearer {pair.access_token}"}

    return _bearer


def refresh_cookie_header(response):
    for header in response.headers.getlist("Set-Cookie"):
        if header.startswith("refreshToken="):
            return header
    return None


def refresh_cookie(response):
    header = refresh_cookie_header(response)
    if header is None:
        return None
    return header.split(";", 1)[0].split("=", 1)[1]
