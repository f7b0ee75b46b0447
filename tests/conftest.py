from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from habitlog import db, repositories
from habitlog.db_init import init_db
from habitlog.models import Identity
from habitlog.realtime import reset_feed
from habitlog.services import firebase
from habitlog.settings import reset_settings

BACKEND_TOKEN = "test-backend-token"


def _configure_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'habitlog.db'}")
    monkeypatch.setenv("BACKEND_SESSION_SECRET", BACKEND_TOKEN)
    monkeypatch.delenv("ALLOWED_EMAILS", raising=False)
    monkeypatch.delenv("FIREBASE_CREDENTIALS", raising=False)
    monkeypatch.setattr(firebase, "_app", None)
    monkeypatch.setattr(db, "_engine", None)
    monkeypatch.setattr(db, "_session_factory", None)
    reset_settings()
    reset_feed()


@pytest.fixture
async def database(tmp_path, monkeypatch):
    _configure_env(monkeypatch, tmp_path)
    await init_db()
    yield
    await db.dispose_engine()
    reset_settings()


@pytest.fixture
def client(tmp_path, monkeypatch):
    _configure_env(monkeypatch, tmp_path)
    from habitlog.main import create_app

    with TestClient(create_app()) as test_client:
        yield test_client
    reset_settings()


def headers_for(user_id: str, email: str | None = None) -> dict:
    return {
        "X-User-Id": user_id,
        "X-User-Email": email or f"{user_id}@example.com",
        "X-Backend-Token": BACKEND_TOKEN,
    }


@pytest.fixture
def alice():
    return Identity(user_id="alice", email="alice@example.com")


@pytest.fixture
def bob():
    return Identity(user_id="bob", email="bob@example.com")


@pytest.fixture
def carol():
    return Identity(user_id="carol", email="carol@example.com")


class FlakyRemote:
    """Repository stand-in whose named functions fail with the given exception."""

    def __init__(self, **failures):
        self._failures = failures

    def __getattr__(self, name):
        if name in self._failures:
            error = self._failures[name]

            async def _fail(*args, **kwargs):
                raise error

            return _fail
        return getattr(repositories, name)
