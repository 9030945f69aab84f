# callmap/conftest.py
import os

import pytest

os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.setdefault("STORE_BACKEND", "memory")

from fastapi.testclient import TestClient  # noqa: E402

from callmap.core.config import settings  # noqa: E402
from callmap.core.database import InMemoryStore, reset_store, set_store  # noqa: E402
from callmap.core.identity import set_identity_provider  # noqa: E402
from callmap.core.ratelimit import reset_login_limiter  # noqa: E402
from callmap.tests.mocks import FakeIdentityProvider  # noqa: E402

ADMIN_COOKIE = "session-admin"
SUPER_ADMIN_COOKIE = "session-super-admin"
USER_COOKIE = "session-user"

SESSIONS = {
    ADMIN_COOKIE: {"uid": "admin-1", "email": "admin@callmap.test", "role": "admin", "isAdmin": True},
    SUPER_ADMIN_COOKIE: {"uid": "super-1", "email": "root@callmap.test", "role": "superAdmin", "isAdmin": True},
    USER_COOKIE: {"uid": "user-1", "email": "user@callmap.test"},
}


@pytest.fixture(scope="function", autouse=True)
def store():
    """Fresh in-memory document store for every test."""
    memory = InMemoryStore()
    set_store(memory)
    yield memory
    reset_store()


@pytest.fixture(scope="function", autouse=True)
def identity():
    provider = FakeIdentityProvider(SESSIONS)
    set_identity_provider(provider)
    yield provider
    set_identity_provider(None)


@pytest.fixture(scope="function", autouse=True)
def login_limiter():
    reset_login_limiter()
    yield
    reset_login_limiter()


@pytest.fixture(scope="function", autouse=True)
def csrf_disabled(monkeypatch):
    """CSRF is exercised explicitly in test_csrf.py; route tests run without it."""
    monkeypatch.setattr(settings, "CSRF_PROTECTION_ENABLED", False)


@pytest.fixture
def app():
    from callmap.main import app as fastapi_app

    return fastapi_app


def _client(app, cookie=None):
    client = TestClient(app)
    if cookie:
        client.cookies.set(settings.SESSION_COOKIE_NAME, cookie)
    return client


@pytest.fixture
def anon_client(app):
    return _client(app)


@pytest.fixture
def user_client(app):
    return _client(app, USER_COOKIE)


@pytest.fixture
def admin_client(app):
    return _client(app, ADMIN_COOKIE)


@pytest.fixture
def super_admin_client(app):
    return _client(app, SUPER_ADMIN_COOKIE)
