"""
Session and role gates.

Every protected route answers 401 without a valid session and 403 when the
role is too low, before any business query runs.
"""

import pytest

from callmap.core.collections import COLLECTION_SECURITY_EVENTS
from callmap.core.database import set_store
from callmap.core.permissions import Access, Role, SessionClaims, can_access_user, has_access
from callmap.tests.mocks import UnavailableStore

RANGE = {"start": "2024-01-01T00:00:00Z", "end": "2024-01-31T23:59:59Z"}

ADMIN_ROUTES = [
    ("post", "/api/analytics/call-logs", RANGE),
    ("post", "/api/analytics/file-conversion-rate", RANGE),
    ("post", "/api/analytics/daily-active-users", RANGE),
    ("post", "/api/usage/daily-tokens", RANGE),
    ("post", "/api/usage/teams-over-quota", None),
    ("post", "/api/billing/metrics", RANGE),
    ("post", "/api/ops/ai-job-stats", RANGE),
    ("post", "/api/teams", {}),
    ("post", "/api/users", {}),
    ("get", "/api/dashboards", None),
    ("get", "/api/analytics/predictions/revenue", None),
    ("get", "/api/admin/wallet/u1/transactions", None),
]


def _call(client, method, path, body):
    if method == "get":
        return client.get(path)
    return client.post(path, json=body)


@pytest.mark.parametrize("method,path,body", ADMIN_ROUTES)
def test_missing_session_is_401(anon_client, method, path, body):
    resp = _call(anon_client, method, path, body)
    assert resp.status_code == 401
    assert resp.json()["error"] == "Unauthorized"


@pytest.mark.parametrize("method,path,body", ADMIN_ROUTES)
def test_non_admin_session_is_403(user_client, method, path, body):
    resp = _call(user_client, method, path, body)
    assert resp.status_code == 403
    assert resp.json()["error"] == "Forbidden. Admin access required."


def test_invalid_session_cookie_is_401(app):
    from fastapi.testclient import TestClient

    client = TestClient(app)
    client.cookies.set("callmap_session", "forged")
    resp = client.post("/api/analytics/call-logs", json=RANGE)
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid session"


def test_unauthenticated_request_never_queries_the_store(anon_client):
    set_store(UnavailableStore())
    resp = anon_client.post("/api/analytics/security", json=RANGE)
    assert resp.status_code == 401


def test_missing_session_beats_invalid_body(anon_client):
    resp = anon_client.post("/api/analytics/call-logs", json={"start": "garbage"})
    assert resp.status_code == 401


def test_super_admin_routes_reject_admin(admin_client):
    resp = admin_client.get("/api/admin/users")
    assert resp.status_code == 403
    assert resp.json()["error"] == "Forbidden. SuperAdmin access required."


def test_denial_is_recorded_as_security_event(user_client, store):
    user_client.post("/api/billing/metrics", json=RANGE)
    events = store.stream(COLLECTION_SECURITY_EVENTS)
    assert len(events) == 1
    assert events[0].get("type") == "permission_denied"
    assert events[0].get("userId") == "user-1"
    assert events[0].get("result") == "denied"


class TestHasAccess:
    def test_super_admin_satisfies_admin(self):
        claims = SessionClaims(uid="s", role=Role.SUPER_ADMIN, is_admin=True)
        assert has_access(claims, Access.ADMIN)
        assert has_access(claims, Access.SUPER_ADMIN)

    def test_admin_is_not_super_admin(self):
        claims = SessionClaims(uid="a", role=Role.ADMIN, is_admin=True)
        assert has_access(claims, Access.ADMIN)
        assert not has_access(claims, Access.SUPER_ADMIN)

    def test_explicit_is_admin_false_revokes(self):
        claims = SessionClaims(uid="a", role=Role.ADMIN, is_admin=False)
        assert not has_access(claims, Access.ADMIN)

    def test_missing_role_only_authenticated(self):
        claims = SessionClaims.from_token({"uid": "u", "role": "bogus"})
        assert claims.role is None
        assert has_access(claims, Access.AUTHENTICATED)
        assert not has_access(claims, Access.ADMIN)


def test_can_access_user():
    admin = SessionClaims(uid="a", role=Role.ADMIN, is_admin=True)
    user = SessionClaims(uid="u1", role=Role.USER)
    assert can_access_user(admin, "u1")
    assert can_access_user(user, "u1")
    assert not can_access_user(user, "u2")
