from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from callmap.core.middleware.request_id import RequestIdMiddleware
from callmap.core.middleware.security_headers import SecurityHeadersMiddleware


def _make_app(production=False):
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, production=production)

    @app.get("/")
    async def root(request: Request):
        return {"request_id": getattr(request.state, "request_id", None)}

    return app


def test_generates_request_id_when_missing():
    client = TestClient(_make_app())

    resp = client.get("/")
    assert resp.status_code == 200
    rid_header = resp.headers.get("x-request-id")
    body_rid = resp.json().get("request_id")

    assert rid_header
    assert body_rid
    assert rid_header == body_rid


def test_echoes_provided_request_id():
    client = TestClient(_make_app())

    provided = "test-rid-123"
    resp = client.get("/", headers={"X-Request-Id": provided})

    assert resp.status_code == 200
    assert resp.headers.get("x-request-id") == provided
    assert resp.json().get("request_id") == provided


def test_security_headers_present():
    client = TestClient(_make_app())
    resp = client.get("/")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert "frame-ancestors 'none'" in resp.headers["Content-Security-Policy"]
    assert "Strict-Transport-Security" not in resp.headers


def test_hsts_only_in_production():
    client = TestClient(_make_app(production=True))
    resp = client.get("/")
    assert resp.headers["Strict-Transport-Security"].startswith("max-age=31536000")


def test_error_responses_carry_request_id(anon_client):
    resp = anon_client.post("/api/billing/metrics", json={}, headers={"X-Request-Id": "rid-401"})
    assert resp.status_code == 401
    assert resp.headers["x-request-id"] == "rid-401"
    assert resp.json()["request_id"] == "rid-401"
