"""Audit trail and security event recording."""

import logging

import pytest
from starlette.requests import Request

from callmap.core.collections import COLLECTION_AUDIT_LOGS, COLLECTION_SECURITY_EVENTS
from callmap.core.database import InMemoryStore
from callmap.core.logging import JsonFormatter, latency_bucket_ms, log_event
from callmap.features.audit.service import (
    client_ip,
    log_security_event,
    record_audit_log,
    sanitize_details,
    user_agent,
)


def make_request(headers=None, client=("203.0.113.9", 5000)):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "POST", "path": "/", "headers": raw, "client": client})


class BrokenStore(InMemoryStore):
    def add(self, collection, data):
        raise RuntimeError("write rejected")


class TestRequestMetadata:
    def test_forwarded_header_wins(self):
        request = make_request({"x-forwarded-for": "198.51.100.1, 10.0.0.1", "x-real-ip": "192.0.2.7"})
        assert client_ip(request) == "198.51.100.1"

    def test_vercel_header_first(self):
        request = make_request({"x-vercel-forwarded-for": "192.0.2.1", "x-forwarded-for": "198.51.100.1"})
        assert client_ip(request) == "192.0.2.1"

    def test_real_ip_then_peer(self):
        assert client_ip(make_request({"x-real-ip": "192.0.2.7"})) == "192.0.2.7"
        assert client_ip(make_request()) == "203.0.113.9"

    def test_unknown_without_request(self):
        assert client_ip(None) == "unknown"
        assert user_agent(None) == "unknown"


def test_sanitize_redacts_and_truncates():
    details = {"apiKey": "sk_live", "sessionToken": "abc", "note": "x" * 600, "amount": 5}
    clean = sanitize_details(details)
    assert clean["apiKey"] == "[REDACTED]"
    assert clean["sessionToken"] == "[REDACTED]"
    assert clean["note"] == "x" * 500 + "..."
    assert clean["amount"] == 5
    assert sanitize_details({}) is None


def test_security_event_document():
    store = InMemoryStore()
    request = make_request({"user-agent": "pytest"})
    doc_id = log_security_event(
        "admin_action",
        action="export",
        result="success",
        request=request,
        user_id="a1",
        details={"password": "hunter2"},
        store=store,
    )
    event = store.get(COLLECTION_SECURITY_EVENTS, doc_id)
    assert event.get("type") == "admin_action"
    assert event.get("ipAddress") == "203.0.113.9"
    assert event.get("userAgent") == "pytest"
    assert event.get("details") == {"password": "[REDACTED]"}


def test_unknown_security_event_type_rejected():
    with pytest.raises(ValueError):
        log_security_event("made_up", action="x", result="y", store=InMemoryStore())


def test_write_failures_do_not_raise():
    assert log_security_event("login_failure", action="login", result="x", store=BrokenStore()) is None
    assert record_audit_log("update_user", admin_user_id="a1", admin_email=None, store=BrokenStore()) is None


def test_audit_log_document():
    store = InMemoryStore()
    doc_id = record_audit_log(
        "remove_team_member",
        admin_user_id="a1",
        admin_email="a1@callmap.test",
        target_user_id="u1",
        store=store,
        workspace_id="t1",
    )
    log = store.get(COLLECTION_AUDIT_LOGS, doc_id)
    assert log.get("workspaceId") == "t1"
    assert log.get("details") == {}
    assert log.get("ipAddress") == "unknown"
    assert log.get("timestamp") is not None


class TestStructuredLogging:
    def test_json_formatter_includes_extra(self):
        record = logging.LogRecord("callmap", logging.INFO, __file__, 1, "query.degraded", None, None)
        record.request_id = "rid-1"
        record.collection = "processingJobs"
        payload = JsonFormatter().format(record)
        assert '"request_id": "rid-1"' in payload
        assert '"collection": "processingJobs"' in payload
        assert '"message": "query.degraded"' in payload

    def test_log_event_truncates_extra(self, caplog):
        with caplog.at_level(logging.INFO, logger="callmap"):
            log_event("info", "big.payload", extra={"blob": "y" * 600})
        record = next(r for r in caplog.records if r.getMessage() == "big.payload")
        assert record.blob.endswith("...<truncated>")

    @pytest.mark.parametrize("latency,bucket", [(None, "unknown"), (5, "<10ms"), (250, "100-500ms"), (5000, ">=1000ms")])
    def test_latency_buckets(self, latency, bucket):
        assert latency_bucket_ms(latency) == bucket
