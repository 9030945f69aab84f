"""
Audit trail and security event recording.

Both writes are best effort: a failed write is logged and never fails the
request that triggered it.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from google.api_core.exceptions import GoogleAPICallError
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from callmap.core.collections import COLLECTION_AUDIT_LOGS, COLLECTION_SECURITY_EVENTS
from callmap.core.database import DocumentStore, get_store
from callmap.core.errors import AppError
from callmap.core.logging import get_request_id, log_event

logger = logging.getLogger("callmap")

SENSITIVE_KEYS = ("password", "token", "secret", "key", "apikey", "api_key", "authtoken")
MAX_DETAIL_LENGTH = 500

SECURITY_EVENT_TYPES = {
    "login_success",
    "login_failure",
    "permission_denied",
    "role_change",
    "wallet_adjustment",
    "suspicious_activity",
    "rate_limit_exceeded",
    "export_request",
    "admin_action",
    "session_invalid",
}


def client_ip(request: Optional[Request]) -> str:
    if request is None:
        return "unknown"
    for header in ("x-vercel-forwarded-for", "x-forwarded-for"):
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def user_agent(request: Optional[Request]) -> str:
    if request is None:
        return "unknown"
    return request.headers.get("user-agent") or "unknown"


def sanitize_details(details: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not details:
        return None
    sanitized: Dict[str, Any] = {}
    for key, value in details.items():
        lowered = key.lower()
        if any(marker in lowered for marker in SENSITIVE_KEYS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, str) and len(value) > MAX_DETAIL_LENGTH:
            sanitized[key] = value[:MAX_DETAIL_LENGTH] + "..."
        else:
            sanitized[key] = value
    return sanitized


def _resolve_store(store: Optional[DocumentStore]) -> DocumentStore:
    return store if store is not None else get_store()


def log_security_event(
    event_type: str,
    *,
    action: str,
    result: str,
    request: Optional[Request] = None,
    user_id: Optional[str] = None,
    user_email: Optional[str] = None,
    resource: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    store: Optional[DocumentStore] = None,
) -> Optional[str]:
    """Append to ``security_events``; returns the new document id or None when the write failed."""
    if event_type not in SECURITY_EVENT_TYPES:
        raise ValueError(f"Unknown security event type: {event_type}")

    record = {
        "type": event_type,
        "userId": user_id,
        "userEmail": user_email,
        "action": action,
        "resource": resource,
        "result": result,
        "details": sanitize_details(details),
        "ipAddress": client_ip(request),
        "userAgent": user_agent(request),
        "requestId": get_request_id(),
        "timestamp": datetime.now(timezone.utc),
    }
    try:
        doc_id = _resolve_store(store).add(COLLECTION_SECURITY_EVENTS, record)
    except (AppError, GoogleAPICallError, RuntimeError, OSError) as exc:
        log_event("error", "security_event.write_failed", user_id=user_id, event_type=event_type, extra={"reason": str(exc)})
        return None
    log_event("info", "security_event", user_id=user_id, event_type=event_type, extra={"action": action, "outcome": result})
    return doc_id


def log_permission_denied(request: Optional[Request], user_id: Optional[str], *, action: str, resource: str) -> None:
    log_security_event(
        "permission_denied",
        action=action,
        result="denied",
        request=request,
        user_id=user_id,
        resource=resource,
    )


def record_audit_log(
    action: str,
    *,
    admin_user_id: str,
    admin_email: Optional[str],
    target_user_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
    store: Optional[DocumentStore] = None,
    workspace_id: Optional[str] = None,
) -> Optional[str]:
    """Append an ``auditLogs`` entry for an admin action."""
    record = {
        "action": action,
        "adminUserId": admin_user_id,
        "adminEmail": admin_email,
        "targetUserId": target_user_id,
        "details": details or {},
        "ipAddress": client_ip(request),
        "userAgent": user_agent(request) if request is not None else None,
        "timestamp": SERVER_TIMESTAMP,
    }
    if workspace_id:
        record["workspaceId"] = workspace_id
    try:
        return _resolve_store(store).add(COLLECTION_AUDIT_LOGS, record)
    except (AppError, GoogleAPICallError, RuntimeError, OSError) as exc:
        logger.error(f"Audit log write failed for {action}: {exc}")
        return None
