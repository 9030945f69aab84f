"""
callmap/api/auth.py

Session lifecycle: ID token -> session cookie exchange, session introspection,
logout and CSRF token issuance.

Cookies:
- ``callmap_session``: Firebase session cookie (httpOnly, SameSite=lax)
- ``csrf_secret``: per-session CSRF secret, issued at login
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from callmap.core.config import settings
from callmap.core.csrf import generate_secret, generate_token
from callmap.core.errors import AuthenticationError, PermissionError, RateLimitError, ValidationError
from callmap.core.identity import IdentityError, get_identity_provider
from callmap.core.logging import log_event
from callmap.core.permissions import resolve_session
from callmap.core.ratelimit import get_login_limiter
from callmap.core.responses import server_error
from callmap.features.audit.service import client_ip, log_security_event
from callmap.models.auth import IdTokenRequest

router = APIRouter()


def _set_cookie(response: Response, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def _require_id_token(body: Optional[IdTokenRequest]) -> str:
    if body is None or not body.idToken:
        raise ValidationError("ID token is required")
    return body.idToken


@router.post("/login", response_model=Dict[str, Any])
def login(request: Request, response: Response, body: Optional[IdTokenRequest] = None):
    """
    Exchange a Firebase ID token for an 8-hour admin session.

    Rate limited per client IP. Only tokens carrying the ``isAdmin`` claim
    get a session; every outcome is recorded in ``security_events``.
    """
    ip = client_ip(request)
    if not get_login_limiter().allow(f"login:{ip}"):
        log_security_event("rate_limit_exceeded", action="login", result="blocked", request=request)
        raise RateLimitError("Too many login attempts. Please try again later.")

    id_token = _require_id_token(body)
    provider = get_identity_provider()
    try:
        decoded = provider.verify_id_token(id_token)
    except IdentityError as exc:
        log_security_event("login_failure", action="login", result="invalid_token", request=request)
        raise AuthenticationError("Invalid ID token", details=str(exc))

    uid = decoded.get("uid") or decoded.get("sub")
    if not decoded.get("isAdmin"):
        log_security_event(
            "login_failure",
            action="login",
            result="not_admin",
            request=request,
            user_id=uid,
            user_email=decoded.get("email"),
        )
        raise PermissionError("Access denied. Admin privileges required.")

    try:
        session_cookie = provider.create_session_cookie(id_token, settings.LOGIN_SESSION_MAX_AGE)
    except IdentityError as exc:
        raise AuthenticationError("Invalid ID token", details=str(exc))

    _set_cookie(response, settings.SESSION_COOKIE_NAME, session_cookie, settings.LOGIN_SESSION_MAX_AGE)
    _set_cookie(response, settings.CSRF_SECRET_COOKIE, generate_secret(), settings.LOGIN_SESSION_MAX_AGE)
    log_security_event(
        "login_success",
        action="login",
        result="success",
        request=request,
        user_id=uid,
        user_email=decoded.get("email"),
    )
    return {
        "success": True,
        "user": {"uid": uid, "email": decoded.get("email"), "role": decoded.get("role")},
    }


@router.post("/logout", response_model=Dict[str, Any])
def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    response.delete_cookie(settings.CSRF_SECRET_COOKIE, path="/")
    return {"success": True}


@router.post("/session", response_model=Dict[str, Any])
def create_session(response: Response, body: Optional[IdTokenRequest] = None):
    id_token = _require_id_token(body)
    try:
        session_cookie = get_identity_provider().create_session_cookie(id_token, settings.SESSION_COOKIE_MAX_AGE)
    except IdentityError as exc:
        raise AuthenticationError("Invalid ID token", details=str(exc))
    _set_cookie(response, settings.SESSION_COOKIE_NAME, session_cookie, settings.SESSION_COOKIE_MAX_AGE)
    return {"success": True}


@router.get("/session")
def get_session(request: Request):
    """Session introspection; 401 ``{authenticated: false}`` rather than the error envelope."""
    cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not cookie:
        return JSONResponse({"authenticated": False}, status_code=401)
    try:
        decoded = get_identity_provider().verify_session_cookie(cookie)
    except IdentityError as exc:
        log_event("info", "session.invalid", event_type="session_invalid", extra={"reason": str(exc)})
        return JSONResponse({"authenticated": False, "error": "Invalid session"}, status_code=401)
    return {
        "authenticated": True,
        "uid": decoded.get("uid"),
        "email": decoded.get("email"),
        "isAdmin": decoded.get("isAdmin"),
        "role": decoded.get("role"),
    }


@router.delete("/session", response_model=Dict[str, Any])
def delete_session(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/csrf-token", response_model=Dict[str, Any])
def csrf_token(request: Request):
    resolve_session(request)
    secret = request.cookies.get(settings.CSRF_SECRET_COOKIE)
    if not secret:
        raise server_error("CSRF secret not found")
    return {"csrfToken": generate_token(secret)}
