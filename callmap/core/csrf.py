"""
CSRF tokens (synchronizer pattern).

A random secret lives in an httpOnly cookie issued at login. Tokens are
``<hex salt>-<urlsafe_b64(hmac_sha256(secret, salt))>`` and travel back in the
``X-CSRF-Token`` header on state-changing requests.
"""

import base64
import hashlib
import hmac
import secrets
from typing import Any, Callable, List

from fastapi import Depends, Request

from callmap.core.config import settings
from callmap.core.errors import CsrfError

STATE_CHANGING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def generate_secret() -> str:
    return secrets.token_urlsafe(18)


def _digest(secret: str, salt: str) -> str:
    mac = hmac.new(secret.encode("utf-8"), salt.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(mac).decode("ascii").rstrip("=")


def generate_token(secret: str) -> str:
    salt = secrets.token_hex(4)
    return f"{salt}-{_digest(secret, salt)}"


def verify_token(secret: str, token: str) -> bool:
    if not secret or not token or "-" not in token:
        return False
    salt, _, signature = token.partition("-")
    if not salt or not signature:
        return False
    return hmac.compare_digest(signature, _digest(secret, salt))


def requires_csrf_protection(method: str, path: str) -> bool:
    if method.upper() not in STATE_CHANGING_METHODS:
        return False
    return not path.startswith("/api/auth/")


def csrf_protect(request: Request) -> None:
    """Dependency for mutating routes; no-op when protection is disabled."""
    if not settings.CSRF_PROTECTION_ENABLED:
        return
    if not requires_csrf_protection(request.method, request.url.path):
        return
    secret = request.cookies.get(settings.CSRF_SECRET_COOKIE)
    if not secret:
        raise CsrfError("CSRF secret not found")
    token = request.headers.get(settings.CSRF_TOKEN_HEADER)
    if not token:
        raise CsrfError("CSRF token not provided")
    if not verify_token(secret, token):
        raise CsrfError("Invalid CSRF token")


def csrf_guard(access_dependency: Callable) -> List[Any]:
    """Route ``dependencies`` for a mutation: session/role gate first, then the CSRF token."""
    return [Depends(access_dependency), Depends(csrf_protect)]
