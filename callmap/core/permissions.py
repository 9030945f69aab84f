"""
Role-based access control.

Sessions are Firebase session cookies carrying ``isAdmin`` and ``role``
custom claims. ``PERMISSIONS`` is the single table deciding which roles
satisfy each access level; routes depend on ``require(Access.X)``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional

from fastapi import Request

from callmap.core.config import settings
from callmap.core.errors import AuthenticationError, PermissionError
from callmap.core.identity import IdentityError, get_identity_provider


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "superAdmin"

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        try:
            return cls(value)
        except ValueError:
            return None


class Access(str, Enum):
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


PERMISSIONS: Dict[Access, FrozenSet[Role]] = {
    Access.AUTHENTICATED: frozenset(Role),
    Access.ADMIN: frozenset({Role.ADMIN, Role.SUPER_ADMIN}),
    Access.SUPER_ADMIN: frozenset({Role.SUPER_ADMIN}),
}

DENIAL_MESSAGES = {
    Access.ADMIN: "Forbidden. Admin access required.",
    Access.SUPER_ADMIN: "Forbidden. SuperAdmin access required.",
}


@dataclass(frozen=True)
class SessionClaims:
    uid: str
    email: Optional[str] = None
    role: Optional[Role] = None
    is_admin: Optional[bool] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_token(cls, decoded: Dict[str, Any]) -> "SessionClaims":
        return cls(
            uid=decoded.get("uid") or decoded.get("sub") or "",
            email=decoded.get("email"),
            role=Role.parse(decoded.get("role")),
            is_admin=decoded.get("isAdmin"),
            raw=dict(decoded),
        )


def has_access(claims: SessionClaims, access: Access) -> bool:
    if access == Access.AUTHENTICATED:
        return True
    if claims.role not in PERMISSIONS[access]:
        return False
    # An explicit isAdmin=false claim revokes admin access regardless of role.
    return claims.is_admin is not False


def resolve_session(request: Request) -> SessionClaims:
    """Verify the session cookie; 401 when absent or invalid."""
    cached = getattr(request.state, "session_claims", None)
    if cached is not None:
        return cached
    cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not cookie:
        raise AuthenticationError("Unauthorized")
    try:
        decoded = get_identity_provider().verify_session_cookie(cookie)
    except IdentityError:
        raise AuthenticationError("Invalid session")
    claims = SessionClaims.from_token(decoded)
    request.state.session_claims = claims
    return claims


def require(access: Access) -> Callable[[Request], SessionClaims]:
    """
    FastAPI dependency factory.

    Usage:
        @router.get("/api/admin/users")
        def list_users(claims: SessionClaims = Depends(require(Access.SUPER_ADMIN))):
            ...
    """

    def dependency(request: Request) -> SessionClaims:
        claims = resolve_session(request)
        if not has_access(claims, access):
            # Imported lazily: the audit feature depends on this module.
            from callmap.features.audit.service import log_permission_denied

            log_permission_denied(request, claims.uid, action=f"{request.method} {request.url.path}", resource=access.value)
            raise PermissionError(DENIAL_MESSAGES.get(access, "Forbidden"))
        return claims

    return dependency


require_authenticated = require(Access.AUTHENTICATED)
require_admin = require(Access.ADMIN)
require_super_admin = require(Access.SUPER_ADMIN)


def can_access_user(claims: SessionClaims, target_uid: str) -> bool:
    """Admins may act on anyone; other sessions only on themselves."""
    return has_access(claims, Access.ADMIN) or claims.uid == target_uid
