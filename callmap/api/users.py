"""
callmap/api/users.py

User administration: listing, profile detail, feature flag overrides and
field updates.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request

from callmap.core.csrf import csrf_guard
from callmap.core.database import get_store
from callmap.core.errors import PermissionError
from callmap.core.permissions import (
    DENIAL_MESSAGES,
    Access,
    SessionClaims,
    can_access_user,
    require_admin,
    require_authenticated,
)
from callmap.core.responses import paginated_response
from callmap.features.audit.service import log_permission_denied, record_audit_log
from callmap.features.users import service
from callmap.models.user import UserUpdate, UsersFilter

router = APIRouter()


@router.post("", response_model=Dict[str, Any])
def list_users(body: UsersFilter, claims: SessionClaims = Depends(require_admin)):
    rows = service.list_users(get_store(), body)
    return paginated_response(rows, body.page, body.page_size)


@router.get("/{user_id}", response_model=Dict[str, Any])
def user_detail(user_id: str, request: Request, claims: SessionClaims = Depends(require_authenticated)):
    """Admins read any profile; other sessions only their own."""
    if not can_access_user(claims, user_id):
        log_permission_denied(request, claims.uid, action=f"GET {request.url.path}", resource="user")
        raise PermissionError(DENIAL_MESSAGES[Access.ADMIN])
    return {"data": service.get_user(get_store(), user_id)}


@router.post("/{user_id}/feature-flags", response_model=List[Dict[str, Any]])
def feature_flags(user_id: str, claims: SessionClaims = Depends(require_admin)):
    return service.feature_flag_overrides(get_store(), user_id)


@router.post("/{user_id}/update", response_model=Dict[str, Any], dependencies=csrf_guard(require_admin))
def update_user(
    user_id: str,
    body: UserUpdate,
    request: Request,
    claims: SessionClaims = Depends(require_admin),
):
    """Patch only the provided fields; unknown fields are a 400."""
    store = get_store()
    changes = service.update_user(store, user_id, body, admin_uid=claims.uid)
    record_audit_log(
        "update_user",
        admin_user_id=claims.uid,
        admin_email=claims.email,
        target_user_id=user_id,
        details={"fields": sorted(changes)},
        request=request,
        store=store,
    )
    return {"success": True}
