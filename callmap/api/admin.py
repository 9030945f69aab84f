"""
callmap/api/admin.py

Super-admin identity management and wallet operations.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Request

from callmap.core.csrf import csrf_guard
from callmap.core.database import get_store
from callmap.core.dates import isoformat_z, to_datetime
from callmap.core.errors import ValidationError
from callmap.core.identity import get_identity_provider
from callmap.core.logging import log_event
from callmap.core.permissions import Role, SessionClaims, require_admin, require_super_admin
from callmap.core.responses import paginated_response
from callmap.features.audit.service import log_security_event, record_audit_log
from callmap.features.wallet import service as wallet
from callmap.models.auth import SetRoleRequest, WalletAdjustRequest

router = APIRouter()

ASSIGNABLE_ROLES = (Role.ADMIN.value, Role.SUPER_ADMIN.value)


def _identity_user(record: Dict[str, Any]) -> Dict[str, Any]:
    claims = record.get("customClaims") or {}
    return {
        "uid": record["uid"],
        "email": record.get("email"),
        "isAdmin": claims.get("isAdmin") is True,
        "role": claims.get("role"),
        "mfaEnabled": bool(record.get("mfaEnabled")),
        "lastLogin": isoformat_z(to_datetime(record.get("lastLogin"))),
        "createdAt": isoformat_z(to_datetime(record.get("createdAt"))),
    }


@router.get("/users", response_model=Dict[str, Any])
def list_identity_users(claims: SessionClaims = Depends(require_super_admin)):
    users = get_identity_provider().list_users()
    return {"users": [_identity_user(record) for record in users]}


@router.post("/set-role", response_model=Dict[str, Any], dependencies=csrf_guard(require_super_admin))
def set_role(body: SetRoleRequest, request: Request, claims: SessionClaims = Depends(require_super_admin)):
    if not body.uid or not body.role:
        raise ValidationError("UID and role are required")
    if body.role not in ASSIGNABLE_ROLES:
        raise ValidationError('Invalid role. Must be "admin" or "superAdmin"')

    get_identity_provider().set_custom_user_claims(body.uid, {"isAdmin": True, "role": body.role})
    log_event("info", "admin.role_set", user_id=claims.uid, event_type="role_change", extra={"target_uid": body.uid, "role": body.role})

    store = get_store()
    log_security_event(
        "role_change",
        action="set_admin_role",
        result="success",
        request=request,
        user_id=claims.uid,
        user_email=claims.email,
        resource=f"users/{body.uid}",
        details={"targetUid": body.uid, "role": body.role},
        store=store,
    )
    record_audit_log(
        "set_admin_role",
        admin_user_id=claims.uid,
        admin_email=claims.email,
        target_user_id=body.uid,
        details={"role": body.role},
        request=request,
        store=store,
    )
    return {"success": True}


@router.get("/wallet/{user_id}/transactions", response_model=Dict[str, Any])
def wallet_transactions(
    user_id: str,
    page: int = Query(1, ge=1),
    pageSize: int = Query(20, ge=1, le=100),
    claims: SessionClaims = Depends(require_admin),
):
    transactions = wallet.list_transactions(get_store(), user_id)
    return paginated_response(transactions, page, pageSize)


@router.post("/wallet/{user_id}/adjust", response_model=Dict[str, Any], dependencies=csrf_guard(require_admin))
def wallet_adjust(
    user_id: str,
    body: WalletAdjustRequest,
    request: Request,
    claims: SessionClaims = Depends(require_admin),
):
    """Atomically adjust a user's token balance (positive credits, negative debits)."""
    result = wallet.adjust_and_record(get_store(), request, claims, user_id, body.amount, body.note)
    return {"success": True, "transaction": result.transaction, "newBalance": result.new_balance}
