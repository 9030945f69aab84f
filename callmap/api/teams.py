"""
callmap/api/teams.py

Team (workspace) administration.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Request

from callmap.core.csrf import csrf_guard
from callmap.core.database import get_store
from callmap.core.errors import ValidationError
from callmap.core.permissions import SessionClaims, require_admin
from callmap.core.responses import list_response, paginate, paginated_response
from callmap.features.audit.service import record_audit_log
from callmap.features.teams import service
from callmap.models.common import Pagination
from callmap.models.team import RemoveMemberRequest, TeamsFilter

router = APIRouter()


@router.post("", response_model=Dict[str, Any])
def list_teams(body: TeamsFilter, claims: SessionClaims = Depends(require_admin)):
    rows = service.list_teams(get_store(), body)
    return paginated_response(rows, body.page, body.page_size)


@router.get("/{team_id}", response_model=Dict[str, Any])
def team_detail(team_id: str, claims: SessionClaims = Depends(require_admin)):
    return {"data": service.get_team(get_store(), team_id)}


@router.get("/{team_id}/users", response_model=Dict[str, Any])
def team_users(
    team_id: str,
    page: int = Query(1, ge=1),
    pageSize: int = Query(20, ge=1, le=100),
    claims: SessionClaims = Depends(require_admin),
):
    rows = service.team_members(get_store(), team_id)
    return list_response(paginate(rows, page, pageSize), total=len(rows))


@router.post("/{team_id}/api", response_model=Dict[str, Any])
def team_api(team_id: str, claims: SessionClaims = Depends(require_admin)):
    return service.team_developer_surface(get_store(), team_id)


@router.post("/{team_id}/audit-logs", response_model=Dict[str, Any])
def team_audit_logs(team_id: str, body: Pagination = Pagination(), claims: SessionClaims = Depends(require_admin)):
    rows = service.team_audit_logs(get_store(), team_id)
    return list_response(paginate(rows, body.page, body.page_size), total=len(rows))


@router.post("/{team_id}/users/remove", response_model=Dict[str, Any], dependencies=csrf_guard(require_admin))
def remove_team_member(
    team_id: str,
    body: RemoveMemberRequest,
    request: Request,
    claims: SessionClaims = Depends(require_admin),
):
    if not body.userId:
        raise ValidationError("userId is required")

    store = get_store()
    service.remove_member(store, team_id, body.userId)
    record_audit_log(
        "remove_team_member",
        admin_user_id=claims.uid,
        admin_email=claims.email,
        target_user_id=body.userId,
        request=request,
        store=store,
        workspace_id=team_id,
    )
    return {"success": True}
