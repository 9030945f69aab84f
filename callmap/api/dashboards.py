"""
callmap/api/dashboards.py

Custom dashboard CRUD. Mutations require a CSRF token.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from callmap.core.csrf import csrf_guard
from callmap.core.database import get_store
from callmap.core.permissions import SessionClaims, require_admin
from callmap.features.dashboards import service
from callmap.models.dashboard import DashboardCreate, DashboardUpdate

router = APIRouter()


@router.get("", response_model=Dict[str, Any])
def list_dashboards(claims: SessionClaims = Depends(require_admin)):
    items = service.list_dashboards(get_store())
    return {"items": items, "total": len(items)}


@router.post("", response_model=Dict[str, Any], dependencies=csrf_guard(require_admin))
def create_dashboard(body: DashboardCreate, claims: SessionClaims = Depends(require_admin)):
    dashboard_id = service.create_dashboard(get_store(), body, created_by=claims.uid)
    return {"success": True, "id": dashboard_id}


@router.get("/{dashboard_id}", response_model=Dict[str, Any])
def get_dashboard(dashboard_id: str, claims: SessionClaims = Depends(require_admin)):
    return {"data": service.get_dashboard(get_store(), dashboard_id)}


@router.patch("/{dashboard_id}", response_model=Dict[str, Any], dependencies=csrf_guard(require_admin))
def update_dashboard(dashboard_id: str, body: DashboardUpdate, claims: SessionClaims = Depends(require_admin)):
    service.update_dashboard(get_store(), dashboard_id, body)
    return {"success": True}


@router.delete("/{dashboard_id}", response_model=Dict[str, Any], dependencies=csrf_guard(require_admin))
def delete_dashboard(dashboard_id: str, claims: SessionClaims = Depends(require_admin)):
    service.delete_dashboard(get_store(), dashboard_id)
    return {"success": True}
