"""
callmap/features/dashboards/service.py

CRUD over ``customDashboards`` (saved widget layouts built in the admin UI).
"""

from typing import Any, Dict, List

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from callmap.core.collections import COLLECTION_CUSTOM_DASHBOARDS
from callmap.core.database import DocumentMissing, DocumentStore
from callmap.core.errors import NotFoundError
from callmap.core.logging import log_event
from callmap.models.dashboard import DashboardCreate, DashboardUpdate

NOT_FOUND = "Dashboard not found"


def list_dashboards(store: DocumentStore) -> List[Dict[str, Any]]:
    return [doc.to_dict() for doc in store.stream(COLLECTION_CUSTOM_DASHBOARDS)]


def get_dashboard(store: DocumentStore, dashboard_id: str) -> Dict[str, Any]:
    doc = store.get(COLLECTION_CUSTOM_DASHBOARDS, dashboard_id)
    if doc is None:
        raise NotFoundError(NOT_FOUND)
    return doc.to_dict()


def create_dashboard(store: DocumentStore, payload: DashboardCreate, *, created_by: str) -> str:
    dashboard_id = store.add(
        COLLECTION_CUSTOM_DASHBOARDS,
        {
            "name": payload.name,
            "description": payload.description,
            "widgets": payload.widgets,
            "layout": payload.layout,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
            "created_by": created_by,
        },
    )
    store.update(COLLECTION_CUSTOM_DASHBOARDS, dashboard_id, {"id": dashboard_id})
    log_event("info", "dashboard.created", user_id=created_by, event_type="dashboard", extra={"dashboard_id": dashboard_id})
    return dashboard_id


def update_dashboard(store: DocumentStore, dashboard_id: str, patch: DashboardUpdate) -> None:
    try:
        store.update(COLLECTION_CUSTOM_DASHBOARDS, dashboard_id, {**patch.changes(), "updated_at": SERVER_TIMESTAMP})
    except DocumentMissing:
        raise NotFoundError(NOT_FOUND)


def delete_dashboard(store: DocumentStore, dashboard_id: str) -> None:
    store.delete(COLLECTION_CUSTOM_DASHBOARDS, dashboard_id)
