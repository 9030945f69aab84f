"""
callmap/features/teams/service.py

Workspace (team) listings, developer surface and membership removal.
"""

from typing import Any, Dict, List, Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from callmap.core.collections import (
    COLLECTION_API_KEYS,
    COLLECTION_AUDIT_LOGS,
    COLLECTION_USERS,
    COLLECTION_WEBHOOK_ENDPOINTS,
    COLLECTION_WORKSPACES,
    SUBCOLLECTION_MEMBERS,
    subcollection,
)
from callmap.core.database import Document, DocumentStore, Filter
from callmap.core.dates import first_isoformat
from callmap.core.errors import NotFoundError
from callmap.core.logging import log_event
from callmap.core.responses import not_found_error
from callmap.features.users.service import user_row
from callmap.models.team import TeamsFilter


def team_row(doc: Document) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "name": doc.get("name") or "",
        "slug": doc.get("slug") or doc.id,
        "plan": doc.get("plan") or "free",
        "created_at": first_isoformat(doc, "createdAt"),
        "owner_user_id": doc.get("ownerUserId") or doc.get("ownerId") or "",
        "country": doc.get("country"),
        "is_active": doc.get("isActive") is not False,
    }


def _matches_search(row: Dict[str, Any], search: str) -> bool:
    needle = search.lower()
    return any(needle in (row.get(key) or "").lower() for key in ("name", "slug", "id"))


def list_teams(store: DocumentStore, criteria: TeamsFilter) -> List[Dict[str, Any]]:
    """All teams matching the filter, newest first; the caller paginates."""
    rows = [team_row(doc) for doc in store.stream(COLLECTION_WORKSPACES)]
    if criteria.search:
        rows = [row for row in rows if _matches_search(row, criteria.search)]
    if criteria.plan:
        rows = [row for row in rows if row["plan"] in criteria.plan]
    if criteria.country:
        rows = [row for row in rows if row["country"] in criteria.country]
    rows.sort(key=lambda row: row["created_at"] or "", reverse=True)
    return rows


def get_team(store: DocumentStore, team_id: str) -> Dict[str, Any]:
    doc = store.get(COLLECTION_WORKSPACES, team_id)
    if doc is None:
        raise not_found_error("Team")
    return team_row(doc)


def _member_role(role: Optional[str]) -> str:
    if role == "owner":
        return "owner"
    if role in ("manager", "admin"):
        return "admin"
    return "member"


def team_members(store: DocumentStore, team_id: str) -> List[Dict[str, Any]]:
    """
    Users of a team.

    ``workspaces/{team}/members`` is authoritative; each member is joined
    with its ``users`` document and the workspace role is mapped onto
    owner/admin/member. Teams without member documents fall back to users
    whose ``workspaceId`` (or legacy ``teamId``) points at the team.
    """
    members = store.stream(subcollection(COLLECTION_WORKSPACES, team_id, SUBCOLLECTION_MEMBERS))
    rows = []
    for member in members:
        user_id = member.get("userId") or member.id
        user = store.get(COLLECTION_USERS, user_id) or Document(user_id, {})
        row = user_row(user)
        row["team_id"] = team_id
        row["role"] = _member_role(member.get("role") or user.get("role"))
        rows.append(row)
    if rows:
        return rows

    return [
        user_row(doc)
        for doc in store.stream(COLLECTION_USERS)
        if (doc.get("workspaceId") or doc.get("teamId")) == team_id
    ]


def team_developer_surface(store: DocumentStore, team_id: str) -> Dict[str, List[Dict[str, Any]]]:
    by_team = [Filter("workspaceId", "==", team_id)]
    api_keys = [
        {
            "id": doc.id,
            "team_id": team_id,
            "name": doc.get("name") or "",
            "last_used_at": first_isoformat(doc, "lastUsedAt"),
            "created_at": first_isoformat(doc, "createdAt"),
            "is_active": doc.get("isActive") is not False,
        }
        for doc in store.query(COLLECTION_API_KEYS, by_team)
    ]
    webhooks = [
        {
            "id": doc.id,
            "team_id": team_id,
            "url": doc.get("url") or "",
            "event_types": doc.get("eventTypes") or [],
            "created_at": first_isoformat(doc, "createdAt"),
            "last_success_at": first_isoformat(doc, "lastSuccessAt"),
            "last_failure_at": first_isoformat(doc, "lastFailureAt"),
            "is_active": doc.get("isActive") is not False,
        }
        for doc in store.query(COLLECTION_WEBHOOK_ENDPOINTS, by_team)
    ]
    return {"apiKeys": api_keys, "webhookEndpoints": webhooks}


def team_audit_logs(store: DocumentStore, team_id: str) -> List[Dict[str, Any]]:
    logs = store.query(COLLECTION_AUDIT_LOGS, [Filter("workspaceId", "==", team_id)])
    rows = [
        {
            "id": doc.id,
            "team_id": team_id,
            "user_id": doc.get("userId") or doc.get("adminUserId"),
            "action": doc.get("action"),
            "entity_type": doc.get("entityType"),
            "entity_id": doc.get("entityId"),
            "metadata": doc.get("metadata") or doc.get("details") or {},
            "created_at": first_isoformat(doc, "createdAt", "timestamp"),
        }
        for doc in logs
    ]
    rows.sort(key=lambda row: row["created_at"] or "", reverse=True)
    return rows


def remove_member(store: DocumentStore, team_id: str, user_id: str) -> None:
    """Delete ``workspaces/{team}/members/{user}``; an existing user doc is unlinked and disabled."""
    members = subcollection(COLLECTION_WORKSPACES, team_id, SUBCOLLECTION_MEMBERS)
    if store.get(members, user_id) is None:
        raise NotFoundError("User is not a member of this team")

    store.delete(members, user_id)
    if store.get(COLLECTION_USERS, user_id) is not None:
        store.update(
            COLLECTION_USERS,
            user_id,
            {"workspaceId": None, "teamId": None, "status": "disabled", "updatedAt": SERVER_TIMESTAMP},
        )
    log_event("info", "team.member_removed", user_id=user_id, event_type="team_membership", extra={"team_id": team_id})
