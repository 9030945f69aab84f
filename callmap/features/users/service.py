"""
callmap/features/users/service.py

Admin views over ``users``: filtered listing, feature-flag overrides and
the strict field patch.
"""

from typing import Any, Dict, List

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from callmap.core.collections import COLLECTION_FEATURE_FLAG_OVERRIDES, COLLECTION_USERS
from callmap.core.database import Document, DocumentMissing, DocumentStore, Filter
from callmap.core.dates import first_isoformat
from callmap.core.logging import log_event
from callmap.core.responses import not_found_error
from callmap.features.analytics.reducers import as_number, number
from callmap.models.user import UserUpdate, UsersFilter


def user_row(doc: Document) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "team_id": doc.get("workspaceId") or doc.get("teamId"),
        "email": doc.get("email") or "",
        "name": doc.get("name") or doc.get("displayName"),
        "role": doc.get("role") or "member",
        "status": doc.get("status") or ("active" if doc.get("emailVerified") else "invited"),
        "created_at": first_isoformat(doc, "createdAt"),
        "last_login_at": first_isoformat(doc, "lastLoginAt", "lastSignInTime"),
        "last_activity_at": first_isoformat(doc, "lastActivityAt", "lastLoginAt", "lastSignInTime"),
    }


def _matches_search(row: Dict[str, Any], search: str) -> bool:
    needle = search.lower()
    return any(needle in (row.get(key) or "").lower() for key in ("email", "name", "id"))


def list_users(store: DocumentStore, criteria: UsersFilter) -> List[Dict[str, Any]]:
    rows = [user_row(doc) for doc in store.stream(COLLECTION_USERS)]
    if criteria.search:
        rows = [row for row in rows if _matches_search(row, criteria.search)]
    if criteria.role:
        rows = [row for row in rows if row["role"] in criteria.role]
    if criteria.status:
        rows = [row for row in rows if row["status"] in criteria.status]
    if criteria.hasLoggedIn is not None:
        rows = [row for row in rows if (row["last_login_at"] is not None) == criteria.hasLoggedIn]
    if criteria.teamId:
        rows = [row for row in rows if row["team_id"] == criteria.teamId]
    return rows


def get_user(store: DocumentStore, user_id: str) -> Dict[str, Any]:
    """``user_row`` plus the plan, quota and onboarding fields of the profile."""
    doc = store.get(COLLECTION_USERS, user_id)
    if doc is None:
        raise not_found_error("User")
    return {
        **user_row(doc),
        "plan": doc.get("plan") or "free",
        "tokenBalance": as_number(number(doc.get("tokenBalance"))),
        "audioMinutesUsed": as_number(number(doc.get("audioMinutesUsed"))),
        "mapsGenerated": as_number(number(doc.get("mapsGenerated"))),
        "onboarded": bool(doc.get("onboarded")),
        "monthlyResetTimestamp": first_isoformat(doc, "monthlyResetTimestamp"),
        "updatedAt": first_isoformat(doc, "updatedAt"),
    }


def feature_flag_overrides(store: DocumentStore, user_id: str) -> List[Dict[str, Any]]:
    overrides = store.query(COLLECTION_FEATURE_FLAG_OVERRIDES, [Filter("userId", "==", user_id)])
    return [
        {
            "id": doc.id,
            "flag_id": doc.get("flagId") or doc.get("flag_id"),
            "team_id": doc.get("teamId") or doc.get("workspaceId"),
            "user_id": user_id,
            "is_enabled": doc.get("isEnabled") is not False,
        }
        for doc in overrides
    ]


def update_user(store: DocumentStore, user_id: str, patch: UserUpdate, *, admin_uid: str) -> Dict[str, Any]:
    """Write only the fields present in ``patch`` plus ``updatedAt``; returns the applied fields."""
    changes = patch.changes()
    try:
        store.update(COLLECTION_USERS, user_id, {**changes, "updatedAt": SERVER_TIMESTAMP})
    except DocumentMissing:
        raise not_found_error("User")

    log_event(
        "info",
        "user.updated",
        user_id=admin_uid,
        event_type="user_update",
        extra={"target_user_id": user_id, "fields": sorted(changes)},
    )
    return changes
