"""
callmap/features/analytics/service.py

Aggregations behind the /api/analytics routes.
Each function fetches its collections through ``RangeQuery`` (inclusive
range on the stored timestamp) and reduces the documents in memory.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Set

from callmap.core.collections import (
    COLLECTION_ANALYTICS_EVENTS,
    COLLECTION_AUDIT_LOGS,
    COLLECTION_DELETION_REQUESTS,
    COLLECTION_INCIDENTS,
    COLLECTION_MINDMAPS,
    COLLECTION_USERS,
    COLLECTION_WORKSPACES,
    SUBCOLLECTION_WEEKLY_ACTIVITY,
    subcollection,
)
from callmap.core.database import Document, DocumentStore
from callmap.core.dates import date_key
from callmap.core.queries import RangeQuery, ordered_query
from callmap.core.responses import percentage, round2
from callmap.features.analytics.reducers import (
    as_number,
    count_by,
    count_where,
    daily_counts,
    first_present,
    number,
    tally_outcomes,
    top_counts,
)
from callmap.features.teams.service import team_row
from callmap.features.usage.tokens import daily_token_usage_by_model, job_cost, job_tokens, jobs_in_range

EDIT_TYPES = ("layout", "outline", "title", "other")


def events_of_type(store: DocumentStore, event_type: str, start: datetime, end: datetime) -> List[Document]:
    return RangeQuery(
        COLLECTION_ANALYTICS_EVENTS, "timestamp", start, end, equals=(("type", event_type),)
    ).run(store).documents


def call_logs_analytics(store: DocumentStore, start: datetime, end: datetime) -> Dict[str, Any]:
    call_logs = events_of_type(store, "call_log", start, end)
    webhooks = events_of_type(store, "net2phone_webhook", start, end)
    recordings = [e for e in call_logs if e.get("eventType") == "recording_synced"]

    return {
        "totalWebhooks": len(webhooks),
        "recordingsProcessed": len(recordings),
        "transcriptionsStarted": count_where(call_logs, "eventType", "transcription_started"),
        "transcriptionsCompleted": count_where(call_logs, "eventType", "transcription_completed"),
        "mindmapsCreated": count_where(call_logs, "eventType", "mindmap_created"),
        "byEventType": count_by(call_logs + webhooks, "eventType"),
        "byProvider": count_by(call_logs, "metadata.provider"),
        "dailyWebhooks": daily_counts(webhooks),
        "dailyRecordings": daily_counts(recordings),
    }


def contacts_analytics(store: DocumentStore, start: datetime, end: datetime) -> Dict[str, Any]:
    events = events_of_type(store, "contact_event", start, end)
    searches = [e for e in events if e.get("eventType") == "contact_searched"]
    resolved = [e for e in events if e.get("eventType") == "contact_resolved"]

    return {
        "totalSearches": len(searches),
        "totalResolved": len(resolved),
        "totalActions": count_where(events, "eventType", "contact_action"),
        "totalEmailDrafts": count_where(events, "eventType", "email_draft_created"),
        "byEventType": count_by(events, "eventType"),
        "dailySearches": daily_counts(searches),
        "dailyResolved": daily_counts(resolved),
    }


def export_rate_analytics(store: DocumentStore, start: datetime, end: datetime) -> Dict[str, Any]:
    exports = events_of_type(store, "mindmap_export", start, end)
    successful = sum(1 for e in exports if e.get("success"))
    exported_mindmaps = {e.get("mindmapId") for e in exports if e.get("mindmapId")}
    mindmap_ids = {doc.id for doc in RangeQuery(COLLECTION_MINDMAPS, "createdAt", start, end).run(store)}
    total_mindmaps = len(mindmap_ids)
    # exports of mindmaps created before the range do not count towards the rate
    exported_in_range = exported_mindmaps & mindmap_ids

    return {
        "totalExports": len(exports),
        "successfulExports": successful,
        "failedExports": len(exports) - successful,
        "totalMindmaps": total_mindmaps,
        "exportedMindmaps": len(exported_mindmaps),
        "exportRate": percentage(len(exported_in_range), total_mindmaps),
        "byExportType": tally_outcomes(exports, "exportType"),
        "avgExportsPerMindmap": round2(len(exports) / len(exported_mindmaps)) if exported_mindmaps else 0,
    }


def file_conversion_analytics(store: DocumentStore, start: datetime, end: datetime) -> Dict[str, Any]:
    conversions = events_of_type(store, "file_conversion", start, end)
    failures = [e for e in conversions if not e.get("success")]
    successful = len(conversions) - len(failures)
    errors = count_by(failures, "errorMessage", default="Unknown error")

    return {
        "totalConversions": len(conversions),
        "successfulConversions": successful,
        "failedConversions": len(failures),
        "successRate": percentage(successful, len(conversions)),
        "byFileType": tally_outcomes(conversions, "fileType"),
        "topErrors": top_counts(errors, 10, key_name="error"),
    }


def mindmap_edit_analytics(store: DocumentStore, start: datetime, end: datetime) -> Dict[str, Any]:
    mindmaps = RangeQuery(COLLECTION_MINDMAPS, "lastEditedAt", start, end).run(store)
    edit_events = events_of_type(store, "mindmap_edit", start, end)

    by_edit_type = {edit_type: 0 for edit_type in EDIT_TYPES}
    for edit_type, count in count_by(edit_events, "editType", default="other").items():
        by_edit_type[edit_type] = by_edit_type.get(edit_type, 0) + count

    edit_counts = [number(m.get("editCount")) for m in mindmaps]
    edit_counts = [count for count in edit_counts if count > 0]
    total_edits = sum(edit_counts)

    return {
        "totalEdits": as_number(total_edits),
        "mindmapsWithEdits": len(edit_counts),
        "avgEditsPerMindmap": round2(total_edits / len(edit_counts)) if edit_counts else 0,
        "maxEdits": as_number(max(edit_counts)) if edit_counts else 0,
        "byEditType": by_edit_type,
    }


def security_analytics(store: DocumentStore, start: datetime, end: datetime) -> Dict[str, Any]:
    failed_logins = RangeQuery(
        COLLECTION_AUDIT_LOGS, "timestamp", start, end, equals=(("action", "auth_failed"),)
    ).run(store)
    incidents = RangeQuery(COLLECTION_INCIDENTS, "detectedAt", start, end).run(store).documents
    audit_logs = RangeQuery(COLLECTION_AUDIT_LOGS, "timestamp", start, end).run(store).documents
    deletion_requests = RangeQuery(COLLECTION_DELETION_REQUESTS, "requestedAt", start, end).run(store).documents

    return {
        "failedLoginAttempts": len(failed_logins),
        "securityIncidents": len(incidents),
        "incidentsBySeverity": count_by(incidents, "severity"),
        "incidentsByType": count_by(incidents, "type"),
        "auditLogCount": len(audit_logs),
        "auditLogsByAction": count_by(audit_logs, "action"),
        "dataDeletionRequests": len(deletion_requests),
        "deletionRequestsByStatus": count_by(deletion_requests, "status"),
        "suspiciousActivityCount": sum(1 for log in audit_logs if log.get("severity") in ("high", "critical")),
    }


def user_retention(store: DocumentStore) -> Dict[str, Any]:
    """
    Week-over-week retention from ``users/{id}/weeklyActivity``.

    Week keys are the activity doc ids (e.g. ``2024-W03``); every recorded
    week is reported, the request range only bounds the dashboard view.
    """
    users = store.stream(COLLECTION_USERS)
    active_by_week: Dict[str, Set[str]] = defaultdict(set)
    for user in users:
        for week in store.stream(subcollection(COLLECTION_USERS, user.id, SUBCOLLECTION_WEEKLY_ACTIVITY)):
            active_by_week[week.id].add(user.id)

    weeks = sorted(active_by_week)
    retention = []
    previous: Set[str] = set()
    for index, week in enumerate(weeks):
        active = active_by_week[week]
        retained = len(active & previous) if index > 0 else 0
        retention.append(
            {
                "week": week,
                "activeUsers": len(active),
                "retainedUsers": retained,
                "newUsers": len(active) - retained,
                "retentionRate": percentage(retained, len(previous)) if index > 0 else 0,
            }
        )
        previous = active

    all_active = set().union(*active_by_week.values()) if active_by_week else set()
    return {
        "totalUsers": len(users),
        "activeUsersThisPeriod": len(all_active),
        "weeklyRetention": retention,
    }


def daily_active_users(store: DocumentStore, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    active = RangeQuery(COLLECTION_USERS, "lastLoginAt", start, end).run(store)
    created = RangeQuery(COLLECTION_USERS, "createdAt", start, end).run(store)

    daily: Dict[str, Dict[str, int]] = defaultdict(lambda: {"active": 0, "new": 0})
    for user in active:
        daily[date_key(user.get("lastLoginAt"))]["active"] += 1
    for user in created:
        daily[date_key(user.get("createdAt"))]["new"] += 1
    return [{"date": day, **daily[day]} for day in sorted(daily)]


def _workspaces(store: DocumentStore) -> Dict[str, Document]:
    return {doc.id: doc for doc in store.stream(COLLECTION_WORKSPACES)}


def _top_teams(
    store: DocumentStore,
    start: datetime,
    end: datetime,
    value_fn: Callable[[Document], float],
    value_key: str,
    limit: int,
    finish: Callable[[float], Any] = as_number,
) -> List[Dict[str, Any]]:
    workspaces = _workspaces(store)
    totals: Dict[str, float] = defaultdict(float)
    for job in jobs_in_range(store, start, end):
        workspace_id = first_present(job, "workspaceId", "workspace_id")
        if workspace_id in workspaces:
            totals[workspace_id] += value_fn(job)

    rows = [
        {"team_id": team_id, "team_name": workspaces[team_id].get("name") or team_id, value_key: finish(total)}
        for team_id, total in totals.items()
    ]
    rows.sort(key=lambda row: row[value_key], reverse=True)
    return rows[:limit]


def top_teams_by_tokens(store: DocumentStore, start: datetime, end: datetime, limit: int = 10) -> List[Dict[str, Any]]:
    return _top_teams(store, start, end, job_tokens, "tokens", limit)


def top_teams_by_cost(store: DocumentStore, start: datetime, end: datetime, limit: int = 10) -> List[Dict[str, Any]]:
    """``[{team_id, team_name, cost}]`` by USD spend, highest first."""
    return _top_teams(store, start, end, job_cost, "cost", limit, finish=lambda total: as_number(round2(total)))


def daily_tokens_by_model(store: DocumentStore, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    daily = daily_token_usage_by_model(jobs_in_range(store, start, end))
    return [
        {"date": day, "model": model, "tokens": as_number(tokens)}
        for day in sorted(daily)
        for model, tokens in sorted(daily[day].items())
    ]


def recent_teams(store: DocumentStore, limit: int = 10) -> List[Dict[str, Any]]:
    outcome = ordered_query(store, COLLECTION_WORKSPACES, "createdAt", descending=True, limit=limit)
    return [team_row(doc) for doc in outcome]


def tokens_by_plan(store: DocumentStore, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    plans = {doc_id: doc.get("plan") or "free" for doc_id, doc in _workspaces(store).items()}
    totals: Dict[str, float] = defaultdict(float)
    for job in jobs_in_range(store, start, end):
        workspace_id = first_present(job, "workspaceId", "workspace_id")
        totals[plans.get(workspace_id, "free")] += job_tokens(job)

    rows = [{"plan": plan, "tokens": as_number(total)} for plan, total in totals.items()]
    rows.sort(key=lambda row: row["tokens"], reverse=True)
    return rows
