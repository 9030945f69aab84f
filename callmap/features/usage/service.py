"""
callmap/features/usage/service.py

Read models behind /api/usage: daily token series, per-session token
accounting, range metrics and teams approaching their monthly quota.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from callmap.core.collections import COLLECTION_MINDMAPS, COLLECTION_PROCESSING_JOBS, COLLECTION_WORKSPACES
from callmap.core.database import Document, DocumentStore
from callmap.core.dates import first_isoformat
from callmap.core.queries import RangeQuery
from callmap.core.responses import round2
from callmap.features.analytics.reducers import as_number, first_present
from callmap.features.billing.plans import plan_quota
from callmap.features.usage.tokens import (
    avg_tokens_per_session,
    daily_token_usage,
    extract_token_usage,
    jobs_in_range,
    quota_percentage,
    team_current_month_usage,
    token_usage_for_range,
)
from callmap.models.usage import SessionsFilter, TokensByModel, UsageMetrics

QUOTA_WARNING_PERCENT = 80


def daily_tokens(store: DocumentStore, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    """``[{date, tokens}]`` ascending, one entry per day with jobs."""
    daily = daily_token_usage(jobs_in_range(store, start, end))
    return [{"date": day, "tokens": as_number(daily[day])} for day in sorted(daily)]


def _session_row(doc: Document) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "team_id": first_present(doc, "workspaceId", "teamId"),
        "user_id": doc.get("userId"),
        "source_type": first_present(doc, "sourceType", "source_type", default="upload"),
        "status": doc.get("status") or "ready",
        "duration_seconds": first_present(doc, "durationSeconds", "duration"),
        "chars_in": doc.get("charsIn") or None,
        "tokens_in": None,
        "tokens_out": None,
        "model": None,
        "cost_usd": None,
        "created_at": first_isoformat(doc, "createdAt"),
    }


def _jobs_by_session(jobs: List[Document]) -> Dict[str, List[Document]]:
    grouped: Dict[str, List[Document]] = defaultdict(list)
    for job in jobs:
        session_id = first_present(job, "mindmapId", "sessionId", "documentId")
        if session_id:
            grouped[session_id].append(job)
    return grouped


def _with_job_totals(row: Dict[str, Any], jobs: List[Document]) -> Dict[str, Any]:
    tokens_in = tokens_out = cost = 0.0
    model: Optional[str] = None
    for job in jobs:
        usage = extract_token_usage(job)
        tokens_in += usage.tokens_in
        tokens_out += usage.tokens_out
        cost += usage.cost
        if model is None and job.get("model"):
            model = job.get("model")
    # Zero totals read as "no data" in the sessions table.
    row.update(
        tokens_in=as_number(tokens_in) or None,
        tokens_out=as_number(tokens_out) or None,
        model=model,
        cost_usd=as_number(cost) or None,
    )
    return row


def list_sessions(store: DocumentStore, criteria: SessionsFilter) -> List[Dict[str, Any]]:
    """Mindmaps joined with their processing jobs, filtered; the caller paginates."""
    jobs = _jobs_by_session(store.stream(COLLECTION_PROCESSING_JOBS))
    rows = [_with_job_totals(_session_row(doc), jobs.get(doc.id, [])) for doc in store.stream(COLLECTION_MINDMAPS)]

    if criteria.teamId:
        rows = [row for row in rows if row["team_id"] == criteria.teamId]
    if criteria.model:
        rows = [row for row in rows if row["model"] == criteria.model]
    if criteria.sourceType:
        rows = [row for row in rows if row["source_type"] == criteria.sourceType]
    if criteria.status:
        rows = [row for row in rows if row["status"] == criteria.status]
    return rows


def usage_metrics(store: DocumentStore, start: datetime, end: datetime) -> UsageMetrics:
    summary = token_usage_for_range(store, start, end)
    sessions = len(RangeQuery(COLLECTION_MINDMAPS, "createdAt", start, end).run(store))

    by_model = sorted(summary.by_model.items(), key=lambda item: item[1], reverse=True)
    return UsageMetrics(
        totalTokensIn=as_number(summary.tokens_in),
        totalTokensOut=as_number(summary.tokens_out),
        tokensByModel=[TokensByModel(model=model, tokens=as_number(tokens)) for model, tokens in by_model],
        avgTokensPerSession=round2(avg_tokens_per_session(summary.total_tokens, sessions)),
        totalCost=round2(summary.cost),
    )


def teams_over_quota(store: DocumentStore, now: datetime) -> List[Dict[str, Any]]:
    """Teams at or above 80% of their plan's monthly quota, highest usage first."""
    rows = []
    for workspace in store.stream(COLLECTION_WORKSPACES):
        quota = plan_quota(workspace.get("plan") or "free")
        used = team_current_month_usage(store, workspace.id, now)
        used_percent = quota_percentage(used, quota)
        if used_percent >= QUOTA_WARNING_PERCENT:
            rows.append(
                {
                    "team_id": workspace.id,
                    "team_name": workspace.get("name") or workspace.id,
                    "quota": quota,
                    "used": as_number(used),
                    "percentage": round2(used_percent),
                }
            )
    rows.sort(key=lambda row: row["percentage"], reverse=True)
    return rows
