"""
callmap/features/usage/tokens.py

Token accounting over ``processingJobs``.
Every range read goes through ``RangeQuery`` so a missing composite index
degrades to an in-memory filter instead of failing the request.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from callmap.core.collections import COLLECTION_PROCESSING_JOBS
from callmap.core.database import Document, DocumentStore
from callmap.core.dates import date_key, month_bounds
from callmap.core.queries import RangeQuery
from callmap.features.analytics.reducers import number


@dataclass(frozen=True)
class TokenUsage:
    tokens_in: float = 0
    tokens_out: float = 0
    cost: float = 0
    model: str = "unknown"

    @property
    def total(self) -> float:
        return self.tokens_in + self.tokens_out


@dataclass
class TokenUsageSummary:
    tokens_in: float = 0
    tokens_out: float = 0
    cost: float = 0
    by_model: Dict[str, float] = field(default_factory=dict)

    @property
    def total_tokens(self) -> float:
        return self.tokens_in + self.tokens_out


def job_cost(job: Document) -> float:
    return number(job.get("costUsd")) or number(job.get("cost_usd")) or number(job.get("cost"))


def extract_token_usage(job: Document) -> TokenUsage:
    return TokenUsage(
        tokens_in=number(job.get("tokensIn")),
        tokens_out=number(job.get("tokensOut")),
        cost=job_cost(job),
        model=job.get("model") or "unknown",
    )


def job_tokens(job: Document) -> float:
    return extract_token_usage(job).total


def aggregate_token_usage(usages: Iterable[TokenUsage]) -> TokenUsageSummary:
    summary = TokenUsageSummary()
    by_model: Dict[str, float] = defaultdict(float)
    for usage in usages:
        summary.tokens_in += usage.tokens_in
        summary.tokens_out += usage.tokens_out
        summary.cost += usage.cost
        by_model[usage.model or "unknown"] += usage.total
    summary.by_model = dict(by_model)
    return summary


def jobs_in_range(store: DocumentStore, start: datetime, end: datetime, *, team_id: Optional[str] = None) -> List[Document]:
    if team_id is None:
        return RangeQuery(COLLECTION_PROCESSING_JOBS, "createdAt", start, end).run(store).documents
    # Older jobs carry ``teamId`` instead of ``workspaceId``; match either.
    by_workspace = RangeQuery(
        COLLECTION_PROCESSING_JOBS, "createdAt", start, end, equals=(("workspaceId", team_id),)
    ).run(store).documents
    by_team = RangeQuery(
        COLLECTION_PROCESSING_JOBS, "createdAt", start, end, equals=(("teamId", team_id),)
    ).run(store).documents
    seen = {doc.id for doc in by_workspace}
    return by_workspace + [doc for doc in by_team if doc.id not in seen]


def token_usage_for_range(store: DocumentStore, start: datetime, end: datetime) -> TokenUsageSummary:
    return aggregate_token_usage(extract_token_usage(job) for job in jobs_in_range(store, start, end))


def team_token_usage(store: DocumentStore, team_id: str, start: datetime, end: datetime) -> TokenUsageSummary:
    return aggregate_token_usage(
        extract_token_usage(job) for job in jobs_in_range(store, start, end, team_id=team_id)
    )


def team_current_month_usage(store: DocumentStore, team_id: str, now: datetime) -> float:
    start, end = month_bounds(now)
    return team_token_usage(store, team_id, start, end).total_tokens


def daily_token_usage(jobs: Iterable[Document]) -> Dict[str, float]:
    daily: Dict[str, float] = defaultdict(float)
    for job in jobs:
        key = date_key(job.get("createdAt"))
        if key is not None:
            daily[key] += job_tokens(job)
    return dict(daily)


def daily_token_usage_by_model(jobs: Iterable[Document]) -> Dict[str, Dict[str, float]]:
    daily: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for job in jobs:
        key = date_key(job.get("createdAt"))
        if key is not None:
            usage = extract_token_usage(job)
            daily[key][usage.model] += usage.total
    return {day: dict(models) for day, models in daily.items()}


def avg_tokens_per_session(total_tokens: float, session_count: int) -> float:
    return total_tokens / session_count if session_count > 0 else 0.0


def quota_percentage(used: float, quota: float) -> float:
    return (used / quota) * 100 if quota > 0 else 0.0
