"""
callmap/features/ops/service.py

AI processing job health for the ops dashboard.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List

from callmap.core.database import Document, DocumentStore
from callmap.core.dates import to_datetime
from callmap.core.responses import percentage, round2, round_half_up
from callmap.features.analytics.reducers import as_number, count_by
from callmap.features.usage.tokens import aggregate_token_usage, extract_token_usage, jobs_in_range


def job_duration_seconds(job: Document):
    """Whole seconds from ``startedAt`` to ``finishedAt``/``completedAt``; None while running."""
    started = to_datetime(job.get("startedAt"))
    finished = to_datetime(job.get("finishedAt")) or to_datetime(job.get("completedAt"))
    if started is None or finished is None:
        return None
    return round_half_up((finished - started).total_seconds())


def _avg_duration_by_type(jobs: List[Document]) -> List[Dict[str, Any]]:
    durations: Dict[str, List[int]] = defaultdict(list)
    for job in jobs:
        seconds = job_duration_seconds(job)
        if seconds is not None:
            durations[job.get("type") or "transcribe"].append(seconds)
    return [
        {"type": job_type, "duration": round2(sum(values) / len(values))}
        for job_type, values in durations.items()
    ]


def ai_job_stats(store: DocumentStore, start: datetime, end: datetime) -> Dict[str, Any]:
    jobs = jobs_in_range(store, start, end)
    summary = aggregate_token_usage(extract_token_usage(job) for job in jobs)
    failed = sum(1 for job in jobs if job.get("status") == "failed")
    durations = [d for d in (job_duration_seconds(job) for job in jobs) if d is not None]

    return {
        "totalJobs": len(jobs),
        "byStatus": count_by(jobs, "status"),
        "byModel": count_by(jobs, "model"),
        "failedJobs": failed,
        "failureRate": percentage(failed, len(jobs)),
        "avgTokensPerJob": round2(summary.total_tokens / len(jobs)) if jobs else 0,
        "totalCost": round2(summary.cost),
        "totalTokens": as_number(summary.total_tokens),
        "longestRunningJob": max(durations) if durations else 0,
        "avgDurationByType": _avg_duration_by_type(jobs),
    }
