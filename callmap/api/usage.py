"""
callmap/api/usage.py

Token usage endpoints (processing jobs joined with sessions and teams).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends

from callmap.core.database import get_store
from callmap.core.permissions import SessionClaims, require_admin
from callmap.core.responses import list_response, metric_response, paginate
from callmap.features.usage import service
from callmap.models.common import DateRange, parse_date_range
from callmap.models.usage import SessionsFilter

router = APIRouter()


@router.post("/daily-tokens", response_model=List[Dict[str, Any]])
def daily_tokens(
    payload: Dict[str, Any] = Body(...),
    claims: SessionClaims = Depends(require_admin),
):
    date_range = parse_date_range(payload, "Invalid date range")
    return service.daily_tokens(get_store(), date_range.start, date_range.end)


@router.post("/sessions", response_model=Dict[str, Any])
def sessions(body: SessionsFilter, claims: SessionClaims = Depends(require_admin)):
    rows = service.list_sessions(get_store(), body)
    return list_response(paginate(rows, body.page, body.page_size), total=len(rows))


@router.post("/metrics", response_model=Dict[str, Any])
def metrics(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    data = service.usage_metrics(get_store(), body.start, body.end)
    return metric_response(data.model_dump(), date_range=body.bounds())


@router.post("/teams-over-quota", response_model=List[Dict[str, Any]])
def teams_over_quota(claims: SessionClaims = Depends(require_admin)):
    return service.teams_over_quota(get_store(), datetime.now(timezone.utc))
