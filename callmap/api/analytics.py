"""
callmap/api/analytics.py

Analytics dashboard endpoints.
Every route: session + role gate -> range queries -> reducers -> envelope.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from google.api_core.exceptions import GoogleAPICallError
from pydantic import ValidationError as PydanticValidationError

from callmap.core.collections import COLLECTION_USERS
from callmap.core.database import get_store
from callmap.core.errors import AppError, StoreUnavailableError
from callmap.core.logging import log_event
from callmap.core.permissions import SessionClaims, require_admin
from callmap.core.responses import metric_response
from callmap.features.analytics import predictions, service
from callmap.models.analytics import Period, RecentTeamsRequest, TopTeamsRequest, UsageMetric
from callmap.models.common import DateRange

router = APIRouter()


@router.post("/call-logs", response_model=Dict[str, Any])
def call_logs(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    data = service.call_logs_analytics(get_store(), body.start, body.end)
    return metric_response(data, date_range=body.bounds())


@router.post("/contacts", response_model=Dict[str, Any])
def contacts(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    data = service.contacts_analytics(get_store(), body.start, body.end)
    return metric_response(data, date_range=body.bounds())


@router.post("/export-rate", response_model=Dict[str, Any])
def export_rate(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    data = service.export_rate_analytics(get_store(), body.start, body.end)
    return metric_response(data, date_range=body.bounds())


@router.post("/file-conversion-rate", response_model=Dict[str, Any])
def file_conversion_rate(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    data = service.file_conversion_analytics(get_store(), body.start, body.end)
    return metric_response(data, date_range=body.bounds())


@router.post("/mindmap-edit-count", response_model=Dict[str, Any])
def mindmap_edit_count(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    data = service.mindmap_edit_analytics(get_store(), body.start, body.end)
    return metric_response(data, date_range=body.bounds())


@router.post("/security", response_model=Dict[str, Any])
def security(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    data = service.security_analytics(get_store(), body.start, body.end)
    return metric_response(data, date_range=body.bounds())


@router.post("/user-retention", response_model=Dict[str, Any])
def user_retention(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    data = service.user_retention(get_store())
    return metric_response(data, date_range=body.bounds())


@router.post("/daily-active-users", response_model=List[Dict[str, Any]])
def daily_active_users(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    return service.daily_active_users(get_store(), body.start, body.end)


@router.post("/daily-tokens-by-model", response_model=List[Dict[str, Any]])
def daily_tokens_by_model(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    """``[{date, model, tokens}]`` ordered by date, then model."""
    return service.daily_tokens_by_model(get_store(), body.start, body.end)


@router.post("/top-teams-by-tokens", response_model=List[Dict[str, Any]])
def top_teams_by_tokens(body: TopTeamsRequest, claims: SessionClaims = Depends(require_admin)):
    return service.top_teams_by_tokens(get_store(), body.start, body.end, body.limit)


@router.post("/top-teams-by-cost", response_model=List[Dict[str, Any]])
def top_teams_by_cost(body: TopTeamsRequest, claims: SessionClaims = Depends(require_admin)):
    return service.top_teams_by_cost(get_store(), body.start, body.end, body.limit)


@router.post("/recent-teams", response_model=List[Dict[str, Any]])
def recent_teams(body: Optional[RecentTeamsRequest] = None, claims: SessionClaims = Depends(require_admin)):
    limit = body.limit if body is not None else RecentTeamsRequest().limit
    return service.recent_teams(get_store(), limit)


@router.post("/tokens-by-plan", response_model=List[Dict[str, Any]])
def tokens_by_plan(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    return service.tokens_by_plan(get_store(), body.start, body.end)


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------


@router.get("/predictions/churn", response_model=Dict[str, Any])
def churn_predictions(
    userId: Optional[str] = Query(None, description="Predict for a single user"),
    limit: int = Query(50, ge=1, le=500),
    claims: SessionClaims = Depends(require_admin),
):
    """
    Churn risk scores.

    With ``userId``: ``{data: ChurnPrediction}`` (404 for unknown users).
    Without: scores up to ``limit * 2`` users and returns the riskiest
    ``limit`` as ``{items, total}``.
    """
    store = get_store()
    now = datetime.now(timezone.utc)
    if userId:
        return {"data": predictions.predict_churn(store, userId, now).model_dump(mode="json")}

    scored = []
    for user in store.query(COLLECTION_USERS, limit=limit * 2):
        try:
            scored.append(predictions.predict_churn(store, user.id, now))
        except StoreUnavailableError:
            raise
        except (AppError, GoogleAPICallError, PydanticValidationError, TypeError, ValueError) as exc:
            log_event(
                "warning",
                "churn.prediction_skipped",
                user_id=user.id,
                event_type="churn_prediction",
                extra={"reason": str(exc)},
            )
    scored.sort(key=lambda prediction: prediction.churnRisk, reverse=True)
    return {
        "items": [prediction.model_dump(mode="json") for prediction in scored[:limit]],
        "total": len(scored),
    }


@router.get("/predictions/revenue", response_model=Dict[str, Any])
def revenue_forecast(
    period: Period = Query("30d"),
    claims: SessionClaims = Depends(require_admin),
):
    forecast = predictions.forecast_revenue(get_store(), period, datetime.now(timezone.utc))
    return {"data": forecast.model_dump(mode="json")}


@router.get("/predictions/usage", response_model=Dict[str, Any])
def usage_forecast(
    metric: UsageMetric = Query("tokens"),
    period: Period = Query("30d"),
    claims: SessionClaims = Depends(require_admin),
):
    forecast = predictions.forecast_usage(get_store(), metric, period, datetime.now(timezone.utc))
    return {"data": forecast.model_dump(mode="json")}
