"""
callmap/features/analytics/predictions.py

Heuristic forecasting over store data:
- churn risk per user (weighted factor score, 0-100)
- revenue (current MRR grown at a flat monthly rate)
- usage (weekly buckets, exponential smoothing, linear extrapolation)

Deterministic: the same documents and the same ``now`` give the same output.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from callmap.core.collections import (
    COLLECTION_ANALYTICS_EVENTS,
    COLLECTION_MINDMAPS,
    COLLECTION_PROCESSING_JOBS,
    COLLECTION_SUBSCRIPTIONS,
    COLLECTION_SUPPORT_ERRORS,
    COLLECTION_USERS,
    SUBCOLLECTION_WEEKLY_ACTIVITY,
    subcollection,
)
from callmap.core.database import DocumentStore, Filter
from callmap.core.dates import ensure_utc, to_datetime
from callmap.core.queries import RangeQuery
from callmap.core.responses import not_found_error, round2, round_half_up
from callmap.features.analytics.reducers import number
from callmap.features.billing.plans import plan_price
from callmap.features.usage.tokens import job_tokens
from callmap.models.analytics import (
    PERIOD_DAYS,
    ChurnFactors,
    ChurnPrediction,
    ConfidenceInterval,
    RevenueFactors,
    RevenueForecast,
    UsageForecast,
)

MONTHLY_GROWTH_RATE = 0.05
FORECAST_WEEKS = 12
SMOOTHING_ALPHA = 0.3
TREND_WINDOW = 4


def linear_regression(points: Sequence[Tuple[float, float]]) -> Tuple[float, float]:
    """Least-squares ``(slope, intercept)``; no points gives ``(0, 0)``."""
    n = len(points)
    if n == 0:
        return 0.0, 0.0
    sum_x = sum(x for x, _ in points)
    sum_y = sum(y for _, y in points)
    sum_xy = sum(x * y for x, y in points)
    sum_xx = sum(x * x for x, _ in points)
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0, sum_y / n
    slope = (n * sum_xy - sum_x * sum_y) / denominator
    return slope, (sum_y - slope * sum_x) / n


def exponential_smoothing(values: Sequence[float], alpha: float = SMOOTHING_ALPHA) -> List[float]:
    if not values:
        return []
    smoothed = [float(values[0])]
    for value in values[1:]:
        smoothed.append(alpha * value + (1 - alpha) * smoothed[-1])
    return smoothed


def _trend(rate: float, threshold: float) -> str:
    if rate > threshold:
        return "increasing"
    if rate < -threshold:
        return "decreasing"
    return "stable"


# ---------------------------------------------------------------------------
# Churn
# ---------------------------------------------------------------------------


def _activity_drop(store: DocumentStore, user_id: str, now: datetime) -> float:
    thirty_days_ago = now - timedelta(days=30)
    sixty_days_ago = now - timedelta(days=60)
    recent = previous = 0.0
    for week in store.stream(subcollection(COLLECTION_USERS, user_id, SUBCOLLECTION_WEEKLY_ACTIVITY)):
        week_date = to_datetime(week.get("weekStart")) or to_datetime(week.id)
        if week_date is None:
            continue
        activity = number(week.get("login")) + number(week.get("mindmap_view")) + number(week.get("mindmap_create"))
        if week_date >= thirty_days_ago:
            recent += activity
        elif week_date >= sixty_days_ago:
            previous += activity

    if previous > 0:
        return min(30.0, (previous - recent) / previous * 30)
    return 30.0 if recent == 0 else 0.0


def _sentiment_score(mindmaps) -> float:
    values = (number(m.get("sentimentScore"), default=None) for m in mindmaps)
    scores = [score for score in values if score is not None]
    if not scores:
        return 7.5
    average = sum(scores) / len(scores)
    return (1 - average) / 2 * 15


def _recommendations(activity_drop: float, feature_usage: float, error_frequency: float, risk: float) -> List[str]:
    recommendations = []
    if activity_drop > 15:
        recommendations.append("User activity has dropped significantly - send re-engagement email")
    if feature_usage > 10:
        recommendations.append("User is not using key features - provide onboarding support")
    if error_frequency > 5:
        recommendations.append("User experiencing frequent errors - reach out with support")
    if risk > 80:
        recommendations.append("High churn risk - consider offering discount or upgrade incentive")
    return recommendations


def predict_churn(store: DocumentStore, user_id: str, now: datetime) -> ChurnPrediction:
    """
    Score churn risk for one user.

    Factors (points): activity drop (30), payment issues (25),
    feature usage (20), sentiment trend (15), error frequency (10).
    The sum is capped at 100; above 70 a churn date is projected
    ``100 - risk`` days out.
    """
    now = ensure_utc(now)
    user = store.get(COLLECTION_USERS, user_id)
    if user is None:
        raise not_found_error("User")

    thirty_days_ago = now - timedelta(days=30)
    activity_drop = _activity_drop(store, user_id, now)
    payment_issues = 0 if (user.get("plan") or "free") == "free" else 5

    events = RangeQuery(
        COLLECTION_ANALYTICS_EVENTS, "timestamp", thirty_days_ago, now, equals=(("userId", user_id),)
    ).run(store)
    feature_usage = min(20.0, 20 - len(events) / 10)

    mindmaps = RangeQuery(
        COLLECTION_MINDMAPS, "createdAt", thirty_days_ago, now, equals=(("userId", user_id),)
    ).run(store)
    sentiment = _sentiment_score(mindmaps)

    errors = RangeQuery(
        COLLECTION_SUPPORT_ERRORS, "created_at", thirty_days_ago, now, equals=(("user_id", user_id),)
    ).run(store)
    error_frequency = min(10, len(errors) * 2)

    risk = min(100.0, activity_drop + payment_issues + feature_usage + sentiment + error_frequency)
    predicted_date: Optional[datetime] = None
    if risk > 70:
        predicted_date = now + timedelta(days=100 - risk)

    return ChurnPrediction(
        userId=user_id,
        churnRisk=round_half_up(risk),
        predictedChurnDate=predicted_date,
        factors=ChurnFactors(
            activityDrop=round_half_up(activity_drop),
            paymentIssues=payment_issues,
            featureUsage=round_half_up(feature_usage),
            sentimentTrend=round_half_up(sentiment),
            errorFrequency=error_frequency,
        ),
        interventionRecommendations=_recommendations(activity_drop, feature_usage, error_frequency, risk),
    )


# ---------------------------------------------------------------------------
# Revenue
# ---------------------------------------------------------------------------


def forecast_revenue(store: DocumentStore, period: str, now: datetime) -> RevenueForecast:
    now = ensure_utc(now)
    days = PERIOD_DAYS[period]
    thirty_days_ago = now - timedelta(days=30)

    active = store.query(COLLECTION_SUBSCRIPTIONS, [Filter("status", "==", "active")])
    current_mrr = sum(plan_price(sub.get("plan") or "free") for sub in active)

    canceled = RangeQuery(
        COLLECTION_SUBSCRIPTIONS, "canceledAt", thirty_days_ago, now, equals=(("status", "canceled"),)
    ).run(store)
    churn_rate = len(canceled) / len(active) if active else 0.0

    new_customers = RangeQuery(COLLECTION_USERS, "createdAt", thirty_days_ago, now).run(store)

    forecasted_mrr = current_mrr * (1 + MONTHLY_GROWTH_RATE) ** (days / 30)
    return RevenueForecast(
        period=period,
        forecastedMRR=round_half_up(forecasted_mrr),
        forecastedARR=round_half_up(forecasted_mrr * 12),
        confidenceInterval=ConfidenceInterval(
            lower=round_half_up(forecasted_mrr * 0.9),
            upper=round_half_up(forecasted_mrr * 1.1),
        ),
        trend=_trend(MONTHLY_GROWTH_RATE, 0.02),
        factors=RevenueFactors(
            newCustomers=len(new_customers),
            churnRate=churn_rate * 100,
            expansionRate=0,
        ),
    )


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------

_USAGE_SOURCES = {
    "tokens": (COLLECTION_PROCESSING_JOBS, job_tokens),
    "mindmaps": (COLLECTION_MINDMAPS, lambda doc: 1),
    "users": (COLLECTION_USERS, lambda doc: 1),
}


def weekly_series(store: DocumentStore, metric: str, start: datetime, weeks: int = FORECAST_WEEKS) -> List[float]:
    """Per-week totals over ``[start + i*7d, start + (i+1)*7d)``, one query for the whole window."""
    collection, value_fn = _USAGE_SOURCES[metric]
    week = timedelta(days=7)
    end = start + week * weeks
    buckets = [0.0] * weeks
    for doc in RangeQuery(collection, "createdAt", start, end).run(store):
        created = to_datetime(doc.get("createdAt"))
        index = int((created - start) // week)
        if 0 <= index < weeks:
            buckets[index] += value_fn(doc)
    return buckets


def forecast_usage(store: DocumentStore, metric: str, period: str, now: datetime) -> UsageForecast:
    now = ensure_utc(now)
    days = PERIOD_DAYS[period]
    history = weekly_series(store, metric, now - timedelta(days=90))

    smoothed = exponential_smoothing(history)
    recent = smoothed[-TREND_WINDOW:]
    earlier = smoothed[:TREND_WINDOW]
    avg_recent = sum(recent) / len(recent)
    avg_earlier = sum(earlier) / len(earlier)
    growth_rate = (avg_recent - avg_earlier) / avg_earlier * 100 if avg_earlier > 0 else 0.0

    slope, intercept = linear_regression([(float(i), y) for i, y in enumerate(recent)])
    forecasted = slope * (len(recent) + days / 7) + intercept

    return UsageForecast(
        metric=metric,
        period=period,
        forecastedValue=round_half_up(forecasted),
        confidenceInterval=ConfidenceInterval(
            lower=round_half_up(forecasted * 0.85),
            upper=round_half_up(forecasted * 1.15),
        ),
        trend=_trend(growth_rate, 5),
        growthRate=round2(growth_rate),
    )
