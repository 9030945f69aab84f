"""
Forecasting heuristics: churn score factors, revenue growth and the weekly
usage series.
"""

from datetime import datetime, timedelta, timezone

import pytest

from callmap.core.collections import (
    COLLECTION_ANALYTICS_EVENTS,
    COLLECTION_MINDMAPS,
    COLLECTION_PROCESSING_JOBS,
    COLLECTION_SUBSCRIPTIONS,
    COLLECTION_SUPPORT_ERRORS,
    COLLECTION_USERS,
)
from callmap.core.errors import NotFoundError
from callmap.features.analytics.predictions import (
    exponential_smoothing,
    forecast_revenue,
    forecast_usage,
    linear_regression,
    predict_churn,
    weekly_series,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class TestMath:
    def test_regression_on_a_line(self):
        slope, intercept = linear_regression([(0, 1), (1, 3), (2, 5)])
        assert slope == pytest.approx(2)
        assert intercept == pytest.approx(1)

    def test_regression_degenerate_inputs(self):
        assert linear_regression([]) == (0.0, 0.0)
        assert linear_regression([(1, 4), (1, 6)]) == (0.0, 5.0)

    def test_exponential_smoothing(self):
        assert exponential_smoothing([10, 20], alpha=0.5) == [10.0, 15.0]
        assert exponential_smoothing([]) == []


class TestChurn:
    def test_unknown_user(self, store):
        with pytest.raises(NotFoundError):
            predict_churn(store, "ghost", NOW)

    def test_inactive_paying_user_is_high_risk(self, store):
        store.seed(COLLECTION_USERS, [{"id": "u1", "plan": "pro"}])
        store.seed(
            COLLECTION_SUPPORT_ERRORS,
            [{"user_id": "u1", "created_at": NOW - timedelta(days=2)} for _ in range(6)],
        )
        store.seed(COLLECTION_MINDMAPS, [{"userId": "u1", "createdAt": NOW - timedelta(days=1), "sentimentScore": -1}])

        prediction = predict_churn(store, "u1", NOW)
        assert prediction.factors.activityDrop == 30
        assert prediction.factors.paymentIssues == 5
        assert prediction.factors.featureUsage == 20
        assert prediction.factors.sentimentTrend == 15
        assert prediction.factors.errorFrequency == 10
        assert prediction.churnRisk == 80
        assert prediction.predictedChurnDate == NOW + timedelta(days=20)
        assert len(prediction.interventionRecommendations) == 3

    def test_activity_drop_compares_last_two_months(self, store):
        store.seed(COLLECTION_USERS, [{"id": "u1"}])
        store.seed(
            "users/u1/weeklyActivity",
            [
                {"weekStart": NOW - timedelta(days=45), "login": 10},
                {"weekStart": NOW - timedelta(days=10), "login": 5},
            ],
        )
        store.seed(
            COLLECTION_ANALYTICS_EVENTS,
            [{"userId": "u1", "timestamp": NOW - timedelta(days=1)} for _ in range(50)],
        )
        prediction = predict_churn(store, "u1", NOW)
        assert prediction.factors.activityDrop == 15
        assert prediction.factors.featureUsage == 15
        assert prediction.factors.paymentIssues == 0
        assert prediction.predictedChurnDate is None
        assert prediction.interventionRecommendations == [
            "User is not using key features - provide onboarding support"
        ]

    def test_week_id_used_when_week_start_missing(self, store):
        store.seed(COLLECTION_USERS, [{"id": "u1"}])
        store.seed("users/u1/weeklyActivity", [{"id": "2024-05-27", "login": 3}])
        assert predict_churn(store, "u1", NOW).factors.activityDrop == 0


class TestRevenue:
    def test_growth_over_period(self, store):
        store.seed(
            COLLECTION_SUBSCRIPTIONS,
            [
                {"status": "active", "plan": "pro"},
                {"status": "active", "plan": "team"},
                {"status": "canceled", "plan": "pro", "canceledAt": NOW - timedelta(days=3)},
            ],
        )
        store.seed(COLLECTION_USERS, [{"createdAt": NOW - timedelta(days=5)}, {"createdAt": NOW - timedelta(days=60)}])

        forecast = forecast_revenue(store, "30d", NOW)
        assert forecast.forecastedMRR == 134
        assert forecast.forecastedARR == 1613
        assert forecast.confidenceInterval.lower == 121
        assert forecast.confidenceInterval.upper == 148
        assert forecast.trend == "increasing"
        assert forecast.factors.newCustomers == 1
        assert forecast.factors.churnRate == 50.0

    def test_no_subscriptions(self, store):
        forecast = forecast_revenue(store, "60d", NOW)
        assert forecast.forecastedMRR == 0
        assert forecast.factors.churnRate == 0


class TestUsage:
    def test_weekly_buckets_end_exclusive(self, store):
        start = NOW - timedelta(days=14)
        store.seed(
            COLLECTION_PROCESSING_JOBS,
            [
                {"tokensIn": 10, "createdAt": start},
                {"tokensIn": 5, "createdAt": start + timedelta(days=6, hours=23)},
                {"tokensIn": 7, "createdAt": start + timedelta(days=7)},
                {"tokensIn": 100, "createdAt": start + timedelta(days=14)},
            ],
        )
        assert weekly_series(store, "tokens", start, weeks=2) == [15.0, 7.0]

    def test_flat_history_is_stable(self, store):
        start = NOW - timedelta(days=90)
        store.seed(COLLECTION_MINDMAPS, [{"createdAt": start + timedelta(days=7 * week + 1)} for week in range(12)])
        forecast = forecast_usage(store, "mindmaps", "30d", NOW)
        assert forecast.trend == "stable"
        assert forecast.growthRate == 0
        assert forecast.forecastedValue == 1

    def test_empty_history(self, store):
        forecast = forecast_usage(store, "users", "90d", NOW)
        assert forecast.forecastedValue == 0
        assert forecast.growthRate == 0
        assert forecast.trend == "stable"
