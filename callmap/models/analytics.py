"""
callmap/models/analytics.py
Analytics request bodies and prediction read models.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from callmap.models.common import DateRange

Period = Literal["30d", "60d", "90d"]
Trend = Literal["increasing", "stable", "decreasing"]
UsageMetric = Literal["tokens", "mindmaps", "users"]

PERIOD_DAYS = {"30d": 30, "60d": 60, "90d": 90}


class TopTeamsRequest(DateRange):
    limit: int = Field(default=10, ge=1, le=100)


class RecentTeamsRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    limit: int = Field(default=10, ge=1, le=100)


class ChurnFactors(BaseModel):
    model_config = ConfigDict(frozen=True)

    activityDrop: int = Field(le=30)
    paymentIssues: int = Field(ge=0, le=25)
    featureUsage: int = Field(le=20)
    sentimentTrend: int
    errorFrequency: int = Field(ge=0, le=10)


class ChurnPrediction(BaseModel):
    """Heuristic churn score for one user (0-100, higher is riskier)."""

    model_config = ConfigDict(frozen=True)

    userId: str
    churnRisk: int = Field(le=100)
    predictedChurnDate: Optional[datetime] = None
    factors: ChurnFactors
    interventionRecommendations: List[str] = Field(default_factory=list)


class ConfidenceInterval(BaseModel):
    model_config = ConfigDict(frozen=True)

    lower: float
    upper: float


class RevenueFactors(BaseModel):
    model_config = ConfigDict(frozen=True)

    newCustomers: int = Field(ge=0)
    churnRate: float = Field(ge=0)
    expansionRate: float


class RevenueForecast(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: Period
    forecastedMRR: float
    forecastedARR: float
    confidenceInterval: ConfidenceInterval
    trend: Trend
    factors: RevenueFactors


class UsageForecast(BaseModel):
    model_config = ConfigDict(frozen=True)

    metric: UsageMetric
    period: Period
    forecastedValue: float
    confidenceInterval: ConfidenceInterval
    trend: Trend
    growthRate: float
