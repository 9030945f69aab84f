"""
callmap/models/usage.py
Usage request filters and summary rows.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from callmap.models.common import Pagination

SourceType = Literal["call", "meeting", "upload", "url"]
SessionStatus = Literal["queued", "processing", "ready", "failed"]


class SessionsFilter(Pagination):
    teamId: Optional[str] = None
    model: Optional[str] = None
    sourceType: Optional[SourceType] = None
    status: Optional[SessionStatus] = None


class TokensByModel(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model: str
    tokens: Union[int, float] = Field(ge=0)


class UsageMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    totalTokensIn: Union[int, float] = Field(ge=0)
    totalTokensOut: Union[int, float] = Field(ge=0)
    tokensByModel: list[TokensByModel]
    avgTokensPerSession: float = Field(ge=0)
    totalCost: float = Field(ge=0)
