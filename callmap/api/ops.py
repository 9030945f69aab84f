"""
callmap/api/ops.py

Operational health of the AI processing pipeline.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from callmap.core.database import get_store
from callmap.core.permissions import SessionClaims, require_admin
from callmap.features.ops.service import ai_job_stats
from callmap.models.common import DateRange

router = APIRouter()


@router.post("/ai-job-stats", response_model=Dict[str, Any])
def job_stats(body: DateRange, claims: SessionClaims = Depends(require_admin)):
    return {"data": ai_job_stats(get_store(), body.start, body.end)}
