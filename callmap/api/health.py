"""
Liveness and readiness probes.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from google.api_core.exceptions import GoogleAPICallError

from callmap.core.database import get_store
from callmap.core.errors import StoreUnavailableError

logger = logging.getLogger("callmap")

root_router = APIRouter(tags=["health"])


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz():
    """Readiness check: the document store answers a one-document probe."""
    try:
        ready = get_store().ping()
    except (StoreUnavailableError, GoogleAPICallError) as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unavailable"})

    if not ready:
        logger.warning("[readyz] store probe failed")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})
    return {"status": "ok"}
