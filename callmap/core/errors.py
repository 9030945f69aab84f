"""Error normalization and handlers.

Every failure leaves the service as the same JSON envelope:
``{"error": <message>, "code": <code>, "details": <optional>, "request_id": <rid>}``.
"""

import logging
from typing import Any, Optional
from uuid import uuid4

from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.requests import Request

from callmap.core.logging import get_request_id


class AppError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Any = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401


class PermissionError(AppError):
    code = "FORBIDDEN"
    status_code = 403


class CsrfError(PermissionError):
    code = "CSRF_INVALID"


class NotFoundError(AppError, LookupError):
    code = "NOT_FOUND"
    status_code = 404


class RateLimitError(AppError):
    code = "RATE_LIMITED"
    status_code = 429


class StoreUnavailableError(AppError):
    """Raised when the document store (or identity client) was never initialized."""
    code = "STORE_UNAVAILABLE"
    status_code = 500


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def error_payload(message: str, code: Optional[str] = None, details: Any = None, request_id: Optional[str] = None) -> dict:
    payload = {"error": message}
    if code:
        payload["code"] = code
    if details is not None:
        payload["details"] = jsonable_encoder(details)
    if request_id:
        payload["request_id"] = request_id
    return payload


def _respond(status_code: int, payload: dict, rid: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = error_payload(exc.message, exc.code, exc.details, rid)
    logger = logging.getLogger("callmap")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={
            "request_id": rid,
            "path": request.url.path,
            "error_code": exc.code,
            "error_message": exc.message,
            "status": exc.status_code,
        },
    )
    return _respond(exc.status_code, payload, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "HTTP error"
    payload = error_payload(message, code, request_id=rid)
    logger = logging.getLogger("callmap")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = _respond(exc.status_code, payload, rid)
    for key, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[key] = value
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    logger = logging.getLogger("callmap")
    logger.warning(
        "validation.error",
        extra={"request_id": rid, "path": request.url.path, "error_code": ValidationError.code, "status": 400},
    )
    payload = error_payload("Validation failed", ValidationError.code, details, rid)
    return _respond(400, payload, rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("callmap")
    logger.error(
        "unhandled.exception",
        exc_info=exc,
        extra={"request_id": rid, "path": request.url.path, "error_code": AppError.code},
    )
    message = str(exc) or "Internal server error"
    payload = error_payload(message, AppError.code, request_id=rid)
    return _respond(500, payload, rid)
