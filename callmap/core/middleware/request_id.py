import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from callmap.core.logging import LOGGER_NAME, latency_bucket_ms, request_id_ctx_var

REQUEST_ID_HEADER = "x-request-id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of a request.

    An incoming ``X-Request-Id`` is reused, otherwise a uuid4 is minted. The id
    is exposed on ``request.state.request_id``, echoed on the response and
    stamped onto the ``request.complete`` log line.
    """

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name
        self.logger = logging.getLogger(LOGGER_NAME)

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.logger.info(
                "request.complete",
                extra={
                    "request_id": rid,
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms(elapsed_ms),
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(token)
