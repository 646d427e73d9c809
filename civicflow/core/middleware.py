import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from civicflow.core.logging import request_id_var

logger = logging.getLogger("civicflow.access")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id (taken from the incoming header when the
    caller sends one), echoes it on the response and writes one access line.

    The id is also bound to `request_id_var`, so every log record emitted
    while the request is handled carries it.
    """

    def __init__(self, app, header_name: str = "X-Request-Id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get(self.header_name) or uuid.uuid4().hex
        request.state.request_id = rid
        token = request_id_var.set(rid)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers[self.header_name] = rid

        principal = getattr(request.state, "principal", None)
        logger.info(
            "request completed",
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "profile_id": principal.profile_id if principal else None,
            },
        )
        return response
