from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from scootpie.core.context import request_id_ctx

logger = logging.getLogger("scootpie.access")

_QUIET_PATHS = {"/healthz", "/readyz"}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id for log correlation and writes one access line per request."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_ctx.set(rid)
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
            response.headers["x-request-id"] = rid
            if request.url.path not in _QUIET_PATHS:
                logger.info(
                    "request_done method=%s path=%s status=%d ms=%d",
                    request.method,
                    request.url.path,
                    response.status_code,
                    int((time.perf_counter() - started) * 1000),
                )
            return response
        finally:
            request_id_ctx.reset(token)
