# job_financials/middleware/structured_logging.py
from __future__ import annotations

import json
import logging
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("job_financials.request")


def _json_log(payload: dict) -> None:
    # One JSON line per request.
    try:
        log.info(json.dumps(payload, default=str))
    except (TypeError, ValueError):
        log.info(str(payload))


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emits one structured log line per request with:
      request_id, tenant_slug, user_email, method, path, status_code, latency_ms

    Relies on RequestIDMiddleware having set request.state.request_id and
    request.state.tenant_slug.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.time()

        user_email = request.headers.get(settings.header_user_email)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            request_id: Optional[str] = getattr(request.state, "request_id", None)
            tenant_slug: Optional[str] = getattr(request.state, "tenant_slug", None)
            latency_ms = int((time.time() - t0) * 1000)

            _json_log(
                {
                    "event": "http_request",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "query": str(request.url.query) if request.url.query else "",
                    "status_code": status_code,
                    "latency_ms": latency_ms,
                    "tenant_slug": tenant_slug,
                    "user_email": user_email,
                }
            )
