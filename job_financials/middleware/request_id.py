# job_financials/middleware/request_id.py
from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
tenant_slug_ctx: ContextVar[str | None] = ContextVar("tenant_slug", default=None)


def get_request_id() -> str | None:
    return request_id_ctx.get()


def get_tenant_slug() -> str | None:
    return tenant_slug_ctx.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id and the tenant slug it claims.

    Both land in ContextVars so every service log line (budget writes,
    recomputes, commission runs) carries them, and on request.state for the
    access-log middleware. The response echoes the request id and, when one
    was sent, the tenant slug.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        slug = (request.headers.get(settings.header_tenant_slug) or "").strip() or None

        request.state.request_id = rid
        request.state.tenant_slug = slug
        rid_token = request_id_ctx.set(rid)
        slug_token = tenant_slug_ctx.set(slug)
        try:
            resp = await call_next(request)
        finally:
            tenant_slug_ctx.reset(slug_token)
            request_id_ctx.reset(rid_token)

        resp.headers[REQUEST_ID_HEADER] = rid
        if slug:
            resp.headers[settings.header_tenant_slug] = slug
        return resp
