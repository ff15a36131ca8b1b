# job_financials/main.py
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .domain.errors import FinancialsError, InvalidInput, NotFound, Unauthorized
from .logging_config import configure_logging
from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware
from .routers.budgets import router as budgets_router
from .routers.commissions import router as commissions_router
from .routers.costs import router as costs_router
from .routers.health import router as health_router
from .routers.invoices import router as invoices_router

API_PREFIX = "/api"

_STATUS_BY_ERROR: dict[type[FinancialsError], int] = {
    InvalidInput: 422,
    Unauthorized: 401,
    NotFound: 404,
}


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def _financials_error_handler(request: Request, exc: FinancialsError) -> JSONResponse:
    status = _STATUS_BY_ERROR.get(type(exc), 400)
    return JSONResponse(status_code=status, content={"detail": exc.to_dict()})


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Job Financials Engine",
        version=settings.engine_version,
    )

    # Request-ID first so every later log line carries it
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(FinancialsError, _financials_error_handler)

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(budgets_router, prefix=API_PREFIX)
    app.include_router(costs_router, prefix=API_PREFIX)
    app.include_router(invoices_router, prefix=API_PREFIX)
    app.include_router(commissions_router, prefix=API_PREFIX)
    return app


app = create_app()
