# job_financials/logging_config.py
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .config import settings
from .middleware.request_id import get_request_id, get_tenant_slug

# Structured extras copied onto the JSON line when a caller passes them via `extra=`.
STRUCTURED_KEYS = (
    "tenant_id",
    "user_id",
    "job_id",
    "rep_id",
    "plan_id",
    "cost_event_id",
    "trigger",
    "sell_price",
    "profit",
    "invoice_override",
    "previous_invoice",
    "commission_amount",
)


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.
    Includes request_id and tenant_slug (if present), level, message, logger, timestamp, exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        rid = get_request_id()
        if rid:
            payload["request_id"] = rid

        slug = get_tenant_slug()
        if slug:
            payload["tenant_slug"] = slug

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for k in STRUCTURED_KEYS:
            if hasattr(record, k):
                payload[k] = getattr(record, k)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    level = (os.getenv("LOG_LEVEL") or settings.log_level or "INFO").upper()

    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers (important for uvicorn reload)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())

    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel((os.getenv("SQL_LOG_LEVEL") or settings.sql_log_level).upper())
