# job_financials/domain/errors.py
from __future__ import annotations

from typing import Any, Optional


class FinancialsError(Exception):
    """Base for errors raised by the job financials engine."""

    code = "financials_error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


class InvalidInput(FinancialsError):
    """Malformed line items, non-list payloads, bad plan configuration."""

    code = "invalid_input"


class Unauthorized(FinancialsError):
    """No tenant context could be resolved for the call."""

    code = "unauthorized"


class NotFound(FinancialsError):
    """Missing job, CAPOUT row, representative, plan or ledger entry."""

    code = "not_found"
