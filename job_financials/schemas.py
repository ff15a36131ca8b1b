# job_financials/schemas.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _parse_json_attr(data: Any, src: str, dst: str, default: Any) -> Any:
    """
    DB rows store *_json TEXT columns while the API exposes parsed objects.
    Accepts dicts or ORM rows and never throws on bad JSON.
    """
    if isinstance(data, dict):
        if dst in data and not isinstance(data[dst], str):
            return data
        raw = data.get(src)
        out = dict(data)
    else:
        raw = getattr(data, src, None)
        out = {k: getattr(data, k) for k in data.__mapper__.columns.keys()} if hasattr(data, "__mapper__") else {}
    try:
        out[dst] = json.loads(raw) if isinstance(raw, str) and raw else default
    except ValueError:
        out[dst] = default
    return out


# -------------------- Summary --------------------

class PlannedOut(BaseModel):
    materials: float = 0.0
    labor: float = 0.0
    overhead: float = 0.0
    commission: float = 0.0
    misc: float = 0.0
    subtotal: float = 0.0


class ActualOut(BaseModel):
    materials: float = 0.0
    labor: float = 0.0
    misc: float = 0.0


class SummaryOut(BaseModel):
    sell_price: float
    planned: PlannedOut
    actual: ActualOut
    profit: float
    margin_pct: Optional[float] = None


# -------------------- Budget versions --------------------

class BudgetCreate(BaseModel):
    # validated by the line-item parser so malformed payloads surface as invalid_input
    lines: Any
    overhead: float = 0.0
    commission_allowance: float = 0.0
    misc: float = 0.0
    estimate_id: Optional[int] = None


class EstimateApprove(BaseModel):
    overhead: Optional[float] = None
    commission_allowance: Optional[float] = None
    misc: Optional[float] = None


class BudgetVersionOut(BaseModel):
    id: int
    job_id: int
    kind: str
    estimate_id: Optional[int] = None
    locked: bool
    lines: List[dict] = Field(default_factory=list)
    summary: SummaryOut
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_json(cls, data: Any) -> Any:
        data = _parse_json_attr(data, "lines_json", "lines", [])
        return _parse_json_attr(data, "summary_json", "summary", {})


class BudgetCreatedOut(BaseModel):
    precap_id: int
    capout_id: int
    versions: List[BudgetVersionOut]


# -------------------- Cost ledger --------------------

class CostEventCreate(BaseModel):
    kind: str
    amount: float
    vendor: Optional[str] = None
    external_ref: Optional[str] = None
    note: Optional[str] = None
    occurred_at: Optional[datetime] = None


class CostEventUpdate(BaseModel):
    kind: Optional[str] = None
    amount: Optional[float] = None
    vendor: Optional[str] = None
    external_ref: Optional[str] = None
    note: Optional[str] = None
    occurred_at: Optional[datetime] = None


class CostEventOut(BaseModel):
    id: int
    job_id: int
    kind: str
    amount: float
    vendor: Optional[str] = None
    external_ref: Optional[str] = None
    note: Optional[str] = None
    occurred_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerWriteOut(BaseModel):
    event_id: int
    event: Optional[CostEventOut] = None
    recomputed: bool
    reason: Optional[str] = None
    capout_summary: Optional[SummaryOut] = None


# -------------------- Invoice mirror --------------------

class InvoiceMirrorUpsert(BaseModel):
    external_invoice_id: str
    total_amount: float
    balance: Optional[float] = None
    external_status: Optional[str] = None


class InvoiceMirrorOut(BaseModel):
    id: int
    job_id: int
    external_invoice_id: str
    total_amount: float
    balance: float
    external_status: Optional[str] = None
    active: bool
    last_pulled_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MirrorSyncOut(BaseModel):
    mirror: InvoiceMirrorOut
    created: bool
    recomputed: bool
    reason: Optional[str] = None
    capout_summary: Optional[SummaryOut] = None


# -------------------- Commission --------------------

class CommissionPlanCreate(BaseModel):
    name: str
    plan_type: str
    config: dict = Field(default_factory=dict)
    payment_method: str = "first_check"
    active: bool = True


class CommissionPlanOut(BaseModel):
    id: int
    name: str
    plan_type: str
    config: dict = Field(default_factory=dict)
    payment_method: str
    active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_config(cls, data: Any) -> Any:
        return _parse_json_attr(data, "config_json", "config", {})


class PlanActiveIn(BaseModel):
    active: bool


class AssignmentCreate(BaseModel):
    rep_id: int
    plan_id: int
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None


class AssignmentOut(BaseModel):
    id: int
    rep_id: int
    plan_id: int
    effective_from: datetime
    effective_to: Optional[datetime] = None
    active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommissionPair(BaseModel):
    job_id: int
    rep_id: int


class CommissionBatchIn(BaseModel):
    items: List[CommissionPair]
    save: bool = False
