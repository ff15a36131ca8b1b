# job_financials/services/cost_ledger.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..auth import TenantContext, require_tenant
from ..domain.errors import InvalidInput
from ..domain.line_items import LABOR, MATERIAL, OTHER
from ..models import CostEvent
from .ownership import must_get_cost_event, must_get_job
from .recompute import RefreshOutcome, refresh_after_write

log = logging.getLogger("job_financials.cost_ledger")

COST_KINDS = (MATERIAL, LABOR, OTHER)

_EDITABLE = ("kind", "amount", "vendor", "external_ref", "note", "occurred_at")


@dataclass(frozen=True)
class LedgerWrite:
    event_id: int
    refresh: RefreshOutcome
    event: Optional[CostEvent] = None


def _kind(v: Any) -> str:
    k = str(v or "").strip().lower()
    if k not in COST_KINDS:
        raise InvalidInput(f"kind must be one of {', '.join(COST_KINDS)}", details={"kind": v})
    return k


def _amount(v: Any) -> float:
    if v is None or isinstance(v, bool):
        raise InvalidInput("amount must be a number")
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise InvalidInput("amount must be a number")
    if math.isnan(f) or math.isinf(f):
        raise InvalidInput("amount must be finite")
    if f < 0:
        raise InvalidInput("amount must be >= 0")
    return f


def record_cost_event(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    job_id: int,
    kind: str,
    amount: float,
    vendor: Optional[str] = None,
    external_ref: Optional[str] = None,
    note: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
) -> LedgerWrite:
    """Append one outlay to the job's ledger, then refresh CAPOUT from the full ledger."""
    ctx = require_tenant(ctx)
    tenant_id = int(ctx.tenant_id)
    must_get_job(db, tenant_id=tenant_id, job_id=job_id)

    now = datetime.utcnow()
    row = CostEvent(
        tenant_id=tenant_id,
        job_id=int(job_id),
        kind=_kind(kind),
        amount=_amount(amount),
        vendor=vendor,
        external_ref=external_ref,
        note=note,
        occurred_at=occurred_at or now,
        created_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)

    log.info(
        "cost event recorded",
        extra={"tenant_id": tenant_id, "job_id": int(job_id), "cost_event_id": int(row.id)},
    )
    outcome = refresh_after_write(db, ctx, job_id=job_id, trigger="cost_event.create")
    return LedgerWrite(event_id=int(row.id), refresh=outcome, event=row)


def update_cost_event(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    cost_event_id: int,
    **changes: Any,
) -> LedgerWrite:
    """Correct an existing ledger row (kind, amount, vendor, ref, note, occurred_at)."""
    ctx = require_tenant(ctx)
    tenant_id = int(ctx.tenant_id)
    row = must_get_cost_event(db, tenant_id=tenant_id, cost_event_id=cost_event_id)

    unknown = sorted(set(changes) - set(_EDITABLE))
    if unknown:
        raise InvalidInput(f"cannot edit {', '.join(unknown)}")

    # validate everything before touching the row
    if "kind" in changes:
        changes["kind"] = _kind(changes["kind"])
    if "amount" in changes:
        changes["amount"] = _amount(changes["amount"])
    if "occurred_at" in changes and changes["occurred_at"] is None:
        changes.pop("occurred_at")

    for k, v in changes.items():
        setattr(row, k, v)
    db.add(row)
    db.commit()
    db.refresh(row)

    log.info(
        "cost event updated",
        extra={"tenant_id": tenant_id, "job_id": int(row.job_id), "cost_event_id": int(row.id)},
    )
    outcome = refresh_after_write(db, ctx, job_id=int(row.job_id), trigger="cost_event.update")
    return LedgerWrite(event_id=int(row.id), refresh=outcome, event=row)


def delete_cost_event(db: Session, ctx: Optional[TenantContext], *, cost_event_id: int) -> LedgerWrite:
    ctx = require_tenant(ctx)
    tenant_id = int(ctx.tenant_id)
    row = must_get_cost_event(db, tenant_id=tenant_id, cost_event_id=cost_event_id)
    job_id = int(row.job_id)

    db.delete(row)
    db.commit()

    log.info(
        "cost event deleted",
        extra={"tenant_id": tenant_id, "job_id": job_id, "cost_event_id": int(cost_event_id)},
    )
    outcome = refresh_after_write(db, ctx, job_id=job_id, trigger="cost_event.delete")
    return LedgerWrite(event_id=int(cost_event_id), refresh=outcome)


def list_cost_events(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    job_id: int,
    kind: Optional[str] = None,
    limit: int = 500,
) -> list[CostEvent]:
    ctx = require_tenant(ctx)
    q = (
        select(CostEvent)
        .where(CostEvent.tenant_id == int(ctx.tenant_id))
        .where(CostEvent.job_id == int(job_id))
    )
    if kind:
        q = q.where(CostEvent.kind == _kind(kind))
    q = q.order_by(desc(CostEvent.occurred_at), desc(CostEvent.id)).limit(int(limit))
    return list(db.scalars(q).all())


def total_costs(db: Session, *, tenant_id: int, job_id: int) -> float:
    """Cash actually spent on the job: the whole ledger, every kind."""
    return float(
        db.scalar(
            select(func.coalesce(func.sum(CostEvent.amount), 0.0))
            .where(CostEvent.tenant_id == int(tenant_id))
            .where(CostEvent.job_id == int(job_id))
        )
        or 0.0
    )
