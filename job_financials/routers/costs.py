# job_financials/routers/costs.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import TenantContext, get_tenant_context
from ..db import get_db
from ..schemas import CostEventCreate, CostEventOut, CostEventUpdate, LedgerWriteOut
from ..services.cost_ledger import (
    LedgerWrite,
    delete_cost_event,
    list_cost_events,
    record_cost_event,
    update_cost_event,
)
from ..services.ownership import must_get_job

router = APIRouter(tags=["costs"])


def _out(w: LedgerWrite) -> LedgerWriteOut:
    return LedgerWriteOut(
        event_id=w.event_id,
        event=CostEventOut.model_validate(w.event) if w.event is not None else None,
        recomputed=w.refresh.recomputed,
        reason=w.refresh.reason,
        capout_summary=w.refresh.summary.to_dict() if w.refresh.summary is not None else None,
    )


@router.post("/jobs/{job_id}/costs", response_model=LedgerWriteOut, status_code=201)
def create_cost(
    job_id: int,
    payload: CostEventCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    w = record_cost_event(db, ctx, job_id=job_id, **payload.model_dump())
    return _out(w)


@router.get("/jobs/{job_id}/costs", response_model=list[CostEventOut])
def list_costs(
    job_id: int,
    kind: str | None = Query(default=None),
    limit: int = Query(default=500, ge=1, le=2000),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    must_get_job(db, tenant_id=ctx.tenant_id, job_id=job_id)
    return list_cost_events(db, ctx, job_id=job_id, kind=kind, limit=limit)


@router.patch("/costs/{cost_id}", response_model=LedgerWriteOut)
def update_cost(
    cost_id: int,
    payload: CostEventUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    w = update_cost_event(db, ctx, cost_event_id=cost_id, **payload.model_dump(exclude_unset=True))
    return _out(w)


@router.delete("/costs/{cost_id}", response_model=LedgerWriteOut)
def delete_cost(
    cost_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return _out(delete_cost_event(db, ctx, cost_event_id=cost_id))
