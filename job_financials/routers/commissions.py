# job_financials/routers/commissions.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import TenantContext, get_tenant_context, require_manager
from ..db import get_db
from ..domain.errors import NotFound
from ..schemas import (
    AssignmentCreate,
    AssignmentOut,
    CommissionBatchIn,
    CommissionPlanCreate,
    CommissionPlanOut,
    PlanActiveIn,
)
from ..services.commission_plans import assign_plan, create_plan, list_plans, resolve_active_plan, set_plan_active
from ..services.commission_service import (
    CommissionResult,
    calculate_commission,
    calculate_commissions,
    save_commission_result,
)
from ..services.ownership import must_get_rep

router = APIRouter(prefix="/commission", tags=["commission"])


@router.post("/plans", response_model=CommissionPlanOut, status_code=201)
def create_commission_plan(
    payload: CommissionPlanCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_manager),
):
    return create_plan(
        db,
        ctx,
        name=payload.name,
        plan_type=payload.plan_type,
        config=payload.config,
        payment_method=payload.payment_method,
        active=payload.active,
    )


@router.get("/plans", response_model=list[CommissionPlanOut])
def get_plans(
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return list_plans(db, ctx, active_only=active_only)


@router.post("/plans/{plan_id}/active", response_model=CommissionPlanOut)
def toggle_plan(
    plan_id: int,
    payload: PlanActiveIn,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_manager),
):
    return set_plan_active(db, ctx, plan_id=plan_id, active=payload.active)


@router.post("/assignments", response_model=AssignmentOut, status_code=201)
def create_assignment(
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_manager),
):
    return assign_plan(
        db,
        ctx,
        rep_id=payload.rep_id,
        plan_id=payload.plan_id,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
    )


@router.get("/reps/{rep_id}/plan", response_model=CommissionPlanOut | None)
def rep_active_plan(
    rep_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    must_get_rep(db, tenant_id=ctx.tenant_id, rep_id=rep_id)
    return resolve_active_plan(db, ctx, rep_id=rep_id)


@router.get("/jobs/{job_id}/reps/{rep_id}", response_model=dict)
def job_commission(
    job_id: int,
    rep_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    """
    Payout breakdown for one job/rep pair. Missing job or rep is reported in
    the body (ok=false) rather than as an HTTP error.
    """
    return calculate_commission(db, ctx, job_id=job_id, rep_id=rep_id).to_dict()


@router.post("/jobs/{job_id}/reps/{rep_id}/calculations", response_model=dict, status_code=201)
def record_job_commission(
    job_id: int,
    rep_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    """Compute and store a pending payout record; a missing job or rep is a 404."""
    res = calculate_commission(db, ctx, job_id=job_id, rep_id=rep_id)
    if not isinstance(res, CommissionResult):
        raise NotFound(res.message, details=res.to_dict())
    out = res.to_dict()
    out["calculation_id"] = int(save_commission_result(db, ctx, res).id)
    return out


@router.post("/batch", response_model=dict)
def commission_batch(
    payload: CommissionBatchIn,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    results = calculate_commissions(db, ctx, [(i.job_id, i.rep_id) for i in payload.items])

    items = []
    for res in results:
        out = res.to_dict()
        if payload.save and isinstance(res, CommissionResult):
            out["calculation_id"] = int(save_commission_result(db, ctx, res).id)
        items.append(out)

    ok = [r for r in results if isinstance(r, CommissionResult)]
    return {
        "items": items,
        "ok_count": len(ok),
        "error_count": len(results) - len(ok),
        "total_commission": round(sum(r.commission_amount for r in ok), 2),
    }
