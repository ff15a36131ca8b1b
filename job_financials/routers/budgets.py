# job_financials/routers/budgets.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import TenantContext, get_tenant_context
from ..db import get_db
from ..models import BudgetVersion
from ..schemas import BudgetCreate, BudgetCreatedOut, BudgetVersionOut, EstimateApprove, SummaryOut
from ..services.budget_versions import create_initial_versions, create_versions_from_estimate, get_versions
from ..services.ownership import must_get_job
from ..services.recompute import refresh_capout

router = APIRouter(tags=["budget"])


def _created(db: Session, ids: tuple[int, int]) -> BudgetCreatedOut:
    precap_id, capout_id = ids
    rows = [db.get(BudgetVersion, precap_id), db.get(BudgetVersion, capout_id)]
    return BudgetCreatedOut(
        precap_id=precap_id,
        capout_id=capout_id,
        versions=[BudgetVersionOut.model_validate(r) for r in rows if r is not None],
    )


@router.post("/jobs/{job_id}/budget", response_model=BudgetCreatedOut, status_code=201)
def create_budget(
    job_id: int,
    payload: BudgetCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    ids = create_initial_versions(
        db,
        ctx,
        job_id=job_id,
        lines=payload.lines,
        overhead=payload.overhead,
        commission_allowance=payload.commission_allowance,
        misc=payload.misc,
        estimate_id=payload.estimate_id,
    )
    return _created(db, ids)


@router.post("/estimates/{estimate_id}/approve", response_model=BudgetCreatedOut, status_code=201)
def approve_estimate(
    estimate_id: int,
    payload: EstimateApprove | None = None,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    payload = payload or EstimateApprove()
    ids = create_versions_from_estimate(
        db,
        ctx,
        estimate_id=estimate_id,
        overhead=payload.overhead,
        commission_allowance=payload.commission_allowance,
        misc=payload.misc,
    )
    return _created(db, ids)


@router.get("/jobs/{job_id}/budget", response_model=list[BudgetVersionOut])
def list_budget_versions(
    job_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    must_get_job(db, tenant_id=ctx.tenant_id, job_id=job_id)
    return [BudgetVersionOut.model_validate(r) for r in get_versions(db, ctx, job_id=job_id)]


@router.post("/jobs/{job_id}/budget/refresh", response_model=SummaryOut)
def refresh_budget(
    job_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    """Manual re-run of the CAPOUT recompute (safe to repeat)."""
    must_get_job(db, tenant_id=ctx.tenant_id, job_id=job_id)
    return refresh_capout(db, ctx, job_id=job_id).to_dict()
