# job_financials/services/ownership.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.errors import NotFound
from ..models import CommissionPlan, CostEvent, Estimate, Job, SalesRep


def must_get_job(db: Session, *, tenant_id: int, job_id: int) -> Job:
    row = db.scalar(select(Job).where(Job.id == int(job_id), Job.tenant_id == int(tenant_id)))
    if not row:
        raise NotFound("job not found", details={"job_id": job_id})
    return row


def must_get_rep(db: Session, *, tenant_id: int, rep_id: int) -> SalesRep:
    row = db.scalar(select(SalesRep).where(SalesRep.id == int(rep_id), SalesRep.tenant_id == int(tenant_id)))
    if not row:
        raise NotFound("representative not found", details={"rep_id": rep_id})
    return row


def must_get_estimate(db: Session, *, tenant_id: int, estimate_id: int) -> Estimate:
    row = db.scalar(select(Estimate).where(Estimate.id == int(estimate_id), Estimate.tenant_id == int(tenant_id)))
    if not row:
        raise NotFound("estimate not found", details={"estimate_id": estimate_id})
    return row


def must_get_cost_event(db: Session, *, tenant_id: int, cost_event_id: int) -> CostEvent:
    row = db.scalar(
        select(CostEvent).where(CostEvent.id == int(cost_event_id), CostEvent.tenant_id == int(tenant_id))
    )
    if not row:
        raise NotFound("cost event not found", details={"cost_event_id": cost_event_id})
    return row


def must_get_plan(db: Session, *, tenant_id: int, plan_id: int) -> CommissionPlan:
    row = db.scalar(
        select(CommissionPlan).where(CommissionPlan.id == int(plan_id), CommissionPlan.tenant_id == int(tenant_id))
    )
    if not row:
        raise NotFound("commission plan not found", details={"plan_id": plan_id})
    return row
