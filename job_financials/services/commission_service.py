# job_financials/services/commission_service.py
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Union

from sqlalchemy import case, desc, select
from sqlalchemy.orm import Session

from ..auth import TenantContext, require_tenant
from ..config import settings
from ..domain.commission import compute_commission
from ..domain.errors import InvalidInput, NotFound
from ..models import CommissionCalculation, Estimate, Job, SalesRep
from .budget_versions import current_capout, version_summary
from .commission_plans import plan_config, resolve_active_plan
from .cost_ledger import total_costs
from .invoice_mirror import get_active_mirror

log = logging.getLogger("job_financials.commission")

JOB_NOT_FOUND = "job_not_found"
REP_NOT_FOUND = "rep_not_found"


@dataclass(frozen=True)
class CommissionResult:
    job_id: int
    rep_id: int
    contract_value: float
    contract_source: str  # capout | invoice_mirror | estimate | none
    total_costs: float
    rep_overhead: float
    gross_profit: float
    net_profit: float
    margin_pct: Optional[float]
    commission_rate: float
    commission_amount: float
    company_profit: float
    plan_id: Optional[int]
    plan_type: Optional[str]
    computed_at: datetime
    no_active_plan: bool = False
    below_minimum_sale: bool = False
    capped: bool = False

    ok = True

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["ok"] = True
        out["computed_at"] = self.computed_at.isoformat()
        return out


@dataclass(frozen=True)
class CommissionError:
    """A per-job failure returned instead of raised, so batch callers keep going."""

    code: str
    message: str
    job_id: int
    rep_id: int

    ok = False

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["ok"] = False
        return out


CommissionOutcome = Union[CommissionResult, CommissionError]


def contract_value_for_job(db: Session, *, tenant_id: int, job_id: int) -> tuple[float, str]:
    """
    The job's current sell price: live CAPOUT first, then the mirrored
    invoice, then the estimate's selling price (approved estimates win).
    """
    capout = current_capout(db, tenant_id=tenant_id, job_id=job_id)
    if capout is not None:
        return float(version_summary(capout).sell_price), "capout"

    mirror = get_active_mirror(db, tenant_id=tenant_id, job_id=job_id)
    if mirror is not None:
        return float(mirror.total_amount), "invoice_mirror"

    approved_first = case((Estimate.status == "approved", 0), else_=1)
    est = db.scalar(
        select(Estimate)
        .where(Estimate.tenant_id == int(tenant_id))
        .where(Estimate.job_id == int(job_id))
        .order_by(approved_first, desc(Estimate.created_at), desc(Estimate.id))
        .limit(1)
    )
    if est is not None:
        return float(est.selling_price or 0.0), "estimate"

    return 0.0, "none"


def calculate_commission(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    job_id: int,
    rep_id: int,
    at: Optional[datetime] = None,
) -> CommissionOutcome:
    """
    Derive a rep's payout for a job from its financials and the rep's active plan.

    Missing job/rep come back as CommissionError values; a rep without a plan
    gets a zero-amount result flagged no_active_plan.
    """
    ctx = require_tenant(ctx)
    tenant_id = int(ctx.tenant_id)

    job = db.scalar(select(Job).where(Job.id == int(job_id), Job.tenant_id == tenant_id))
    if job is None:
        return CommissionError(code=JOB_NOT_FOUND, message="job not found", job_id=int(job_id), rep_id=int(rep_id))

    rep = db.scalar(select(SalesRep).where(SalesRep.id == int(rep_id), SalesRep.tenant_id == tenant_id))
    if rep is None:
        return CommissionError(
            code=REP_NOT_FOUND, message="representative not found", job_id=int(job_id), rep_id=int(rep_id)
        )

    contract, source = contract_value_for_job(db, tenant_id=tenant_id, job_id=int(job_id))
    costs = total_costs(db, tenant_id=tenant_id, job_id=int(job_id))

    plan = resolve_active_plan(db, ctx, rep_id=int(rep_id), at=at)
    cfg = plan_config(plan) if plan is not None else None

    b = compute_commission(
        contract_value=contract,
        total_costs=costs,
        overhead_rate=float(rep.overhead_rate or 0.0),
        plan_type=str(plan.plan_type) if plan is not None else None,
        config=cfg,
        places=settings.money_places,
    )

    result = CommissionResult(
        job_id=int(job_id),
        rep_id=int(rep_id),
        contract_value=b.contract_value,
        contract_source=source,
        total_costs=b.total_costs,
        rep_overhead=b.rep_overhead,
        gross_profit=b.gross_profit,
        net_profit=b.net_profit,
        margin_pct=b.margin_pct,
        commission_rate=b.commission_rate,
        commission_amount=b.commission_amount,
        company_profit=b.company_profit,
        plan_id=int(plan.id) if plan is not None else None,
        plan_type=str(plan.plan_type) if plan is not None else None,
        computed_at=datetime.utcnow(),
        no_active_plan=plan is None,
        below_minimum_sale=b.below_minimum_sale,
        capped=b.capped,
    )

    log.info(
        "commission calculated",
        extra={
            "tenant_id": tenant_id,
            "job_id": int(job_id),
            "rep_id": int(rep_id),
            "plan_id": result.plan_id,
            "commission_amount": result.commission_amount,
        },
    )
    return result


def calculate_commissions(
    db: Session,
    ctx: Optional[TenantContext],
    pairs: Iterable[tuple[int, int]],
) -> list[CommissionOutcome]:
    """Batch report over (job_id, rep_id) pairs; individual failures do not stop the run."""
    ctx = require_tenant(ctx)
    return [calculate_commission(db, ctx, job_id=int(j), rep_id=int(r)) for j, r in pairs]


def save_commission_result(
    db: Session,
    ctx: Optional[TenantContext],
    result: CommissionOutcome,
) -> CommissionCalculation:
    """Persist a computed result as a pending payout record."""
    ctx = require_tenant(ctx)
    if not isinstance(result, CommissionResult):
        raise InvalidInput("only successful commission results can be saved", details=result.to_dict())

    tenant_id = int(ctx.tenant_id)
    if db.scalar(select(Job.id).where(Job.id == result.job_id, Job.tenant_id == tenant_id)) is None:
        raise NotFound("job not found", details={"job_id": result.job_id})

    row = CommissionCalculation(
        tenant_id=tenant_id,
        job_id=result.job_id,
        rep_id=result.rep_id,
        plan_id=result.plan_id,
        commission_amount=result.commission_amount,
        status="pending",
        details_json=json.dumps(result.to_dict(), sort_keys=True),
        calculated_at=result.computed_at,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
