# job_financials/services/commission_plans.py
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session

from ..auth import TenantContext, require_tenant
from ..config import settings
from ..domain.commission import PlanConfig
from ..domain.errors import InvalidInput
from ..models import CommissionAssignment, CommissionPlan
from .ownership import must_get_plan, must_get_rep

log = logging.getLogger("job_financials.commission_plans")

PAYMENT_METHODS = ("first_check", "first_and_last_check", "final_check")


def _loads(s: Optional[str], default: Any) -> Any:
    if not s:
        return default
    try:
        return json.loads(s)
    except (TypeError, ValueError):
        return default


def plan_config(plan: CommissionPlan) -> PlanConfig:
    return PlanConfig.from_dict(
        str(plan.plan_type),
        _loads(plan.config_json, {}),
        default_tier_base=settings.commission_tier_base,
    )


def create_plan(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    name: str,
    plan_type: str,
    config: Optional[dict[str, Any]] = None,
    payment_method: str = "first_check",
    active: bool = True,
) -> CommissionPlan:
    ctx = require_tenant(ctx)
    if not str(name or "").strip():
        raise InvalidInput("plan name is required")
    if payment_method not in PAYMENT_METHODS:
        raise InvalidInput(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")

    cfg = PlanConfig.from_dict(plan_type, config or {}, default_tier_base=settings.commission_tier_base)

    row = CommissionPlan(
        tenant_id=int(ctx.tenant_id),
        name=str(name).strip(),
        plan_type=plan_type,
        config_json=json.dumps(cfg.to_dict(), sort_keys=True),
        payment_method=payment_method,
        active=bool(active),
        created_at=datetime.utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    log.info("commission plan created", extra={"tenant_id": int(ctx.tenant_id), "plan_id": int(row.id)})
    return row


def set_plan_active(db: Session, ctx: Optional[TenantContext], *, plan_id: int, active: bool) -> CommissionPlan:
    ctx = require_tenant(ctx)
    row = must_get_plan(db, tenant_id=int(ctx.tenant_id), plan_id=plan_id)
    row.active = bool(active)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_plans(db: Session, ctx: Optional[TenantContext], *, active_only: bool = False) -> list[CommissionPlan]:
    ctx = require_tenant(ctx)
    q = select(CommissionPlan).where(CommissionPlan.tenant_id == int(ctx.tenant_id))
    if active_only:
        q = q.where(CommissionPlan.active.is_(True))
    return list(db.scalars(q.order_by(desc(CommissionPlan.created_at), desc(CommissionPlan.id))).all())


def assign_plan(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    rep_id: int,
    plan_id: int,
    effective_from: Optional[datetime] = None,
    effective_to: Optional[datetime] = None,
) -> CommissionAssignment:
    """
    Give a rep a plan. Older assignments stay as history; the resolver picks
    the most recent one that is in effect.
    """
    ctx = require_tenant(ctx)
    tenant_id = int(ctx.tenant_id)
    must_get_rep(db, tenant_id=tenant_id, rep_id=rep_id)
    must_get_plan(db, tenant_id=tenant_id, plan_id=plan_id)

    now = datetime.utcnow()
    start = effective_from or now
    if effective_to is not None and effective_to <= start:
        raise InvalidInput("effective_to must be after effective_from")

    row = CommissionAssignment(
        tenant_id=tenant_id,
        rep_id=int(rep_id),
        plan_id=int(plan_id),
        effective_from=start,
        effective_to=effective_to,
        active=True,
        created_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    log.info(
        "commission plan assigned",
        extra={"tenant_id": tenant_id, "rep_id": int(rep_id), "plan_id": int(plan_id)},
    )
    return row


def resolve_active_plan(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    rep_id: int,
    at: Optional[datetime] = None,
) -> Optional[CommissionPlan]:
    """
    The plan governing a rep right now (or at `at`): the most recently created
    assignment that is active, points at an active plan, and whose window
    [effective_from, effective_to) covers the moment. None when there is none.
    """
    ctx = require_tenant(ctx)
    when = at or datetime.utcnow()

    q = (
        select(CommissionPlan)
        .join(CommissionAssignment, CommissionAssignment.plan_id == CommissionPlan.id)
        .where(CommissionAssignment.tenant_id == int(ctx.tenant_id))
        .where(CommissionPlan.tenant_id == int(ctx.tenant_id))
        .where(CommissionAssignment.rep_id == int(rep_id))
        .where(CommissionAssignment.active.is_(True))
        .where(CommissionPlan.active.is_(True))
        .where(CommissionAssignment.effective_from <= when)
        .where(or_(CommissionAssignment.effective_to.is_(None), CommissionAssignment.effective_to > when))
        .order_by(desc(CommissionAssignment.created_at), desc(CommissionAssignment.id))
        .limit(1)
    )
    return db.scalar(q)
