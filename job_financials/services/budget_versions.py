# job_financials/services/budget_versions.py
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import case, desc, select
from sqlalchemy.orm import Session

from ..auth import TenantContext, require_tenant
from ..config import settings
from ..domain.budget_rollup import Summary, rollup
from ..domain.errors import InvalidInput
from ..domain.line_items import lines_to_payload, parse_line_items
from ..models import BudgetVersion
from .invoice_mirror import get_active_mirror
from .ownership import must_get_estimate, must_get_job

log = logging.getLogger("job_financials.budget")

PRECAP = "PRECAP"
CAPOUT = "CAPOUT"


def _loads(s: Optional[str], default: Any) -> Any:
    if not s:
        return default
    try:
        return json.loads(s)
    except (TypeError, ValueError):
        return default


def _dumps(v: Any) -> str:
    return json.dumps(v, sort_keys=True)


def version_summary(row: BudgetVersion) -> Summary:
    return Summary.from_dict(_loads(row.summary_json, {}))


def version_lines(row: BudgetVersion) -> list[dict[str, Any]]:
    v = _loads(row.lines_json, [])
    return v if isinstance(v, list) else []


def current_version(db: Session, *, tenant_id: int, job_id: int, kind: str) -> Optional[BudgetVersion]:
    """Most recent row of the given kind; ties on created_at go to the highest id."""
    return db.scalar(
        select(BudgetVersion)
        .where(BudgetVersion.tenant_id == int(tenant_id))
        .where(BudgetVersion.job_id == int(job_id))
        .where(BudgetVersion.kind == kind)
        .order_by(desc(BudgetVersion.created_at), desc(BudgetVersion.id))
        .limit(1)
    )


def current_capout(db: Session, *, tenant_id: int, job_id: int) -> Optional[BudgetVersion]:
    return current_version(db, tenant_id=tenant_id, job_id=job_id, kind=CAPOUT)


def current_precap(db: Session, *, tenant_id: int, job_id: int) -> Optional[BudgetVersion]:
    return current_version(db, tenant_id=tenant_id, job_id=job_id, kind=PRECAP)


def create_initial_versions(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    job_id: int,
    lines: Any,
    overhead: float = 0.0,
    commission_allowance: float = 0.0,
    misc: float = 0.0,
    estimate_id: Optional[int] = None,
) -> tuple[int, int]:
    """
    Freeze the approved line items into a PRECAP baseline and open its live
    CAPOUT twin. Both rows share the same lines and the same initial summary.

    An active invoice mirror for the job overrides the computed sell price.
    Validation happens before anything is written.
    """
    ctx = require_tenant(ctx)
    tenant_id = int(ctx.tenant_id)

    must_get_job(db, tenant_id=tenant_id, job_id=job_id)
    if estimate_id is not None:
        est = must_get_estimate(db, tenant_id=tenant_id, estimate_id=estimate_id)
        if int(est.job_id) != int(job_id):
            raise InvalidInput("estimate belongs to a different job", details={"estimate_id": estimate_id})

    typed = parse_line_items(lines)

    mirror = get_active_mirror(db, tenant_id=tenant_id, job_id=job_id)
    sell_override = float(mirror.total_amount) if mirror is not None else None

    summary = rollup(
        typed,
        overhead=overhead,
        commission_allowance=commission_allowance,
        misc=misc,
        sell_override=sell_override,
        places=settings.money_places,
    )

    if current_capout(db, tenant_id=tenant_id, job_id=job_id) is not None:
        log.warning(
            "budget versions already exist; new pair supersedes them",
            extra={"tenant_id": tenant_id, "job_id": int(job_id)},
        )

    now = datetime.utcnow()
    lines_json = _dumps(lines_to_payload(typed))
    summary_json = _dumps(summary.to_dict())

    precap = BudgetVersion(
        tenant_id=tenant_id,
        job_id=int(job_id),
        kind=PRECAP,
        estimate_id=estimate_id,
        lines_json=lines_json,
        summary_json=summary_json,
        locked=True,
        created_at=now,
        updated_at=now,
    )
    capout = BudgetVersion(
        tenant_id=tenant_id,
        job_id=int(job_id),
        kind=CAPOUT,
        estimate_id=estimate_id,
        lines_json=lines_json,
        summary_json=summary_json,
        locked=False,
        created_at=now,
        updated_at=now,
    )
    db.add(precap)
    db.add(capout)
    db.commit()
    db.refresh(precap)
    db.refresh(capout)

    log.info(
        "budget versions created",
        extra={
            "tenant_id": tenant_id,
            "job_id": int(job_id),
            "sell_price": summary.sell_price,
            "invoice_override": sell_override is not None,
        },
    )
    return int(precap.id), int(capout.id)


def create_versions_from_estimate(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    estimate_id: int,
    overhead: Optional[float] = None,
    commission_allowance: Optional[float] = None,
    misc: Optional[float] = None,
) -> tuple[int, int]:
    """
    Job approval: snapshot the estimate's stored line items into a budget pair
    and mark the estimate approved. Allowances default to the estimate's own.
    """
    ctx = require_tenant(ctx)
    est = must_get_estimate(db, tenant_id=int(ctx.tenant_id), estimate_id=estimate_id)

    lines = _loads(est.line_items_json, None)
    if lines is None:
        raise InvalidInput("estimate has no line items", details={"estimate_id": estimate_id})

    # approval rides on the same commit as the version pair
    est.status = "approved"
    est.approved_at = datetime.utcnow()
    db.add(est)
    try:
        return create_initial_versions(
            db,
            ctx,
            job_id=int(est.job_id),
            lines=lines,
            overhead=est.overhead_amount if overhead is None else overhead,
            commission_allowance=est.commission_allowance if commission_allowance is None else commission_allowance,
            misc=est.misc_amount if misc is None else misc,
            estimate_id=int(est.id),
        )
    except Exception:
        db.rollback()
        raise


def get_versions(db: Session, ctx: Optional[TenantContext], *, job_id: int) -> list[BudgetVersion]:
    """All versions for a job in the caller's tenant: PRECAP first, newest first within a kind."""
    ctx = require_tenant(ctx)
    kind_order = case((BudgetVersion.kind == PRECAP, 0), else_=1)
    q = (
        select(BudgetVersion)
        .where(BudgetVersion.tenant_id == int(ctx.tenant_id))
        .where(BudgetVersion.job_id == int(job_id))
        .order_by(kind_order, desc(BudgetVersion.created_at), desc(BudgetVersion.id))
    )
    return list(db.scalars(q).all())
