# job_financials/services/recompute.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import TenantContext, require_tenant
from ..config import settings
from ..domain.budget_rollup import Summary, aggregate_costs, apply_actuals
from ..domain.errors import FinancialsError, NotFound
from ..models import CostEvent
from .budget_versions import current_capout, current_precap, version_summary
from .invoice_mirror import get_active_mirror

log = logging.getLogger("job_financials.recompute")


@dataclass(frozen=True)
class RefreshOutcome:
    """What happened to CAPOUT after a ledger or mirror write."""

    summary: Optional[Summary]
    recomputed: bool
    reason: Optional[str] = None  # no_capout | error


def job_cost_events(db: Session, *, tenant_id: int, job_id: int) -> list[CostEvent]:
    return list(
        db.scalars(
            select(CostEvent)
            .where(CostEvent.tenant_id == int(tenant_id))
            .where(CostEvent.job_id == int(job_id))
            .order_by(CostEvent.id)
        ).all()
    )


def refresh_capout(db: Session, ctx: Optional[TenantContext], *, job_id: int) -> Summary:
    """
    Re-aggregate the job's full cost ledger (and invoice mirror) into the
    current CAPOUT summary, overwriting it in place.

    Sell price comes from the active mirror when one exists, otherwise CAPOUT
    keeps its own. Overhead and commission allowances are taken from the
    frozen PRECAP so they never drift after approval.
    """
    ctx = require_tenant(ctx)
    tenant_id = int(ctx.tenant_id)

    capout = current_capout(db, tenant_id=tenant_id, job_id=job_id)
    if capout is None:
        raise NotFound("no CAPOUT budget for job", details={"job_id": job_id})

    current = version_summary(capout)

    precap = current_precap(db, tenant_id=tenant_id, job_id=job_id)
    baseline = version_summary(precap) if precap is not None else current

    actual = aggregate_costs(job_cost_events(db, tenant_id=tenant_id, job_id=job_id), settings.money_places)

    mirror = get_active_mirror(db, tenant_id=tenant_id, job_id=job_id)
    sell_price = float(mirror.total_amount) if mirror is not None else current.sell_price

    refreshed = apply_actuals(
        current,
        actual=actual,
        sell_price=sell_price,
        frozen_overhead=baseline.planned.overhead,
        frozen_commission=baseline.planned.commission,
        places=settings.money_places,
    )

    capout.summary_json = json.dumps(refreshed.to_dict(), sort_keys=True)
    capout.updated_at = datetime.utcnow()
    db.add(capout)
    db.commit()

    log.info(
        "capout refreshed",
        extra={"tenant_id": tenant_id, "job_id": int(job_id), "profit": refreshed.profit},
    )
    return refreshed


def refresh_after_write(db: Session, ctx: TenantContext, *, job_id: int, trigger: str) -> RefreshOutcome:
    """
    Run refresh_capout as the second half of a ledger/mirror write.

    The triggering write is already committed. A job without a budget yet is
    not an error; a store failure or an unreadable stored summary is logged
    and reported, and leaves the written row in place for the next refresh
    to pick up.
    """
    try:
        summary = refresh_capout(db, ctx, job_id=job_id)
    except NotFound:
        log.info(
            "no capout to refresh",
            extra={"tenant_id": int(ctx.tenant_id), "job_id": int(job_id), "trigger": trigger},
        )
        return RefreshOutcome(summary=None, recomputed=False, reason="no_capout")
    except (SQLAlchemyError, FinancialsError, ValueError):
        db.rollback()
        log.exception(
            "capout refresh failed",
            extra={"tenant_id": int(ctx.tenant_id), "job_id": int(job_id), "trigger": trigger},
        )
        return RefreshOutcome(summary=None, recomputed=False, reason="error")
    return RefreshOutcome(summary=summary, recomputed=True)
