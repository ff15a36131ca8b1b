# job_financials/services/invoice_mirror.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..auth import TenantContext, require_tenant
from ..domain.errors import InvalidInput
from ..models import InvoiceMirror
from .ownership import must_get_job

if TYPE_CHECKING:
    from .recompute import RefreshOutcome

log = logging.getLogger("job_financials.invoice_mirror")


@dataclass(frozen=True)
class MirrorSync:
    mirror: InvoiceMirror
    created: bool
    refresh: "RefreshOutcome"


def get_active_mirror(db: Session, *, tenant_id: int, job_id: int) -> Optional[InvoiceMirror]:
    return db.scalar(
        select(InvoiceMirror)
        .where(InvoiceMirror.tenant_id == int(tenant_id))
        .where(InvoiceMirror.job_id == int(job_id))
        .where(InvoiceMirror.active.is_(True))
        .order_by(desc(InvoiceMirror.last_pulled_at), desc(InvoiceMirror.id))
        .limit(1)
    )


def _amount(name: str, v: Optional[float]) -> float:
    if v is None or isinstance(v, bool):
        raise InvalidInput(f"{name} must be a number")
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number")
    if math.isnan(f) or math.isinf(f):
        raise InvalidInput(f"{name} must be finite")
    return f


def sync_invoice_mirror(
    db: Session,
    ctx: Optional[TenantContext],
    *,
    job_id: int,
    external_invoice_id: str,
    total_amount: float,
    balance: Optional[float] = None,
    external_status: Optional[str] = None,
    pulled_at: Optional[datetime] = None,
) -> MirrorSync:
    """
    Upsert the job's cached copy of its external invoice, then refresh CAPOUT.

    One active mapping per job: pulling the same invoice id updates it in
    place, a different invoice id retires the old mapping.
    """
    from .recompute import refresh_after_write

    ctx = require_tenant(ctx)
    tenant_id = int(ctx.tenant_id)
    must_get_job(db, tenant_id=tenant_id, job_id=job_id)

    ext_id = str(external_invoice_id or "").strip()
    if not ext_id:
        raise InvalidInput("external_invoice_id is required")
    total = _amount("total_amount", total_amount)
    if total < 0:
        raise InvalidInput("total_amount must be >= 0")
    bal = _amount("balance", balance) if balance is not None else total

    now = pulled_at or datetime.utcnow()
    existing = get_active_mirror(db, tenant_id=tenant_id, job_id=job_id)

    created = False
    if existing is not None and existing.external_invoice_id == ext_id:
        row = existing
    else:
        if existing is not None:
            existing.active = False
            db.add(existing)
            log.info(
                "invoice mapping replaced",
                extra={"tenant_id": tenant_id, "job_id": int(job_id), "previous_invoice": existing.external_invoice_id},
            )
        row = InvoiceMirror(tenant_id=tenant_id, job_id=int(job_id), external_invoice_id=ext_id, created_at=now)
        created = True

    row.total_amount = total
    row.balance = bal
    row.external_status = external_status
    row.active = True
    row.last_pulled_at = now
    db.add(row)
    db.commit()
    db.refresh(row)

    outcome = refresh_after_write(db, ctx, job_id=job_id, trigger="invoice_mirror")
    return MirrorSync(mirror=row, created=created, refresh=outcome)
