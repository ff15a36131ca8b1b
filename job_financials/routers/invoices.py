# job_financials/routers/invoices.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import TenantContext, get_tenant_context
from ..db import get_db
from ..schemas import InvoiceMirrorOut, InvoiceMirrorUpsert, MirrorSyncOut
from ..services.invoice_mirror import get_active_mirror, sync_invoice_mirror
from ..services.ownership import must_get_job

router = APIRouter(prefix="/jobs", tags=["invoices"])


@router.put("/{job_id}/invoice", response_model=MirrorSyncOut)
def upsert_invoice(
    job_id: int,
    payload: InvoiceMirrorUpsert,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    res = sync_invoice_mirror(
        db,
        ctx,
        job_id=job_id,
        external_invoice_id=payload.external_invoice_id,
        total_amount=payload.total_amount,
        balance=payload.balance,
        external_status=payload.external_status,
    )
    return MirrorSyncOut(
        mirror=InvoiceMirrorOut.model_validate(res.mirror),
        created=res.created,
        recomputed=res.refresh.recomputed,
        reason=res.refresh.reason,
        capout_summary=res.refresh.summary.to_dict() if res.refresh.summary is not None else None,
    )


@router.get("/{job_id}/invoice", response_model=InvoiceMirrorOut)
def get_invoice(
    job_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    must_get_job(db, tenant_id=ctx.tenant_id, job_id=job_id)
    row = get_active_mirror(db, tenant_id=ctx.tenant_id, job_id=job_id)
    if row is None:
        raise HTTPException(status_code=404, detail="no invoice linked to job")
    return row
