# job_financials/cli/seed_demo.py
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from job_financials.auth import TenantContext
from job_financials.db import SessionLocal, create_tables
from job_financials.models import AppUser, CommissionPlan, Estimate, Job, SalesRep, Tenant, TenantMembership
from job_financials.services.budget_versions import create_versions_from_estimate, current_capout
from job_financials.services.commission_plans import assign_plan, create_plan, resolve_active_plan

DEMO_LINES = [
    {"kind": "material", "description": "Architectural shingles (sq)", "quantity": 10, "unit_price": 100, "unit_cost": 60},
    {"kind": "labor", "description": "Tear-off and install", "quantity": 5, "unit_price": 150, "unit_cost": 90},
]


@dataclass(frozen=True)
class SeedResult:
    tenant_slug: str
    user_email: str
    rep_id: int
    job_id: int
    estimate_id: int
    plan_id: Optional[int]


def _get_or_create_tenant(db: Session, slug: str, name: str) -> Tenant:
    row = db.query(Tenant).filter(Tenant.slug == slug).one_or_none()
    if row:
        return row
    row = Tenant(slug=slug, name=name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_user(db: Session, email: str, display_name: str) -> AppUser:
    row = db.query(AppUser).filter(AppUser.email == email).one_or_none()
    if row:
        return row
    row = AppUser(email=email, display_name=display_name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _ensure_membership(db: Session, tenant_id: int, user_id: int, role: str = "owner") -> None:
    existing = db.query(TenantMembership).filter(
        TenantMembership.tenant_id == int(tenant_id),
        TenantMembership.user_id == int(user_id),
    ).one_or_none()
    if existing:
        return
    db.add(TenantMembership(tenant_id=int(tenant_id), user_id=int(user_id), role=str(role)))
    db.commit()


def _get_or_create_rep(db: Session, tenant_id: int, user: AppUser, overhead_rate: float) -> SalesRep:
    row = db.query(SalesRep).filter(SalesRep.tenant_id == int(tenant_id), SalesRep.user_id == int(user.id)).one_or_none()
    if row:
        return row
    row = SalesRep(
        tenant_id=int(tenant_id),
        user_id=int(user.id),
        full_name=user.display_name or user.email,
        email=user.email,
        overhead_rate=float(overhead_rate),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def seed_demo(
    *,
    tenant_slug: str = "demo",
    tenant_name: str = "Demo Roofing",
    user_email: str = "rep@demo.local",
    user_name: str = "Demo Rep",
    overhead_rate: float = 5.0,
    commission_rate: float = 50.0,
    create_plan_assignment: bool = True,
) -> SeedResult:
    create_tables()
    db = SessionLocal()
    try:
        tenant = _get_or_create_tenant(db, tenant_slug, tenant_name)
        user = _get_or_create_user(db, user_email, user_name)
        _ensure_membership(db, tenant.id, user.id, role="owner")
        rep = _get_or_create_rep(db, tenant.id, user, overhead_rate)

        job = db.query(Job).filter(Job.tenant_id == tenant.id).first()
        if not job:
            job = Job(tenant_id=tenant.id, name="123 Shingle Way reroof", job_number="J-1001", sales_rep_id=rep.id)
            db.add(job)
            db.commit()
            db.refresh(job)

        est = db.query(Estimate).filter(Estimate.tenant_id == tenant.id, Estimate.job_id == job.id).first()
        if not est:
            est = Estimate(
                tenant_id=tenant.id,
                job_id=job.id,
                status="sent",
                selling_price=1750.0,
                line_items_json=json.dumps(DEMO_LINES),
                overhead_amount=50.0,
            )
            db.add(est)
            db.commit()
            db.refresh(est)

        ctx = TenantContext(tenant_id=int(tenant.id), tenant_slug=tenant.slug, user_id=int(user.id), email=user.email)

        if current_capout(db, tenant_id=int(tenant.id), job_id=int(job.id)) is None:
            create_versions_from_estimate(db, ctx, estimate_id=int(est.id))

        plan_id: Optional[int] = None
        if create_plan_assignment:
            plan = resolve_active_plan(db, ctx, rep_id=int(rep.id))
            if plan is None:
                plan = db.query(CommissionPlan).filter(
                    CommissionPlan.tenant_id == tenant.id, CommissionPlan.name == "Profit split"
                ).one_or_none()
                if plan is None:
                    plan = create_plan(
                        db,
                        ctx,
                        name="Profit split",
                        plan_type="percent_of_net_profit",
                        config={"rate": commission_rate},
                        payment_method="final_check",
                    )
                assign_plan(db, ctx, rep_id=int(rep.id), plan_id=int(plan.id))
            plan_id = int(plan.id)

        return SeedResult(
            tenant_slug=tenant.slug,
            user_email=user.email,
            rep_id=int(rep.id),
            job_id=int(job.id),
            estimate_id=int(est.id),
            plan_id=plan_id,
        )
    finally:
        db.close()
