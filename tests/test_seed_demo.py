# tests/test_seed_demo.py
from __future__ import annotations

from job_financials.auth import TenantContext
from job_financials.cli.seed_demo import seed_demo
from job_financials.models import Estimate, Tenant
from job_financials.services.commission_service import calculate_commission


def test_seed_demo_is_repeatable_and_computes(db):
    first = seed_demo(tenant_slug="demo-seed")
    second = seed_demo(tenant_slug="demo-seed")
    assert first == second

    tenant = db.query(Tenant).filter(Tenant.slug == "demo-seed").one()
    assert db.get(Estimate, first.estimate_id).status == "approved"

    ctx = TenantContext(tenant_id=int(tenant.id), tenant_slug=tenant.slug)
    res = calculate_commission(db, ctx, job_id=first.job_id, rep_id=first.rep_id)
    assert res.ok is True
    assert res.plan_id == first.plan_id
    # 1750 sell, nothing spent, 5% rep overhead -> 1662.50 net, half of it paid
    assert res.net_profit == 1662.5
    assert res.commission_amount == 831.25
