# tests/test_commission_service.py
from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest

from conftest import make_estimate, make_job, make_rep
from job_financials.domain.errors import InvalidInput, NotFound, Unauthorized
from job_financials.models import CommissionCalculation
from job_financials.services.budget_versions import create_initial_versions
from job_financials.services.commission_plans import (
    assign_plan,
    create_plan,
    list_plans,
    resolve_active_plan,
    set_plan_active,
)
from job_financials.services.commission_service import (
    JOB_NOT_FOUND,
    REP_NOT_FOUND,
    CommissionError,
    CommissionResult,
    calculate_commission,
    calculate_commissions,
    contract_value_for_job,
    save_commission_result,
)
from job_financials.services.cost_ledger import record_cost_event
from job_financials.services.invoice_mirror import sync_invoice_mirror


def _profit_split(db, ctx, rate=50):
    return create_plan(db, ctx, name="Profit split", plan_type="percent_of_net_profit", config={"rate": rate})


def _job_20k(db, ctx, rep_id):
    """Budgeted job selling for 20000 with 12000 spent."""
    job_id = make_job(db, ctx, rep_id=rep_id)
    create_initial_versions(
        db,
        ctx,
        job_id=job_id,
        lines=[{"kind": "material", "quantity": 1, "unit_price": 20000, "unit_cost": 11000}],
    )
    record_cost_event(db, ctx, job_id=job_id, kind="material", amount=8000)
    record_cost_event(db, ctx, job_id=job_id, kind="labor", amount=4000)
    return job_id


def test_net_profit_example_end_to_end(db, ctx):
    rep_id = make_rep(db, ctx, overhead_rate=5)
    plan = _profit_split(db, ctx)
    assign_plan(db, ctx, rep_id=rep_id, plan_id=plan.id)
    job_id = _job_20k(db, ctx, rep_id)

    res = calculate_commission(db, ctx, job_id=job_id, rep_id=rep_id)
    assert isinstance(res, CommissionResult)
    assert res.contract_source == "capout"
    assert res.contract_value == 20000.0
    assert res.total_costs == 12000.0
    assert res.rep_overhead == 1000.0
    assert res.net_profit == 7000.0
    assert res.commission_amount == 3500.0
    assert res.plan_id == plan.id
    assert res.no_active_plan is False


def test_rep_without_plan_gets_zero_flagged(db, ctx):
    rep_id = make_rep(db, ctx)
    job_id = _job_20k(db, ctx, rep_id)

    res = calculate_commission(db, ctx, job_id=job_id, rep_id=rep_id)
    assert res.ok is True
    assert res.no_active_plan is True
    assert res.commission_amount == 0.0
    assert res.plan_id is None
    assert res.net_profit == 7000.0


def test_missing_job_or_rep_come_back_as_values(db, ctx, other_ctx):
    rep_id = make_rep(db, ctx)
    job_id = make_job(db, ctx)
    foreign_rep = make_rep(db, other_ctx)

    missing_job = calculate_commission(db, ctx, job_id=987654, rep_id=rep_id)
    assert isinstance(missing_job, CommissionError)
    assert missing_job.code == JOB_NOT_FOUND
    assert missing_job.to_dict()["ok"] is False

    missing_rep = calculate_commission(db, ctx, job_id=job_id, rep_id=foreign_rep)
    assert isinstance(missing_rep, CommissionError)
    assert missing_rep.code == REP_NOT_FOUND


def test_contract_value_falls_back_to_mirror_then_estimate(db, ctx):
    job_id = make_job(db, ctx)
    assert contract_value_for_job(db, tenant_id=ctx.tenant_id, job_id=job_id) == (0.0, "none")

    make_estimate(db, ctx, job_id, selling_price=1500.0, status="sent")
    make_estimate(db, ctx, job_id, selling_price=1600.0, status="approved", created_at=datetime.utcnow() - timedelta(days=3))
    assert contract_value_for_job(db, tenant_id=ctx.tenant_id, job_id=job_id) == (1600.0, "estimate")

    sync_invoice_mirror(db, ctx, job_id=job_id, external_invoice_id="INV-7", total_amount=1800)
    assert contract_value_for_job(db, tenant_id=ctx.tenant_id, job_id=job_id) == (1800.0, "invoice_mirror")


def test_resolver_honours_window_and_activity(db, ctx):
    rep_id = make_rep(db, ctx)
    old = _profit_split(db, ctx, rate=40)
    new = create_plan(db, ctx, name="Sell split", plan_type="percent_of_sell_price", config={"rate": 8})

    now = datetime.utcnow()
    assign_plan(db, ctx, rep_id=rep_id, plan_id=old.id, effective_from=now - timedelta(days=60))
    assign_plan(
        db,
        ctx,
        rep_id=rep_id,
        plan_id=new.id,
        effective_from=now - timedelta(days=10),
        effective_to=now + timedelta(days=10),
    )

    assert resolve_active_plan(db, ctx, rep_id=rep_id).id == new.id
    # before the newer window opened only the older assignment applies
    assert resolve_active_plan(db, ctx, rep_id=rep_id, at=now - timedelta(days=30)).id == old.id
    assert resolve_active_plan(db, ctx, rep_id=rep_id, at=now + timedelta(days=20)).id == old.id
    assert resolve_active_plan(db, ctx, rep_id=rep_id, at=now - timedelta(days=90)) is None

    set_plan_active(db, ctx, plan_id=new.id, active=False)
    assert resolve_active_plan(db, ctx, rep_id=rep_id).id == old.id
    assert [p.id for p in list_plans(db, ctx, active_only=True)] == [old.id]


def test_resolver_is_tenant_scoped(db, ctx, other_ctx):
    rep_id = make_rep(db, ctx)
    plan = _profit_split(db, ctx)
    assign_plan(db, ctx, rep_id=rep_id, plan_id=plan.id)

    assert resolve_active_plan(db, other_ctx, rep_id=rep_id) is None
    with pytest.raises(NotFound):
        assign_plan(db, other_ctx, rep_id=rep_id, plan_id=plan.id)


def test_assignment_window_must_be_ordered(db, ctx):
    rep_id = make_rep(db, ctx)
    plan = _profit_split(db, ctx)
    now = datetime.utcnow()
    with pytest.raises(InvalidInput):
        assign_plan(db, ctx, rep_id=rep_id, plan_id=plan.id, effective_from=now, effective_to=now - timedelta(days=1))


def test_plan_config_is_validated_on_create(db, ctx):
    with pytest.raises(InvalidInput):
        create_plan(db, ctx, name="Broken", plan_type="tiered_margin", config={"tiers": "lots"})
    with pytest.raises(InvalidInput):
        create_plan(db, ctx, name="Bad method", plan_type="flat_fee", config={"flat_amount": 5}, payment_method="cash")

    plan = create_plan(
        db,
        ctx,
        name="Tiered",
        plan_type="tiered_margin",
        config={"tiers": [{"min_margin": 15, "max_margin": 20, "rate": 2}, {"min_margin": 20, "rate": 3}]},
    )
    stored = json.loads(plan.config_json)
    assert stored["tier_base"] == "contract_value"
    assert len(stored["tiers"]) == 2


def test_batch_keeps_going_past_failures(db, ctx):
    rep_id = make_rep(db, ctx, overhead_rate=5)
    plan = _profit_split(db, ctx)
    assign_plan(db, ctx, rep_id=rep_id, plan_id=plan.id)
    job_id = _job_20k(db, ctx, rep_id)

    out = calculate_commissions(db, ctx, [(job_id, rep_id), (424242, rep_id), (job_id, 424242)])
    assert [r.ok for r in out] == [True, False, False]
    assert out[0].commission_amount == 3500.0
    assert out[1].code == JOB_NOT_FOUND
    assert out[2].code == REP_NOT_FOUND


def test_save_result_creates_pending_record(db, ctx):
    rep_id = make_rep(db, ctx, overhead_rate=5)
    plan = _profit_split(db, ctx)
    assign_plan(db, ctx, rep_id=rep_id, plan_id=plan.id)
    job_id = _job_20k(db, ctx, rep_id)

    res = calculate_commission(db, ctx, job_id=job_id, rep_id=rep_id)
    row = save_commission_result(db, ctx, res)
    assert row.status == "pending"
    assert row.commission_amount == 3500.0
    assert json.loads(row.details_json)["net_profit"] == 7000.0
    assert db.query(CommissionCalculation).count() == 1

    err = calculate_commission(db, ctx, job_id=999999, rep_id=rep_id)
    with pytest.raises(InvalidInput):
        save_commission_result(db, ctx, err)


def test_commission_requires_tenant(db):
    with pytest.raises(Unauthorized):
        calculate_commission(db, None, job_id=1, rep_id=1)
    with pytest.raises(Unauthorized):
        resolve_active_plan(db, None, rep_id=1)
