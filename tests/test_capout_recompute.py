# tests/test_capout_recompute.py
from __future__ import annotations

import pytest

from conftest import LINES, make_job
from job_financials.domain.errors import InvalidInput, NotFound
from job_financials.models import BudgetVersion, InvoiceMirror
from job_financials.services.budget_versions import create_initial_versions, current_capout, version_summary
from job_financials.services.cost_ledger import (
    delete_cost_event,
    list_cost_events,
    record_cost_event,
    total_costs,
    update_cost_event,
)
from job_financials.services.invoice_mirror import get_active_mirror, sync_invoice_mirror
from job_financials.services.recompute import refresh_capout


def _job_with_budget(db, ctx, **kw):
    job_id = make_job(db, ctx)
    precap_id, capout_id = create_initial_versions(db, ctx, job_id=job_id, lines=LINES, overhead=50, **kw)
    return job_id, precap_id, capout_id


def _capout(db, ctx, job_id):
    return version_summary(current_capout(db, tenant_id=ctx.tenant_id, job_id=job_id))


def test_cost_event_refreshes_capout(db, ctx):
    job_id, _, _ = _job_with_budget(db, ctx)

    w = record_cost_event(db, ctx, job_id=job_id, kind="material", amount=700, vendor="ABC Supply")
    assert w.refresh.recomputed is True
    assert w.refresh.summary.actual.materials == 700.0

    s = _capout(db, ctx, job_id)
    assert s.actual.materials == 700.0
    assert s.planned.materials == 600.0
    assert s.profit == 1750.0 - 700.0 - 50.0
    assert s.margin_pct == round(1000.0 / 1750.0 * 100, 2)


def test_refresh_is_idempotent(db, ctx):
    job_id, _, _ = _job_with_budget(db, ctx)
    record_cost_event(db, ctx, job_id=job_id, kind="labor", amount=420.55)

    s1 = refresh_capout(db, ctx, job_id=job_id)
    s2 = refresh_capout(db, ctx, job_id=job_id)
    assert s1 == s2
    assert s1.to_dict() == _capout(db, ctx, job_id).to_dict()


def test_ledger_order_does_not_change_summary(db, ctx, other_ctx):
    amounts = [("material", 100.1), ("labor", 0.2), ("other", 33.33), ("material", 0.1), ("labor", 0.1)]

    job_a, _, _ = _job_with_budget(db, ctx)
    for kind, amt in amounts:
        record_cost_event(db, ctx, job_id=job_a, kind=kind, amount=amt)

    job_b, _, _ = _job_with_budget(db, other_ctx)
    for kind, amt in reversed(amounts):
        record_cost_event(db, other_ctx, job_id=job_b, kind=kind, amount=amt)

    assert _capout(db, ctx, job_a) == _capout(db, other_ctx, job_b)


def test_precap_never_changes(db, ctx):
    job_id, precap_id, _ = _job_with_budget(db, ctx)
    before = db.get(BudgetVersion, precap_id).summary_json

    w = record_cost_event(db, ctx, job_id=job_id, kind="material", amount=900)
    update_cost_event(db, ctx, cost_event_id=w.event_id, amount=950)
    sync_invoice_mirror(db, ctx, job_id=job_id, external_invoice_id="INV-9", total_amount=2100)
    refresh_capout(db, ctx, job_id=job_id)

    row = db.get(BudgetVersion, precap_id)
    db.refresh(row)
    assert row.summary_json == before


def test_update_and_delete_trigger_refresh(db, ctx):
    job_id, _, _ = _job_with_budget(db, ctx)
    w = record_cost_event(db, ctx, job_id=job_id, kind="material", amount=500)

    up = update_cost_event(db, ctx, cost_event_id=w.event_id, amount=650, kind="labor")
    assert up.refresh.recomputed is True
    s = _capout(db, ctx, job_id)
    assert s.actual.materials == 0.0
    assert s.actual.labor == 650.0

    gone = delete_cost_event(db, ctx, cost_event_id=w.event_id)
    assert gone.refresh.recomputed is True
    s = _capout(db, ctx, job_id)
    assert s.actual.labor == 0.0
    assert s.profit == 1700.0


def test_cost_event_before_budget_reports_no_capout(db, ctx):
    job_id = make_job(db, ctx)
    w = record_cost_event(db, ctx, job_id=job_id, kind="other", amount=80)
    assert w.refresh.recomputed is False
    assert w.refresh.reason == "no_capout"
    assert total_costs(db, tenant_id=ctx.tenant_id, job_id=job_id) == 80.0


def test_refresh_without_capout_is_not_found(db, ctx):
    job_id = make_job(db, ctx)
    with pytest.raises(NotFound):
        refresh_capout(db, ctx, job_id=job_id)


def test_bad_ledger_rows_are_rejected(db, ctx):
    job_id, _, _ = _job_with_budget(db, ctx)
    with pytest.raises(InvalidInput):
        record_cost_event(db, ctx, job_id=job_id, kind="snacks", amount=10)
    with pytest.raises(InvalidInput):
        record_cost_event(db, ctx, job_id=job_id, kind="material", amount=-10)
    w = record_cost_event(db, ctx, job_id=job_id, kind="material", amount=10)
    with pytest.raises(InvalidInput):
        update_cost_event(db, ctx, cost_event_id=w.event_id, job_id=999)


def test_ledger_is_tenant_scoped(db, ctx, other_ctx):
    job_id, _, _ = _job_with_budget(db, ctx)
    w = record_cost_event(db, ctx, job_id=job_id, kind="material", amount=10)

    with pytest.raises(NotFound):
        record_cost_event(db, other_ctx, job_id=job_id, kind="material", amount=10)
    with pytest.raises(NotFound):
        delete_cost_event(db, other_ctx, cost_event_id=w.event_id)
    assert list_cost_events(db, other_ctx, job_id=job_id) == []
    assert [e.id for e in list_cost_events(db, ctx, job_id=job_id, kind="material")] == [w.event_id]


def test_mirror_update_in_place_and_replacement(db, ctx):
    job_id, _, _ = _job_with_budget(db, ctx)

    first = sync_invoice_mirror(db, ctx, job_id=job_id, external_invoice_id="INV-1", total_amount=2000)
    assert first.created is True
    assert first.refresh.summary.sell_price == 2000.0

    again = sync_invoice_mirror(db, ctx, job_id=job_id, external_invoice_id="INV-1", total_amount=2050, balance=500)
    assert again.created is False
    assert int(again.mirror.id) == int(first.mirror.id)
    assert again.mirror.balance == 500.0
    assert _capout(db, ctx, job_id).sell_price == 2050.0

    swapped = sync_invoice_mirror(db, ctx, job_id=job_id, external_invoice_id="INV-2", total_amount=1900)
    assert swapped.created is True
    assert db.query(InvoiceMirror).filter(InvoiceMirror.job_id == job_id, InvoiceMirror.active.is_(True)).count() == 1
    assert get_active_mirror(db, tenant_id=ctx.tenant_id, job_id=job_id).external_invoice_id == "INV-2"

    s = _capout(db, ctx, job_id)
    assert s.sell_price == 1900.0
    assert s.planned.materials == 600.0
    assert s.profit == 1850.0


@pytest.mark.parametrize("stored", ["[]", '{"sell_price": "n/a"}', '{"sell_price": 10, "planned": [1, 2]}'])
def test_unreadable_capout_summary_keeps_ledger_write(db, ctx, stored):
    job_id, _, capout_id = _job_with_budget(db, ctx)
    row = db.get(BudgetVersion, capout_id)
    row.summary_json = stored
    db.commit()

    w = record_cost_event(db, ctx, job_id=job_id, kind="labor", amount=120)
    assert w.refresh.recomputed is False
    assert w.refresh.reason == "error"
    assert [e.id for e in list_cost_events(db, ctx, job_id=job_id)] == [w.event_id]
    assert total_costs(db, tenant_id=ctx.tenant_id, job_id=job_id) == 120.0
