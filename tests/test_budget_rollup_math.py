# tests/test_budget_rollup_math.py
from __future__ import annotations

from dataclasses import dataclass

import pytest

from job_financials.domain.budget_rollup import Summary, aggregate_costs, apply_actuals, margin_pct, rollup
from job_financials.domain.errors import InvalidInput
from job_financials.domain.line_items import LaborLine, MaterialLine, OtherLine, parse_line_item, parse_line_items

LINES = [
    {"kind": "material", "quantity": 10, "unit_price": 100, "unit_cost": 60},
    {"kind": "labor", "quantity": 5, "unit_price": 150, "unit_cost": 90},
]


@dataclass
class E:
    kind: str
    amount: float


def test_rollup_end_to_end_example():
    s = rollup(LINES, overhead=50, commission_allowance=0, misc=0)
    assert s.sell_price == 1750.0
    assert s.planned.materials == 600.0
    assert s.planned.labor == 450.0
    assert s.planned.overhead == 50.0
    assert s.planned.commission == 0.0
    assert s.planned.misc == 0.0
    assert s.planned.subtotal == 1100.0
    assert s.profit == 650.0
    assert s.margin_pct == 37.14
    assert s.actual.total == 0.0


def test_rollup_sell_override_keeps_planned_costs():
    base = rollup(LINES, overhead=50)
    s = rollup(LINES, overhead=50, sell_override=2000)
    assert s.sell_price == 2000.0
    assert s.planned == base.planned
    assert s.profit == 900.0


def test_other_lines_only_add_to_sell_price():
    s = rollup(LINES + [{"kind": "permit", "quantity": 1, "unit_price": 75, "unit_cost": 75}])
    assert s.sell_price == 1825.0
    assert s.planned.materials == 600.0
    assert s.planned.labor == 450.0
    assert s.planned.misc == 0.0


def test_cost_derived_from_markup():
    ln = parse_line_item({"kind": "material", "quantity": 2, "unit_price": 130, "markup_percent": 0.25, "markup_fixed": 5})
    assert ln.effective_unit_cost() == 100.0
    assert ln.extended_cost() == 200.0


def test_markup_minus_one_has_zero_cost():
    ln = parse_line_item({"kind": "material", "quantity": 3, "unit_price": 50, "markup_percent": -1})
    assert ln.effective_unit_cost() == 0.0
    s = rollup([{"kind": "material", "quantity": 3, "unit_price": 50, "markup_percent": -1}])
    assert s.planned.materials == 0.0
    assert s.sell_price == 150.0


def test_explicit_cost_wins_over_markup():
    ln = parse_line_item({"kind": "labor", "quantity": 1, "unit_price": 200, "cost": 120, "markup_percent": 0.5})
    assert ln.effective_unit_cost() == 120.0


def test_parse_variants_by_kind():
    lines = parse_line_items(LINES + [{"item_category": "dumpster", "quantity": 1, "unit_price": 400}])
    assert isinstance(lines[0], MaterialLine)
    assert isinstance(lines[1], LaborLine)
    assert isinstance(lines[2], OtherLine)
    assert lines[2].kind == "dumpster"


def test_empty_lines_give_zero_sell_and_no_margin():
    s = rollup([], overhead=100)
    assert s.sell_price == 0.0
    assert s.profit == -100.0
    assert s.margin_pct is None


@pytest.mark.parametrize(
    "payload",
    [
        {"lines": "nope"},
        {"lines": None},
        {"lines": [{"kind": "material", "unit_price": 10}]},
        {"lines": [{"kind": "material", "quantity": "ten", "unit_price": 10}]},
        {"lines": [{"kind": "material", "quantity": -1, "unit_price": 10}]},
        {"lines": [{"quantity": 1, "unit_price": 10}]},
        {"lines": ["not-a-record"]},
    ],
)
def test_malformed_lines_are_invalid_input(payload):
    with pytest.raises(InvalidInput):
        rollup(payload["lines"])


def test_margin_undefined_for_non_positive_sell():
    assert margin_pct(100.0, 0.0) is None
    assert margin_pct(-50.0, -10.0) is None
    assert margin_pct(25.0, 100.0) == 25.0


def test_aggregate_costs_buckets_and_order_independence():
    events = [E("material", 100.10), E("labor", 0.20), E("other", 12.5), E("material", 0.1), E("labor", 0.1)]
    a1 = aggregate_costs(events)
    a2 = aggregate_costs(list(reversed(events)))
    assert a1 == a2
    assert a1.materials == 100.2
    assert a1.labor == 0.3
    assert a1.misc == 12.5


def test_apply_actuals_keeps_planned_and_charges_frozen_allowances():
    baseline = rollup(LINES, overhead=50, commission_allowance=100)
    actual = aggregate_costs([E("material", 700), E("labor", 400)])
    live = apply_actuals(
        baseline,
        actual=actual,
        sell_price=baseline.sell_price,
        frozen_overhead=50,
        frozen_commission=100,
    )
    assert live.planned == baseline.planned
    assert live.actual.materials == 700.0
    assert live.profit == 1750.0 - 700.0 - 400.0 - 50.0 - 100.0
    assert live.margin_pct == round(500.0 / 1750.0 * 100, 2)


def test_summary_dict_shape_survives_storage():
    s = rollup(LINES, overhead=50)
    again = Summary.from_dict(s.to_dict())
    assert again == s
    assert set(s.to_dict()) == {"sell_price", "planned", "actual", "profit", "margin_pct"}
