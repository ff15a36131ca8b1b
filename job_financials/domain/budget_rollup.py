# job_financials/domain/budget_rollup.py
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional

from .errors import InvalidInput
from .line_items import LABOR, MATERIAL, AnyLine, money, parse_line_items


@dataclass(frozen=True)
class Planned:
    materials: float = 0.0
    labor: float = 0.0
    overhead: float = 0.0
    commission: float = 0.0
    misc: float = 0.0
    subtotal: float = 0.0


@dataclass(frozen=True)
class Actual:
    materials: float = 0.0
    labor: float = 0.0
    misc: float = 0.0

    @property
    def total(self) -> float:
        return float(self.materials + self.labor + self.misc)


@dataclass(frozen=True)
class Summary:
    """
    Financial summary stored on every budget version.

    margin_pct is None when sell_price <= 0 (margin undefined).
    The dict shape produced by to_dict() is the storage/API contract.
    """

    sell_price: float
    planned: Planned = field(default_factory=Planned)
    actual: Actual = field(default_factory=Actual)
    profit: float = 0.0
    margin_pct: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sell_price": self.sell_price,
            "planned": {
                "materials": self.planned.materials,
                "labor": self.planned.labor,
                "overhead": self.planned.overhead,
                "commission": self.planned.commission,
                "misc": self.planned.misc,
                "subtotal": self.planned.subtotal,
            },
            "actual": {
                "materials": self.actual.materials,
                "labor": self.actual.labor,
                "misc": self.actual.misc,
            },
            "profit": self.profit,
            "margin_pct": self.margin_pct,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Summary":
        if not isinstance(data, Mapping):
            raise InvalidInput("summary must be an object")
        p = data.get("planned") or {}
        a = data.get("actual") or {}
        if not isinstance(p, Mapping) or not isinstance(a, Mapping):
            raise InvalidInput("summary planned/actual must be objects")
        margin = data.get("margin_pct")
        return cls(
            sell_price=float(data.get("sell_price") or 0.0),
            planned=Planned(
                materials=float(p.get("materials") or 0.0),
                labor=float(p.get("labor") or 0.0),
                overhead=float(p.get("overhead") or 0.0),
                commission=float(p.get("commission") or 0.0),
                misc=float(p.get("misc") or 0.0),
                subtotal=float(p.get("subtotal") or 0.0),
            ),
            actual=Actual(
                materials=float(a.get("materials") or 0.0),
                labor=float(a.get("labor") or 0.0),
                misc=float(a.get("misc") or 0.0),
            ),
            profit=float(data.get("profit") or 0.0),
            margin_pct=float(margin) if margin is not None else None,
        )


def margin_pct(profit: float, sell_price: float, places: int = 2) -> Optional[float]:
    """profit / sell_price * 100, or None when the sell price is not positive."""
    sell = float(sell_price)
    if not sell > 0:
        return None
    m = float(profit) / sell * 100.0
    if math.isnan(m) or math.isinf(m):
        return None
    return money(m, places)


def _allowance(name: str, v: Any) -> float:
    if isinstance(v, bool):
        raise InvalidInput(f"{name} must be a number")
    try:
        f = float(v or 0.0)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number")
    if math.isnan(f) or math.isinf(f):
        raise InvalidInput(f"{name} must be finite")
    return f


def rollup(
    lines: Any,
    overhead: float = 0.0,
    commission_allowance: float = 0.0,
    misc: float = 0.0,
    sell_override: Optional[float] = None,
    *,
    places: int = 2,
) -> Summary:
    """
    Aggregate priced lines plus fixed allowances into a baseline Summary.

    Per-line extended sell/cost values are rounded before summing; totals are
    rounded again where stored. Kinds other than material/labor contribute to
    sell_price only.
    """
    typed: list[AnyLine] = parse_line_items(lines)

    overhead_f = _allowance("overhead", overhead)
    commission_f = _allowance("commission_allowance", commission_allowance)
    misc_f = _allowance("misc", misc)

    sell_total = 0.0
    materials = 0.0
    labor = 0.0
    for ln in typed:
        sell_total += ln.extended_sell(places)
        k = ln.kind.lower()
        if k == MATERIAL:
            materials += ln.extended_cost(places)
        elif k == LABOR:
            labor += ln.extended_cost(places)

    if sell_override is not None:
        sell_price = money(_allowance("sell_override", sell_override), places)
    else:
        sell_price = money(sell_total, places)

    planned = Planned(
        materials=money(materials, places),
        labor=money(labor, places),
        overhead=money(overhead_f, places),
        commission=money(commission_f, places),
        misc=money(misc_f, places),
        subtotal=0.0,
    )
    subtotal = money(
        planned.materials + planned.labor + planned.overhead + planned.commission + planned.misc,
        places,
    )
    planned = replace(planned, subtotal=subtotal)

    profit = money(sell_price - subtotal, places)
    return Summary(
        sell_price=sell_price,
        planned=planned,
        actual=Actual(),
        profit=profit,
        margin_pct=margin_pct(profit, sell_price, places),
    )


def aggregate_costs(events: Iterable[Any], places: int = 2) -> Actual:
    """
    Sum ledger rows into actual buckets: material -> materials, labor -> labor,
    anything else -> misc. fsum is exactly rounded, so row order never
    changes the result.
    """
    buckets: dict[str, list[float]] = {MATERIAL: [], LABOR: [], "misc": []}
    for e in events:
        amt = float(getattr(e, "amount", 0.0) or 0.0)
        kind = (getattr(e, "kind", "") or "").lower()
        buckets.get(kind, buckets["misc"]).append(amt)
    return Actual(
        materials=money(math.fsum(buckets[MATERIAL]), places),
        labor=money(math.fsum(buckets[LABOR]), places),
        misc=money(math.fsum(buckets["misc"]), places),
    )


def apply_actuals(
    current: Summary,
    *,
    actual: Actual,
    sell_price: float,
    frozen_overhead: float,
    frozen_commission: float,
    places: int = 2,
) -> Summary:
    """
    Rebuild a live summary from ledger actuals.

    The planned block is carried over untouched; profit charges the frozen
    baseline overhead/commission allowances against the real outlays.
    """
    sell = money(sell_price, places)
    spent = math.fsum(
        [actual.materials, actual.labor, actual.misc, float(frozen_overhead), float(frozen_commission)]
    )
    profit = money(sell - spent, places)
    return Summary(
        sell_price=sell,
        planned=current.planned,
        actual=actual,
        profit=profit,
        margin_pct=margin_pct(profit, sell, places),
    )
