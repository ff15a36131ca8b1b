# job_financials/domain/commission.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .budget_rollup import margin_pct
from .errors import InvalidInput
from .line_items import money

PERCENT_OF_SELL_PRICE = "percent_of_sell_price"
PERCENT_OF_NET_PROFIT = "percent_of_net_profit"
TIERED_MARGIN = "tiered_margin"
FLAT_FEE = "flat_fee"

PLAN_TYPES = (PERCENT_OF_SELL_PRICE, PERCENT_OF_NET_PROFIT, TIERED_MARGIN, FLAT_FEE)

TIER_BASE_CONTRACT = "contract_value"
TIER_BASE_NET_PROFIT = "net_profit"
TIER_BASES = (TIER_BASE_CONTRACT, TIER_BASE_NET_PROFIT)


def _opt_float(data: Mapping[str, Any], key: str) -> Optional[float]:
    v = data.get(key)
    if v is None or v == "":
        return None
    if isinstance(v, bool):
        raise InvalidInput(f"{key} must be a number")
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise InvalidInput(f"{key} must be a number")
    if math.isnan(f) or math.isinf(f):
        raise InvalidInput(f"{key} must be finite")
    return f


@dataclass(frozen=True)
class Tier:
    """Half-open margin band [min_margin, max_margin); max_margin None means 'and above'."""

    min_margin: float
    max_margin: Optional[float]
    rate: float

    def contains(self, m: float) -> bool:
        if m < self.min_margin:
            return False
        return self.max_margin is None or m < self.max_margin

    def to_dict(self) -> dict[str, Any]:
        return {"min_margin": self.min_margin, "max_margin": self.max_margin, "rate": self.rate}


def _parse_tiers(raw: Any) -> tuple[Tier, ...]:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise InvalidInput("tiered_margin plans need a non-empty tiers list")

    rows: list[dict[str, Any]] = []
    for i, t in enumerate(raw):
        if not isinstance(t, Mapping):
            raise InvalidInput(f"tier {i}: expected an object")
        lo = _opt_float(t, "min_margin")
        if lo is None:
            # threshold-style tables: {"threshold": 15, "rate": 2}
            lo = _opt_float(t, "threshold")
        rate = _opt_float(t, "rate")
        if lo is None or rate is None:
            raise InvalidInput(f"tier {i}: min_margin and rate are required")
        if rate < 0:
            raise InvalidInput(f"tier {i}: rate must be >= 0")
        hi = _opt_float(t, "max_margin")
        if hi is not None and hi <= lo:
            raise InvalidInput(f"tier {i}: max_margin must be greater than min_margin")
        rows.append({"min_margin": lo, "max_margin": hi, "rate": rate})

    rows.sort(key=lambda r: r["min_margin"])

    # An open band ends where the next one starts; only the last stays "and above".
    for i, r in enumerate(rows[:-1]):
        nxt = rows[i + 1]["min_margin"]
        if r["max_margin"] is None:
            if nxt == r["min_margin"]:
                raise InvalidInput(f"tiers overlap at min_margin {nxt}")
            r["max_margin"] = nxt
        elif r["max_margin"] > nxt:
            raise InvalidInput(
                f"tiers overlap: [{r['min_margin']}, {r['max_margin']}) runs past {nxt}",
                details={"min_margin": r["min_margin"], "max_margin": r["max_margin"], "next_min_margin": nxt},
            )

    return tuple(Tier(min_margin=r["min_margin"], max_margin=r["max_margin"], rate=r["rate"]) for r in rows)


def select_tier(tiers: tuple[Tier, ...] | list[Tier], m: Optional[float]) -> Optional[Tier]:
    if m is None:
        return None
    for t in tiers:
        if t.contains(m):
            return t
    return None


@dataclass(frozen=True)
class PlanConfig:
    rate: float = 0.0
    tiers: tuple[Tier, ...] = ()
    tier_base: str = TIER_BASE_CONTRACT
    minimum_sale: Optional[float] = None
    cap: Optional[float] = None
    flat_amount: float = 0.0
    floor_at_zero: bool = False

    @classmethod
    def from_dict(cls, plan_type: str, data: Optional[Mapping[str, Any]], *, default_tier_base: str) -> "PlanConfig":
        """Validate a stored/submitted plan configuration for the given plan type."""
        if plan_type not in PLAN_TYPES:
            raise InvalidInput(f"unknown plan type {plan_type!r}", details={"allowed": list(PLAN_TYPES)})
        data = data or {}
        if not isinstance(data, Mapping):
            raise InvalidInput("plan config must be an object")

        rate = _opt_float(data, "rate")
        if rate is None:
            # original plan_config key
            rate = _opt_float(data, "commission_rate")
        if plan_type in (PERCENT_OF_SELL_PRICE, PERCENT_OF_NET_PROFIT):
            if rate is None:
                raise InvalidInput(f"{plan_type} plans need a rate")
            if rate < 0:
                raise InvalidInput("rate must be >= 0")

        tiers: tuple[Tier, ...] = ()
        tier_base = str(data.get("tier_base") or default_tier_base).strip().lower()
        if plan_type == TIERED_MARGIN:
            tiers = _parse_tiers(data.get("tiers", data.get("tier_rates")))
            if tier_base not in TIER_BASES:
                raise InvalidInput(f"tier_base must be one of {', '.join(TIER_BASES)}")

        flat = _opt_float(data, "flat_amount")
        if plan_type == FLAT_FEE:
            if flat is None or flat < 0:
                raise InvalidInput("flat_fee plans need flat_amount >= 0")

        minimum_sale = _opt_float(data, "minimum_sale")
        cap = _opt_float(data, "cap")
        floor = data.get("floor_at_zero", False)
        if not isinstance(floor, bool):
            raise InvalidInput("floor_at_zero must be true or false")
        if cap is not None and cap < 0:
            raise InvalidInput("cap must be >= 0")

        return cls(
            rate=float(rate or 0.0),
            tiers=tiers,
            tier_base=tier_base if tier_base in TIER_BASES else default_tier_base,
            minimum_sale=minimum_sale,
            cap=cap,
            flat_amount=float(flat or 0.0),
            floor_at_zero=floor,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"rate": self.rate, "tier_base": self.tier_base, "flat_amount": self.flat_amount}
        if self.tiers:
            out["tiers"] = [t.to_dict() for t in self.tiers]
        if self.minimum_sale is not None:
            out["minimum_sale"] = self.minimum_sale
        if self.cap is not None:
            out["cap"] = self.cap
        if self.floor_at_zero:
            out["floor_at_zero"] = True
        return out


@dataclass(frozen=True)
class CommissionBreakdown:
    contract_value: float
    total_costs: float
    rep_overhead: float
    gross_profit: float
    net_profit: float
    margin_pct: Optional[float]
    commission_rate: float
    commission_amount: float
    company_profit: float
    tier: Optional[Tier] = None
    below_minimum_sale: bool = False
    capped: bool = False


def compute_commission(
    *,
    contract_value: float,
    total_costs: float,
    overhead_rate: float,
    plan_type: Optional[str],
    config: Optional[PlanConfig],
    places: int = 2,
) -> CommissionBreakdown:
    """
    Payout math for one job/rep pair.

    plan_type None means the rep has no active plan: the breakdown is still
    produced, with a zero commission.
    """
    contract = float(contract_value or 0.0)
    costs = float(total_costs or 0.0)
    rep_overhead = contract * float(overhead_rate or 0.0) / 100.0
    gross = contract - costs
    net = gross - rep_overhead
    m = margin_pct(net, contract, places=6)

    rate = 0.0
    amount = 0.0
    tier: Optional[Tier] = None
    below_min = False
    capped = False

    if plan_type is not None and config is not None:
        if config.minimum_sale is not None and contract < config.minimum_sale:
            below_min = True
        elif plan_type == PERCENT_OF_SELL_PRICE:
            rate = config.rate
            amount = contract * rate / 100.0
        elif plan_type == PERCENT_OF_NET_PROFIT:
            rate = config.rate
            amount = net * rate / 100.0
        elif plan_type == TIERED_MARGIN:
            tier = select_tier(config.tiers, m)
            if tier is not None:
                rate = tier.rate
                base = net if config.tier_base == TIER_BASE_NET_PROFIT else contract
                amount = base * rate / 100.0
        elif plan_type == FLAT_FEE:
            amount = config.flat_amount
        else:
            raise InvalidInput(f"unknown plan type {plan_type!r}")

        # a losing job yields a negative amount unless the plan floors it
        if config.floor_at_zero:
            amount = max(0.0, amount)
        if config.cap is not None and amount > config.cap:
            amount = config.cap
            capped = True

    amount = money(amount, places)
    return CommissionBreakdown(
        contract_value=money(contract, places),
        total_costs=money(costs, places),
        rep_overhead=money(rep_overhead, places),
        gross_profit=money(gross, places),
        net_profit=money(net, places),
        margin_pct=money(m, places) if m is not None else None,
        commission_rate=float(rate),
        commission_amount=amount,
        company_profit=money(net - amount, places),
        tier=tier,
        below_minimum_sale=below_min,
        capped=capped,
    )
