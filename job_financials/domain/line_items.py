# job_financials/domain/line_items.py
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional, Union

from .errors import InvalidInput

MATERIAL = "material"
LABOR = "labor"
OTHER = "other"


def money(x: float, places: int = 2) -> float:
    """Round a money/percent value for storage. Normalizes -0.0 to 0.0."""
    return float(round(float(x), places)) + 0.0


def _num(raw: Mapping[str, Any], key: str, *, index: int, required: bool = False) -> Optional[float]:
    v = raw.get(key)
    if v is None or v == "":
        if required:
            raise InvalidInput(f"line {index}: {key} is required", details={"line": index, "field": key})
        return None
    if isinstance(v, bool):
        raise InvalidInput(f"line {index}: {key} must be a number", details={"line": index, "field": key})
    try:
        f = float(v) if isinstance(v, (int, float, Decimal)) else float(str(v).strip())
    except (TypeError, ValueError):
        raise InvalidInput(f"line {index}: {key} must be a number", details={"line": index, "field": key})
    if math.isnan(f) or math.isinf(f):
        raise InvalidInput(f"line {index}: {key} must be finite", details={"line": index, "field": key})
    return f


@dataclass(frozen=True)
class LineItem:
    """
    One priced estimate line.

    unit_cost / cost are the explicit cost inputs; when both are absent the cost
    is derived from unit_price and the markup.
    """

    kind: str
    quantity: float
    unit_price: float
    unit_cost: Optional[float] = None
    cost: Optional[float] = None
    markup_percent: Optional[float] = None
    markup_fixed: Optional[float] = None
    description: Optional[str] = None

    def effective_unit_cost(self) -> float:
        if self.unit_cost is not None:
            return float(self.unit_cost)
        if self.cost is not None:
            return float(self.cost)

        markup_pct = float(self.markup_percent or 0.0)
        markup_fixed = float(self.markup_fixed or 0.0)
        denom = 1.0 + markup_pct
        # markup_percent == -1 has no defined cost
        if denom == 0:
            return 0.0
        return (float(self.unit_price) - markup_fixed) / denom

    def extended_sell(self, places: int = 2) -> float:
        return money(float(self.unit_price) * float(self.quantity), places)

    def extended_cost(self, places: int = 2) -> float:
        return money(self.effective_unit_cost() * float(self.quantity), places)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "kind": self.kind,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
        }
        for k in ("unit_cost", "cost", "markup_percent", "markup_fixed", "description"):
            v = getattr(self, k)
            if v is not None:
                out[k] = v
        return out


@dataclass(frozen=True)
class MaterialLine(LineItem):
    pass


@dataclass(frozen=True)
class LaborLine(LineItem):
    pass


@dataclass(frozen=True)
class OtherLine(LineItem):
    """Any line whose kind is neither material nor labor (permits, dumpsters...)."""


AnyLine = Union[MaterialLine, LaborLine, OtherLine]

_VARIANTS = {MATERIAL: MaterialLine, LABOR: LaborLine}


def parse_line_item(raw: Any, *, index: int = 0) -> AnyLine:
    if isinstance(raw, LineItem):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, Mapping):
        raise InvalidInput(f"line {index}: expected an object, got {type(raw).__name__}", details={"line": index})

    kind_raw = raw.get("kind", raw.get("item_category"))
    if kind_raw is None or not str(kind_raw).strip():
        raise InvalidInput(f"line {index}: kind is required", details={"line": index, "field": "kind"})
    kind = str(kind_raw).strip()

    quantity = _num(raw, "quantity", index=index, required=True)
    unit_price = _num(raw, "unit_price", index=index, required=True)
    if quantity < 0:
        raise InvalidInput(f"line {index}: quantity must be >= 0", details={"line": index, "field": "quantity"})

    desc = raw.get("description")
    cls = _VARIANTS.get(kind.lower(), OtherLine)
    return cls(
        kind=kind,
        quantity=quantity,
        unit_price=unit_price,
        unit_cost=_num(raw, "unit_cost", index=index),
        cost=_num(raw, "cost", index=index),
        markup_percent=_num(raw, "markup_percent", index=index),
        markup_fixed=_num(raw, "markup_fixed", index=index),
        description=str(desc) if desc is not None else None,
    )


def parse_line_items(raw: Any) -> list[AnyLine]:
    """
    Validate an estimate payload into typed lines.
    Raises InvalidInput for anything that is not a list of well-formed records.
    """
    if not isinstance(raw, (list, tuple)):
        raise InvalidInput(f"line items must be a list, got {type(raw).__name__}")
    return [parse_line_item(r, index=i) for i, r in enumerate(raw)]


def lines_to_payload(lines: list[AnyLine]) -> list[dict[str, Any]]:
    return [ln.to_dict() for ln in lines]
