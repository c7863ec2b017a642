"""Deterministic price filters the understanding service can delegate to.

All bounds are inclusive. The filters keep the input order and never touch
anything but `price`.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Sequence, Set, Type

from pydantic import BaseModel, ConfigDict, model_validator

from .models import CatalogItem, PriceFunction, ToolInvocation
from .reconciler import restrict_to_seen


class ToolBaseSet(str, Enum):
    """Which items a price tool call is applied to."""
    SEEN = "seen"
    CATALOG = "catalog"


class LessThanParams(BaseModel):
    model_config = ConfigDict(extra="forbid")
    upper: float


class GreaterThanParams(BaseModel):
    model_config = ConfigDict(extra="forbid")
    lower: float


class BetweenParams(BaseModel):
    model_config = ConfigDict(extra="forbid")
    lower: float
    upper: float

    @model_validator(mode="after")
    def _check_order(self) -> "BetweenParams":
        if self.lower > self.upper:
            raise ValueError("lower must not exceed upper")
        return self


PARAMS_BY_FUNCTION: Dict[PriceFunction, Type[BaseModel]] = {
    PriceFunction.LESS_THAN: LessThanParams,
    PriceFunction.GREATER_THAN: GreaterThanParams,
    PriceFunction.BETWEEN: BetweenParams,
}


def _tool(name: str, description: str, bounds: Dict[str, str]) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "strict": True,
            "parameters": {
                "type": "object",
                "properties": {
                    key: {"type": "number", "description": text}
                    for key, text in bounds.items()
                },
                "required": list(bounds),
                "additionalProperties": False,
            },
        },
    }


PRICE_TOOLS = [
    _tool(
        PriceFunction.LESS_THAN.value,
        "List products whose price is at most the given upper bound.",
        {"upper": "Inclusive upper bound on price."},
    ),
    _tool(
        PriceFunction.GREATER_THAN.value,
        "List products whose price is at least the given lower bound.",
        {"lower": "Inclusive lower bound on price."},
    ),
    _tool(
        PriceFunction.BETWEEN.value,
        "List products whose price is between lower and upper, both inclusive.",
        {"lower": "Inclusive lower bound on price.", "upper": "Inclusive upper bound on price."},
    ),
]


def less_than(items: Sequence[CatalogItem], upper: float) -> List[CatalogItem]:
    return [item for item in items if item.price <= upper]


def greater_than(items: Sequence[CatalogItem], lower: float) -> List[CatalogItem]:
    return [item for item in items if item.price >= lower]


def between(items: Sequence[CatalogItem], lower: float, upper: float) -> List[CatalogItem]:
    return [item for item in items if lower <= item.price <= upper]


def dispatch(invocation: ToolInvocation, items: Sequence[CatalogItem]) -> List[CatalogItem]:
    """Run the price filter named by the invocation over `items`."""
    args = invocation.args
    if invocation.function is PriceFunction.LESS_THAN:
        return less_than(items, args["upper"])
    if invocation.function is PriceFunction.GREATER_THAN:
        return greater_than(items, args["lower"])
    if invocation.function is PriceFunction.BETWEEN:
        return between(items, args["lower"], args["upper"])
    raise ValueError(f"unhandled price function: {invocation.function!r}")


def select_base_set(
    catalog: Sequence[CatalogItem],
    seen_ids: Set[str],
    policy: ToolBaseSet,
) -> List[CatalogItem]:
    """Items a tool call filters: the last result, or the whole catalog.

    An empty seen set, including one left by a turn that matched nothing, counts as
    nothing seen, and the seen policy falls back to the whole catalog.
    """
    if policy is ToolBaseSet.CATALOG or not seen_ids:
        return list(catalog)
    return restrict_to_seen(catalog, seen_ids)
