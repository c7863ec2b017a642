# Data models for a filtering session.
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Union


@dataclass(frozen=True)
class CatalogItem:
    """One product as supplied by the catalog provider.

    `id` is the product handle; the core never mutates items.
    """
    id: str
    title: str
    description: str = ""
    price: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CatalogItem":
        """Build an item from provider JSON, accepting `handle` for `id` and string prices."""
        item_id = data.get("id") or data.get("handle")
        if not item_id:
            raise ValueError("catalog item needs an 'id' or 'handle'")
        raw_price = data.get("price")
        try:
            price = float(raw_price) if raw_price not in (None, "") else 0.0
        except (TypeError, ValueError):
            raise ValueError(f"invalid price for item {item_id!r}: {raw_price!r}")
        return cls(
            id=str(item_id),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            price=price,
        )


@dataclass
class SessionState:
    """Per-owner filtering history."""
    active_prompts: List[str] = field(default_factory=list)
    seen_item_ids: Set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.active_prompts and not self.seen_item_ids


@dataclass(frozen=True)
class FilterRequest:
    query: Optional[str] = None
    reset: bool = False

    @property
    def is_empty(self) -> bool:
        return self.query is None or not self.query.strip()


class PriceFunction(str, Enum):
    """Deterministic numeric filters the model may delegate to."""
    LESS_THAN = "price_less_than"
    GREATER_THAN = "price_greater_than"
    BETWEEN = "price_between"


@dataclass(frozen=True)
class StructuredFilterResult:
    """The model answered directly with the ids it kept."""
    matched_ids: List[str]
    reasoning: str = ""


@dataclass(frozen=True)
class ToolInvocation:
    """The model delegated to a price filter with validated bounds."""
    function: PriceFunction
    args: Dict[str, float]


ModelResult = Union[StructuredFilterResult, ToolInvocation]


class FilterSource(str, Enum):
    """Which path produced a FilterOutcome."""
    RESET = "reset"
    MODEL = "model"
    TOOL = "tool"
    FALLBACK = "fallback"


@dataclass
class FilterOutcome:
    """What the caller gets back: items in catalog order plus diagnostics."""
    items: List[CatalogItem]
    source: FilterSource
    warning: Optional[str] = None
    reasoning: Optional[str] = None


@dataclass(frozen=True)
class ServiceToolCall:
    name: str
    arguments: str  # raw JSON text as produced by the model


@dataclass(frozen=True)
class ServiceReply:
    """Raw, unvalidated reply from the understanding service."""
    content: Optional[str] = None
    tool_calls: List[ServiceToolCall] = field(default_factory=list)
