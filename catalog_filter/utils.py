"""Utility functions for catalog filtering."""
import json
from dataclasses import asdict
from typing import Any, Dict, List

from .models import CatalogItem, ServiceReply, ServiceToolCall


def load_catalog(path: str) -> List[CatalogItem]:
    """Read a JSON array of products (or `{"products": [...]}`) into CatalogItems."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("products", [])
    return [CatalogItem.from_dict(entry) for entry in data]


def serialize_item(item: CatalogItem) -> Dict[str, Any]:
    """Convert CatalogItem to a JSON-serializable dict."""
    return asdict(item)


def reply_from_message(msg: Any) -> ServiceReply:
    """Convert an OpenAI chat message to a ServiceReply."""
    tool_calls: List[ServiceToolCall] = []
    for tc in getattr(msg, "tool_calls", None) or []:
        function = getattr(tc, "function", None)
        # Only function tool calls carry a name and arguments
        if function is None:
            continue
        tool_calls.append(ServiceToolCall(name=function.name, arguments=function.arguments or ""))
    return ServiceReply(content=msg.content, tool_calls=tool_calls)
