import json
from typing import Any, Dict, List

import pytest

from catalog_filter.models import CatalogItem, ServiceReply, ServiceToolCall
from catalog_filter.service import AbstractUnderstandingService

SEEN_PREFIX = "Previously shown products: "
QUERY_PREFIX = "The query is: "


class ScriptedService(AbstractUnderstandingService):
    """Returns queued replies (or raises queued exceptions) and records every call."""

    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, messages, response_format, tools):
        self.calls.append({"messages": messages, "response_format": response_format, "tools": tools})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class TokenMatchService(AbstractUnderstandingService):
    """Keeps items of the seen set whose title has the query as a whole word."""

    def __init__(self) -> None:
        self.calls: List[List[Dict[str, str]]] = []

    async def complete(self, messages, response_format, tools):
        self.calls.append(messages)
        seen = next(m["content"] for m in messages if m["content"].startswith(SEEN_PREFIX))
        base = json.loads(seen[len(SEEN_PREFIX):])
        query = [m["content"] for m in messages if m["role"] == "user"][-1][len(QUERY_PREFIX):]
        token = query.strip().lower()
        ids = [p["id"] for p in base if token in p["title"].lower().split()]
        return structured(ids, f"titles containing {token!r}")


def structured(ids: List[str], reasoning: str = "because") -> ServiceReply:
    return ServiceReply(content=json.dumps({"filtered_products": ids, "reasoning": reasoning}))


def tool_call(name: str, **args: float) -> ServiceReply:
    return ServiceReply(tool_calls=[ServiceToolCall(name=name, arguments=json.dumps(args))])


@pytest.fixture
def catalog() -> List[CatalogItem]:
    return [
        CatalogItem(id="fall-jacket", title="Fall Jacket Men", description="Waxed cotton", price=120.0),
        CatalogItem(id="fall-dress", title="Fall Dress Women", description="Wool blend", price=80.0),
        CatalogItem(id="summer-shirt", title="Summer Shirt Men", description="Linen", price=40.0),
        CatalogItem(id="tux", title="Classic Tuxedo", description="For weddings", price=300.0),
    ]


@pytest.fixture
def priced() -> List[CatalogItem]:
    return [
        CatalogItem(id="a", title="Tee", price=10),
        CatalogItem(id="b", title="Jean", price=50),
        CatalogItem(id="c", title="Coat", price=60),
    ]
