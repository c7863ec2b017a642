"""Build the message list sent to the understanding service.

Order is fixed: catalog, prior queries, seen set, new query, policy. Everything
is serialised with sorted keys and iterated in catalog or insertion order, so
the same session state and query always give the same bytes.
"""

import json
from typing import Any, Dict, List, Sequence, Set

from .models import CatalogItem
from .reconciler import restrict_to_seen

# Policy sent after the query on every call.
SYSTEM_FILTER_PROMPT = (
    "You are an intelligent e-commerce sales agent who understands user intent and narrows a clothing "
    "catalog to the products that fit it. "
    "Treat the user queries in this conversation as cumulative: read each new query together with every "
    "earlier query and piece together what the user needs overall. "
    "Always prioritize inferred context over individual keywords. 'I'm going to a wedding' implies formal "
    "attire such as suits or dresses, but 'I'm going to get dirty at the wedding' calls for casual, durable "
    "clothing instead. "
    "Before applying any price filter, verify step by step which price bound the user asked for and which "
    "products satisfy it. "
    "Decide which products to filter: if the new query is related to the previous one, filter the previously "
    "shown products; if it is unrelated, filter the full catalog again. "
    "If the query is only a numeric price bound, call the matching price tool instead of answering. "
    "Otherwise answer directly, returning the ids from the JSON input in filtered_products."
)

FEW_SHOT_EXAMPLES = (
    "Query: Short Sleeve. Response: T shirts and blouses.",
    "Query: Men. Response: Heavyweight overshirt, taper jean, classic cardigan.",
)

REASONING_PROMPT = "Please also explain how you obtained the results in the reasoning field of the output."


def _dumps(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def simplify(item: CatalogItem) -> Dict[str, Any]:
    """The fields the model needs to judge an item."""
    return {
        "id": item.id,
        "title": item.title,
        "description": item.description,
        "price": item.price,
    }


def user_turn(query: str) -> Dict[str, str]:
    return {"role": "user", "content": f"The query is: {query}"}


def build_messages(
    catalog: Sequence[CatalogItem],
    prior_prompts: Sequence[str],
    seen_ids: Set[str],
    query: str,
) -> List[Dict[str, str]]:
    """Assemble the ordered conversation for one filtering call."""
    products = [simplify(item) for item in catalog]
    if seen_ids:
        seen = [simplify(item) for item in restrict_to_seen(catalog, seen_ids)]
    else:
        seen = products

    messages: List[Dict[str, str]] = [
        {"role": "system", "content": f"Full catalog: {_dumps(products)}"},
    ]
    messages.extend(user_turn(prompt) for prompt in prior_prompts)
    messages.append({"role": "system", "content": f"Previously shown products: {_dumps(seen)}"})
    messages.append(user_turn(query))
    messages.append({"role": "system", "content": SYSTEM_FILTER_PROMPT})
    messages.extend({"role": "system", "content": example} for example in FEW_SHOT_EXAMPLES)
    messages.append({"role": "system", "content": REASONING_PROMPT})
    return messages
