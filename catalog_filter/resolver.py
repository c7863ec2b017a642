"""One round trip to the understanding service, validated into a ModelResult."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List

from pydantic import BaseModel, ValidationError

from .config import REQUEST_TIMEOUT_SECONDS
from .errors import EmptyToolInvocation, ResponseValidationError, UpstreamUnavailable
from .models import ModelResult, PriceFunction, ServiceReply, StructuredFilterResult, ToolInvocation
from .service import AbstractUnderstandingService
from .tools import PARAMS_BY_FUNCTION, PRICE_TOOLS

logger = logging.getLogger(__name__)


class FilteredProducts(BaseModel):
    """Structured reply: kept ids in the model's order plus its reasoning."""
    filtered_products: List[str]
    reasoning: str


RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "product_list",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "filtered_products": {"type": "array", "items": {"type": "string"}},
                "reasoning": {"type": "string"},
            },
            "required": ["filtered_products", "reasoning"],
            "additionalProperties": False,
        },
    },
}


class IntentResolver:
    """Sends the context and turns the raw reply into exactly one ModelResult."""

    def __init__(
        self,
        service: AbstractUnderstandingService,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.service = service
        self.timeout = timeout

    async def resolve(self, messages: List[Dict[str, str]]) -> ModelResult:
        try:
            reply = await asyncio.wait_for(
                self.service.complete(messages, RESPONSE_FORMAT, PRICE_TOOLS),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(f"no reply within {self.timeout:g}s") from e
        return parse_reply(reply)


def parse_reply(reply: ServiceReply) -> ModelResult:
    """Validate a raw reply. A tool call wins over content; only the first tool call counts."""
    if reply.tool_calls:
        if len(reply.tool_calls) > 1:
            logger.info("Ignoring %d extra tool call(s)", len(reply.tool_calls) - 1)
        return _parse_tool_call(reply.tool_calls[0].name, reply.tool_calls[0].arguments)

    if not reply.content:
        raise ResponseValidationError("reply has neither content nor a tool call")
    try:
        parsed = FilteredProducts.model_validate_json(reply.content)
    except ValidationError as e:
        raise ResponseValidationError(f"reply does not match product_list schema: {e}") from e
    return StructuredFilterResult(matched_ids=parsed.filtered_products, reasoning=parsed.reasoning)


def _parse_tool_call(name: str, arguments: str) -> ToolInvocation:
    try:
        function = PriceFunction(name)
    except ValueError:
        raise EmptyToolInvocation(name)
    try:
        params = PARAMS_BY_FUNCTION[function].model_validate_json(arguments or "{}")
    except ValidationError as e:
        raise ResponseValidationError(f"invalid arguments for {name}: {e}") from e
    return ToolInvocation(function=function, args=params.model_dump())
