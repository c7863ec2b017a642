"""Understanding service boundary.

Provides:
- AbstractUnderstandingService: one call in, one raw reply out
- OpenAIUnderstandingService: chat completions with a JSON schema reply and price tools

Replies are returned unvalidated; IntentResolver checks them against the contract."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import openai
from openai import AsyncOpenAI

from .config import MODEL_NAME, REQUEST_TIMEOUT_SECONDS, TEMPERATURE
from .errors import UpstreamUnavailable
from .models import ServiceReply
from .utils import reply_from_message

logger = logging.getLogger(__name__)


class AbstractUnderstandingService:
    """Interface for understanding services."""

    async def complete(
        self,
        messages: List[Dict[str, str]],
        response_format: Dict[str, Any],
        tools: List[Dict[str, Any]],
    ) -> ServiceReply:
        #Return the raw reply for one round trip; raise UpstreamUnavailable on transport failure
        raise NotImplementedError


class OpenAIUnderstandingService(AbstractUnderstandingService):
    """Adapter for the OpenAI chat completions API."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str = MODEL_NAME,
        temperature: float = TEMPERATURE,
    ) -> None:
        self._client = client
        self.model = model
        self.temperature = temperature

    async def complete(
        self,
        messages: List[Dict[str, str]],
        response_format: Dict[str, Any],
        tools: List[Dict[str, Any]],
    ) -> ServiceReply:
        if self._client is None:
            # Created on first use and reused for every later call
            try:
                self._client = AsyncOpenAI(timeout=REQUEST_TIMEOUT_SECONDS)
            except openai.OpenAIError as e:
                raise UpstreamUnavailable(f"OpenAI client not configured: {e}") from e
        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                response_format=response_format,
                tools=tools,
                tool_choice="auto",
            )
        except openai.APIError as e:
            logger.warning("Understanding service call failed: %s", e)
            raise UpstreamUnavailable(str(e)) from e

        if not completion.choices:
            return ServiceReply()
        return reply_from_message(completion.choices[0].message)
