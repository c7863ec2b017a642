"""Multi-turn catalog filtering.

Each call narrows the caller's catalog with one natural-language query, read
in the light of the owner's earlier queries:
1. read the owner's session (prior queries, last shown ids)
2. build the conversation and ask the understanding service once
3. apply its answer: kept ids directly, or a deterministic price tool
4. reconcile onto the catalog, persist the new session state

Entry point: CatalogFilterAgent.filter_catalog()
"""

import logging
from contextlib import AsyncExitStack
from typing import List, Optional, Sequence, Tuple

from .config import TOOL_BASE_SET
from .context import build_messages
from .errors import EmptyToolInvocation, PersistenceError, ResponseValidationError, UpstreamUnavailable
from .models import (
    CatalogItem,
    FilterOutcome,
    FilterRequest,
    FilterSource,
    SessionState,
    StructuredFilterResult,
    ToolInvocation,
)
from .reconciler import ResultReconciler, restrict_to_seen
from .resolver import IntentResolver
from .service import AbstractUnderstandingService, OpenAIUnderstandingService
from .session import AbstractSessionStore, InMemorySessionStore
from .tools import ToolBaseSet, dispatch, select_base_set

logger = logging.getLogger(__name__)


def _join(warnings: List[Optional[str]]) -> Optional[str]:
    present = [w for w in warnings if w]
    return "; ".join(present) if present else None


class CatalogFilterAgent:
    """Keeps one filtering session per owner and narrows catalogs query by query."""

    def __init__(
        self,
        service: AbstractUnderstandingService | None = None,
        store: AbstractSessionStore | None = None,
        tool_base_set: ToolBaseSet | str = TOOL_BASE_SET,
        resolver: IntentResolver | None = None,
    ) -> None:
        self.store: AbstractSessionStore = store or InMemorySessionStore()
        self.resolver = resolver or IntentResolver(service or OpenAIUnderstandingService())
        self.reconciler = ResultReconciler(self.store)
        self.tool_base_set = ToolBaseSet(tool_base_set)

    async def filter_catalog(
        self,
        owner_id: str,
        catalog: Sequence[CatalogItem],
        query: Optional[str],
        reset: bool = False,
    ) -> FilterOutcome:
        """Filter `catalog` for `owner_id`. Never raises; failures come back as a warning."""
        request = FilterRequest(query=query, reset=reset)
        items = list(catalog)
        try:
            async with AsyncExitStack() as stack:
                lock_warning = await self._hold_owner(stack, owner_id)
                outcome = await self._filter(owner_id, items, request)
        # Catch-all so the caller always gets a usable catalog
        except Exception as e:
            logger.exception("Unexpected error filtering catalog for %s", owner_id)
            return FilterOutcome(items=items, source=FilterSource.FALLBACK, warning=f"Filtering failed: {e}")
        outcome.warning = _join([lock_warning, outcome.warning])
        return outcome

    async def clear_session(self, owner_id: str) -> Optional[str]:
        async with AsyncExitStack() as stack:
            lock_warning = await self._hold_owner(stack, owner_id)
            return _join([lock_warning, await self.reconciler.clear(owner_id)])

    async def _hold_owner(self, stack: AsyncExitStack, owner_id: str) -> Optional[str]:
        """Take the owner's session lock for the rest of the stack; without it the request runs unserialised."""
        try:
            await stack.enter_async_context(self.store.lock(owner_id))
        except PersistenceError as e:
            logger.warning("Proceeding without session lock for %s: %s", owner_id, e)
            return f"Session lock unavailable: {e}"
        return None

    async def _filter(
        self,
        owner_id: str,
        catalog: List[CatalogItem],
        request: FilterRequest,
    ) -> FilterOutcome:
        # An empty query ends the session and shows everything.
        if request.is_empty:
            warning = await self.reconciler.clear(owner_id)
            return FilterOutcome(items=catalog, source=FilterSource.RESET, warning=warning)

        query = request.query.strip()
        if request.reset:
            read_warning = await self.reconciler.clear(owner_id)
            state = SessionState()
        else:
            state, read_warning = await self._read_state(owner_id)

        messages = build_messages(catalog, state.active_prompts, state.seen_item_ids, query)
        try:
            result = await self.resolver.resolve(messages)
        except EmptyToolInvocation as e:
            logger.warning("No filter applied for %s: %s", owner_id, e)
            base = select_base_set(catalog, state.seen_item_ids, self.tool_base_set)
            items, write_warning = await self.reconciler.commit(
                owner_id, catalog, [item.id for item in base], query, remember_query=not request.reset
            )
            return FilterOutcome(
                items=items,
                source=FilterSource.TOOL,
                warning=_join([read_warning, f"No filter applied: {e}", write_warning]),
            )
        except (UpstreamUnavailable, ResponseValidationError) as e:
            logger.warning("Falling back to last result for %s: %s", owner_id, e)
            last = restrict_to_seen(catalog, state.seen_item_ids)
            return FilterOutcome(
                items=last or catalog,
                source=FilterSource.FALLBACK,
                warning=_join([read_warning, f"Filtering unavailable: {e}"]),
            )

        if isinstance(result, ToolInvocation):
            base = select_base_set(catalog, state.seen_item_ids, self.tool_base_set)
            ids = [item.id for item in dispatch(result, base)]
            source = FilterSource.TOOL
            reasoning = f"Applied {result.function.value} {_format_args(result)} to {len(base)} product(s)."
        elif isinstance(result, StructuredFilterResult):
            ids = result.matched_ids
            source = FilterSource.MODEL
            reasoning = result.reasoning
        else:
            raise TypeError(f"unexpected model result: {result!r}")

        items, write_warning = await self.reconciler.commit(
            owner_id, catalog, ids, query, remember_query=not request.reset
        )
        logger.info("Filtered %d -> %d product(s) for %s via %s", len(catalog), len(items), owner_id, source.value)
        return FilterOutcome(
            items=items,
            source=source,
            warning=_join([read_warning, write_warning]),
            reasoning=reasoning,
        )

    async def _read_state(self, owner_id: str) -> Tuple[SessionState, Optional[str]]:
        try:
            return await self.store.read_state(owner_id), None
        except PersistenceError as e:
            logger.warning("Could not read session for %s, starting fresh: %s", owner_id, e)
            return SessionState(), f"Session history unavailable: {e}"


def _format_args(invocation: ToolInvocation) -> str:
    return ", ".join(f"{key}={value:g}" for key, value in sorted(invocation.args.items()))
