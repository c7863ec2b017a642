"""Map returned ids back onto the caller's catalog and persist the new state."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .errors import PersistenceError
from .models import CatalogItem
from .session import AbstractSessionStore

logger = logging.getLogger(__name__)


def reconcile(catalog: Sequence[CatalogItem], ids: Iterable[str]) -> List[CatalogItem]:
    """Catalog items whose id is in `ids`, in catalog order.

    Ids the catalog does not know about are dropped, so nothing fabricated
    by the model reaches the caller.
    """
    wanted = set(ids)
    kept = [item for item in catalog if item.id in wanted]
    unknown = wanted - {item.id for item in kept}
    if unknown:
        logger.warning("Dropping %d id(s) not in catalog: %s", len(unknown), sorted(unknown))
    return kept


def restrict_to_seen(catalog: Sequence[CatalogItem], seen_ids: Set[str]) -> List[CatalogItem]:
    """The catalog restricted to previously seen ids, in catalog order."""
    return [item for item in catalog if item.id in seen_ids]


class ResultReconciler:
    """Writes the outcome of a filter back to the session store.

    Store failures are logged and reported as a warning string; they never
    abort the response being built.
    """

    def __init__(self, store: AbstractSessionStore) -> None:
        self.store = store

    async def clear(self, owner_id: str) -> Optional[str]:
        try:
            await self.store.clear(owner_id)
        except PersistenceError as e:
            logger.warning("Could not clear session for %s: %s", owner_id, e)
            return f"Session could not be cleared: {e}"
        return None

    async def commit(
        self,
        owner_id: str,
        catalog: Sequence[CatalogItem],
        ids: Iterable[str],
        query: str,
        remember_query: bool = True,
    ) -> Tuple[List[CatalogItem], Optional[str]]:
        """Reconcile `ids`, store them as the new seen set and, unless told not to, append `query` to the history."""
        items = reconcile(catalog, ids)
        warnings: List[str] = []
        # Writes are independent; a failed append still stores the seen set
        if remember_query:
            try:
                await self.store.append_prompt(owner_id, query)
            except PersistenceError as e:
                logger.warning("Could not save query for %s: %s", owner_id, e)
                warnings.append(f"Session history may be stale, query not saved: {e}")
        try:
            await self.store.write_seen_ids(owner_id, {item.id for item in items})
        except PersistenceError as e:
            logger.warning("Could not save seen products for %s: %s", owner_id, e)
            warnings.append(f"Session history may be stale, seen products not saved: {e}")
        return items, "; ".join(warnings) or None
