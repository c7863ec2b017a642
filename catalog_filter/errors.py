"""Exception hierarchy for catalog filtering.

Every error is local to one `filter_catalog` call; the agent turns them into a
warning on the outcome instead of letting them reach the caller.
"""


class CatalogFilterError(Exception):
    """Base exception for catalog_filter."""


class UpstreamUnavailable(CatalogFilterError):
    """The understanding service could not be reached or timed out."""


class ResponseValidationError(CatalogFilterError):
    """The understanding service replied with something that fails the contract."""


class PersistenceError(CatalogFilterError):
    """A session store read or write failed."""


class EmptyToolInvocation(CatalogFilterError):
    """A tool call named a function we do not provide."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown tool function: {name!r}")
        self.name = name
