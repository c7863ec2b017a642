from .agent import CatalogFilterAgent
from .errors import (
    CatalogFilterError,
    EmptyToolInvocation,
    PersistenceError,
    ResponseValidationError,
    UpstreamUnavailable,
)
from .models import CatalogItem, FilterOutcome, FilterSource, SessionState, StructuredFilterResult, ToolInvocation
from .service import AbstractUnderstandingService, OpenAIUnderstandingService
from .session import AbstractSessionStore, InMemorySessionStore, RedisSessionStore
from .tools import ToolBaseSet

__all__ = [
    'CatalogFilterAgent',
    'CatalogFilterError','EmptyToolInvocation','PersistenceError','ResponseValidationError','UpstreamUnavailable',
    'CatalogItem','FilterOutcome','FilterSource','SessionState','StructuredFilterResult','ToolInvocation',
    'AbstractUnderstandingService','OpenAIUnderstandingService',
    'AbstractSessionStore','InMemorySessionStore','RedisSessionStore',
    'ToolBaseSet',
]
