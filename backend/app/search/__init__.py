"""Message search for group chats."""

from .service import MessageSearchFilters, MessageSearchResult, MessageSearchService

__all__ = [
    "MessageSearchFilters",
    "MessageSearchResult",
    "MessageSearchService",
]
