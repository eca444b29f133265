"""
Tail query service - stateless, cursor based incremental reads per category.

The caller holds the cursor; the service only resolves a category to its
collection, decodes the cursor and asks the store for the next page.
"""

from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Optional

from .codec import decode_cursor, encode_cursor
from .config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from .errors import InvalidCursor, UnsupportedCategory
from .schema import BootstrapResult, CollectionStats, TailResult
from .store import IEventStore
from ..util.logging import logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TailService:
    """
    Serves bootstrap and tail queries over an event store.

    Args:
        store: storage backend, used read-only
        categories: category name -> collection name; copied and frozen
        default_page_size: page size when the caller gives no usable limit
        max_page_size: hard ceiling applied to every requested limit
    """

    def __init__(self, store: IEventStore, categories: Mapping[str, str],
                 default_page_size: int = DEFAULT_PAGE_SIZE,
                 max_page_size: int = MAX_PAGE_SIZE):
        if max_page_size < 1 or default_page_size < 1:
            raise ValueError("Page sizes must be >= 1")

        self.store = store
        self.categories = MappingProxyType(dict(categories))
        self.default_page_size = min(default_page_size, max_page_size)
        self.max_page_size = max_page_size

    def collection_for(self, category: str) -> str:
        """Resolve a category, rejecting unknown ones before any storage access."""
        collection = self.categories.get(category)
        if collection is None:
            logger.log_rejected("tail.category", "unsupported_category", {"category": category})
            raise UnsupportedCategory(category)
        return collection

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None or limit < 1:
            return self.default_page_size
        return min(limit, self.max_page_size)

    def bootstrap(self, category: str) -> BootstrapResult:
        """Starting cursor for a new consumer: the newest existing key, no backlog."""
        collection = self.collection_for(category)
        cursor = encode_cursor(self.store.newest_key(collection))
        result = BootstrapResult(cursor=cursor, empty=cursor is None)
        logger.log_bootstrap(category, result.cursor, result.empty)
        return result

    def tail(self, category: str, cursor: Optional[str] = None,
             limit: Optional[int] = None) -> TailResult:
        """
        Return records strictly after `cursor`, ascending, at most `limit`.

        Without a cursor an empty batch is returned together with the
        bootstrap cursor. With an empty batch the request cursor is echoed
        back, so the returned cursor never regresses.
        """
        collection = self.collection_for(category)
        page_size = self.clamp_limit(limit)

        if not cursor:
            boot = self.bootstrap(category)
            return TailResult(items=(), next_cursor=boot.cursor, count=0, server_time=_utcnow())

        try:
            after = decode_cursor(cursor)
        except InvalidCursor:
            logger.log_rejected("tail.query", "invalid_cursor", {"category": category, "cursor": cursor})
            raise

        items = tuple(self.store.items_after(collection, after, page_size))
        next_cursor = items[-1].id if items else encode_cursor(after)

        logger.log_tail_query(category, cursor, len(items), next_cursor, page_size)
        return TailResult(items=items, next_cursor=next_cursor, count=len(items), server_time=_utcnow())

    def stats(self, category: str) -> CollectionStats:
        """Diagnostic view of a collection: count and key range."""
        collection = self.collection_for(category)
        return CollectionStats(
            collection=collection,
            count=self.store.count(collection),
            newest=encode_cursor(self.store.newest_key(collection)),
            oldest=encode_cursor(self.store.oldest_key(collection)),
            server_time=_utcnow(),
        )
