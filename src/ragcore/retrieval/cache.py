"""
Semantic Response Cache - Short-lived cache of query results.

Matching is exact string equality on the query text, preferring the newest
entry. Entries expire once their age reaches the TTL; expired entries are
purged before every lookup and never returned. A miss is a normal outcome.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..core.types import CacheEntry, CacheStats, utc_now
from ..storage.sqlite_store import RagStore

logger = logging.getLogger(__name__)


DEFAULT_TTL_SECONDS = 3600.0


class SemanticResponseCache:
    """
    TTL-bounded exact-match cache backed by the store.

    Example:
        >>> cache = SemanticResponseCache(store, ttl_seconds=3600)
        >>> entry = cache.store("what is rag?", '{"hits": []}', [0.1, 0.2])
        >>> cache.lookup("what is rag?").result_content
        '{"hits": []}'
    """

    def __init__(
        self,
        db: RagStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        enabled: bool = True,
    ):
        """
        Initialize the cache.

        Args:
            db: Store holding the cache table
            ttl_seconds: Entry lifetime in seconds
            clock: Returns the current aware UTC time (injectable for tests)
            enabled: When False, lookups always miss and nothing is stored
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.db = db
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.enabled = enabled

    def lookup(self, query_text: str) -> Optional[CacheEntry]:
        """
        Return the newest unexpired entry for an exact query text.

        Args:
            query_text: Query text, compared exactly

        Returns:
            CacheEntry on a hit, None on a miss
        """
        if not self.enabled:
            return None

        now = self.clock()
        self.purge_expired(now)

        entry = self.db.find_cache_entry(query_text)
        if entry is None or entry.is_expired(now, self.ttl_seconds):
            logger.debug("Cache miss")
            return None

        age = (now - entry.created_at).total_seconds()
        logger.info(f"Cache hit (entry {entry.cache_id}, age {age:.0f}s)")
        return entry

    def store(
        self,
        query_text: str,
        result_content: str,
        result_embedding: Optional[List[float]] = None,
    ) -> Optional[CacheEntry]:
        """
        Record a result for a query text.

        Entries are never updated; a newer entry for the same text
        supersedes older ones at lookup.

        Returns:
            The stored entry, or None when the cache is disabled
        """
        if not self.enabled:
            return None

        entry = CacheEntry(
            cache_id=None,
            query_text=query_text,
            result_content=result_content,
            result_embedding=list(result_embedding) if result_embedding else None,
            created_at=self.clock(),
        )
        entry = self.db.insert_cache_entry(entry)
        logger.debug(f"Cached result as entry {entry.cache_id}")
        return entry

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete entries whose age has reached the TTL.

        Returns:
            Number of entries removed
        """
        now = now or self.clock()
        cutoff = now - timedelta(seconds=self.ttl_seconds)
        removed = self.db.delete_cache_entries_before(cutoff)
        if removed:
            logger.debug(f"Purged {removed} expired cache entries")
        return removed

    def clean(self) -> int:
        """Purge expired entries now."""
        removed = self.purge_expired()
        logger.info(f"Cache cleanup removed {removed} expired entries")
        return removed

    def clear(self) -> int:
        """Remove every entry."""
        removed = self.db.clear_cache()
        logger.info(f"Cleared {removed} cache entries")
        return removed

    def stats(self) -> CacheStats:
        """Counts and age range of the entries currently stored."""
        now = self.clock()
        entries = self.db.list_cache_entries()
        if not entries:
            return CacheStats()

        hour_ago = now - timedelta(hours=1)
        created = [e.created_at for e in entries]
        return CacheStats(
            total_entries=len(entries),
            entries_last_hour=sum(1 for c in created if c > hour_ago),
            distinct_queries=len({e.query_text for e in entries}),
            oldest_entry=min(created),
            newest_entry=max(created),
        )
