"""
Bounded, TTL-based memoization of candidate evaluations.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional, Tuple

from siteresolver.core.exceptions import CacheError
from siteresolver.core.models import BusinessRecord, Evaluation
from siteresolver.filtering.domains import normalize_url
from siteresolver.normalization.identity import identity_fingerprint


class VerificationCache:
    """
    Cache of (normalized URL, business identity) -> Evaluation.

    Each entry lives for a fixed window. When the cache is full, expired
    entries are evicted first, then the oldest-inserted ones. Safe to share
    between concurrent discovery runs.
    """

    def __init__(self, ttl_seconds: float = 900.0, max_entries: int = 2000,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry
            max_entries: Maximum number of entries
            clock: Monotonic time source
        """
        if ttl_seconds <= 0:
            raise ValueError("Cache TTL must be positive")
        if max_entries <= 0:
            raise ValueError("Cache size must be positive")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Evaluation]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self.logger = logging.getLogger('site_resolver')

    @staticmethod
    def build_key(url: str, record: BusinessRecord) -> str:
        """Cache key: normalized URL plus the record's identity fingerprint."""
        return f"{normalize_url(url) or url}|{identity_fingerprint(record)}"

    def get(self, key: str) -> Optional[Evaluation]:
        """Return the cached evaluation, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            stored_at, evaluation = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self._evictions += 1
                self._misses += 1
                return None
            self._hits += 1
            return evaluation

    def set(self, key: str, evaluation: Evaluation) -> None:
        """Store an evaluation, evicting entries if the cache is full.

        Raises:
            CacheError: If the value is not an Evaluation
        """
        if not isinstance(evaluation, Evaluation):
            raise CacheError(f"Only evaluations can be cached, got {type(evaluation).__name__}")

        with self._lock:
            now = self._clock()
            if key in self._entries:
                # Re-insertion moves the entry to the back of the FIFO
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                self._evict(now)
            self._entries[key] = (now, evaluation)

    def _evict(self, now: float) -> None:
        """Drop expired entries, then the oldest ones until there is room."""
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        evicted = len(expired)

        while len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
            evicted += 1

        self._evictions += evicted
        if evicted:
            self.logger.debug(f"Verification cache evicted {evicted} entries")

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, int]:
        """Hit/miss/eviction counters."""
        with self._lock:
            return {
                'entries': len(self._entries),
                'hits': self._hits,
                'misses': self._misses,
                'evictions': self._evictions,
            }
