"""
TTL cache for agent results.

Entries are keyed by agent name plus a SHA-256 of the context fingerprint
and expire after ``ttl_seconds``.  When full, the oldest entry is evicted.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from copilot.models import AnalysisContext, Suggestion

logger = logging.getLogger("AgentCache")


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class AgentResultCache:
    """
    Bounded TTL cache of ``agent name + context -> suggestions``.

    Args:
        ttl_seconds: Entry lifetime (default 30 minutes).
        max_entries: Capacity before the oldest entry is evicted.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = 30 * 60,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, List[Suggestion]]]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats()

    @staticmethod
    def make_key(agent_name: str, context: AnalysisContext, extra: Optional[Dict[str, Any]] = None) -> str:
        payload = json.dumps(
            {"context": context.cache_fingerprint(), "extra": extra or {}},
            sort_keys=True,
            default=str,
        )
        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        return f"{agent_name}:{digest}"

    def get(self, key: str) -> Optional[List[Suggestion]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self._stats.misses += 1
                return None
            self._stats.hits += 1
            return list(value)

    def set(self, key: str, value: List[Suggestion]) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                oldest, _ = self._entries.popitem(last=False)
                self._stats.evictions += 1
                logger.debug("[CACHE] Evicted %s", oldest)
            self._entries[key] = (self._clock(), list(value))

    def invalidate(self, agent_name: Optional[str] = None) -> int:
        """Drop entries for *agent_name* (or everything). Returns the count."""
        with self._lock:
            if agent_name is None:
                count = len(self._entries)
                self._entries.clear()
                return count
            prefix = f"{agent_name}:"
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def cleanup(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [
                k for k, (stored_at, _) in self._entries.items()
                if now - stored_at > self.ttl_seconds
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("[CACHE] Cleaned up %d expired entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                size=len(self._entries),
            )
