"""Tag identity cache shared across recalculations.

Only tag *metadata* (which tag id backs a line/machine ref) is cached.
Sample values are window-specific and keep changing in the store, so they
are always fetched fresh for each computation.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from .domain.models import Tag

TagKey = Tuple[str, int, str]  # (taggable_type, taggable_id, ref)


class TagMetadataCache:
    """TTL cache for tag lookups, bounded in size.

    - entries expire after ``ttl_seconds``
    - when full, expired entries are purged first, then the oldest ones
    - misses (tag not configured) are not cached, so newly configured tags
      are picked up on the next run
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_size: int = 5000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._entries: Dict[TagKey, Tuple[float, Tag]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: TagKey) -> Optional[Tag]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            stored_at, tag = entry
            if self._clock() - stored_at > self._ttl:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return tag

    def put(self, key: TagKey, tag: Tag) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_size:
                self._evict()
            self._entries[key] = (self._clock(), tag)

    def get_or_load(self, key: TagKey, loader: Callable[[], Optional[Tag]]) -> Optional[Tag]:
        tag = self.get(key)
        if tag is not None:
            return tag
        tag = loader()
        if tag is not None:
            self.put(key, tag)
        return tag

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (t, _) in self._entries.items() if now - t > self._ttl]
        for k in expired:
            del self._entries[k]
        while len(self._entries) >= self._max_size:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]

    @property
    def stats(self) -> dict:
        return {
            "size": len(self._entries),
            "max_size": self._max_size,
            "ttl_seconds": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
        }
