"""
Bounded, time-limited cache for query matches.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import datetime
from typing import Any, Hashable, Tuple

DEFAULT_CAPACITY = 256
DEFAULT_TTL_SECONDS = 3600  # 1 hour

MISS = object()


class MatchCache:
    """
    Least-recently-used cache whose entries expire after a fixed age.

    Owned by whoever injects it; the knowledge base clears it on reload.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, ttl_seconds: float = DEFAULT_TTL_SECONDS):
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._entries: "OrderedDict[Hashable, Tuple[datetime, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Any:
        """Cached value, or MISS when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return MISS
            stored_at, value = entry
            if (datetime.now() - stored_at).total_seconds() >= self.ttl_seconds:
                del self._entries[key]
                return MISS
            self._entries.move_to_end(key)
            return value

    def put(self, key: Hashable, value: Any) -> None:
        if self.capacity <= 0:
            return
        with self._lock:
            self._entries[key] = (datetime.now(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def cache_key(query: str, threshold: float) -> Tuple[str, float]:
    return (" ".join(query.lower().split()), threshold)
