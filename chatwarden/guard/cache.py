"""Bounded, TTL-expiring response cache.

Eviction is insertion-order FIFO, not LRU: reads never reorder entries.
Keys sit in an explicit deque next to the dict. Each insert stamps the key
with a sequence number so keys removed lazily (expired on read) can be left
in the deque and skipped at eviction time.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value: V
    expires_at: float
    seq: int


class ResponseCache(Generic[V]):
    """Fixed-capacity FIFO map with per-entry expiry."""

    def __init__(self, capacity: int, ttl: float) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.ttl = ttl
        self._entries: dict[str, CacheEntry[V]] = {}
        self._order: deque[tuple[str, int]] = deque()
        self._seq = 0
        self.hits = 0
        self.misses = 0

    def get(self, key: str, now: float | None = None) -> V | None:
        """Return the cached value, or None on miss. Expired entries are removed."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        now = time.time() if now is None else now
        if now >= entry.expires_at:
            del self._entries[key]
            self.misses += 1
            self._compact()
            return None
        self.hits += 1
        return entry.value

    def set(self, key: str, value: V, now: float | None = None) -> None:
        now = time.time() if now is None else now
        existing = self._entries.get(key)
        if existing is not None:
            # Overwrite in place; FIFO position stays where the key was first inserted
            existing.value = value
            existing.expires_at = now + self.ttl
            return
        if len(self._entries) >= self.capacity:
            self._evict_oldest()
        self._seq += 1
        self._entries[key] = CacheEntry(value, now + self.ttl, self._seq)
        self._order.append((key, self._seq))

    def _evict_oldest(self) -> str | None:
        while self._order:
            key, seq = self._order.popleft()
            entry = self._entries.get(key)
            if entry is not None and entry.seq == seq:
                del self._entries[key]
                return key
        return None

    def _compact(self) -> None:
        # Drop tombstones once they dominate the queue
        if len(self._order) > 2 * self.capacity:
            self._order = deque(
                (k, s) for k, s in self._order
                if (e := self._entries.get(k)) is not None and e.seq == s
            )

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._order.clear()
