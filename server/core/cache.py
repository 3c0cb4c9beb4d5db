"""Two-tier cache for resolved image URLs.

- MemoryCache: bounded in-process map, evicts the oldest-inserted entry.
- DurableCache: TTL-bounded records persisted through the StorageAdapter,
  expired lazily on read.
"""

import json
import time
from typing import Callable, Dict, Optional

from core.config import Settings
from core.logging import get_logger, log_cache_operation
from core.storage import StorageAdapter

logger = get_logger(__name__)

DURABLE_RECORD_VERSION = 1


class _Node:
    __slots__ = ("key", "value", "prev", "next")

    def __init__(self, key: Optional[str] = None, value: Optional[str] = None):
        self.key = key
        self.value = value
        self.prev: Optional["_Node"] = None
        self.next: Optional["_Node"] = None


class MemoryCache:
    """Bounded key -> value map with insertion-order (FIFO) eviction.

    Entries live in a doubly-linked list in insertion order with a dict
    index, so the oldest entry is removed in O(1). Reads do not reorder
    entries, and overwriting a key keeps its original position.
    """

    def __init__(self, max_size: int = 100):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._index: Dict[str, _Node] = {}
        # Sentinels: head.next is the oldest entry, tail.prev the newest
        self._head = _Node()
        self._tail = _Node()
        self._head.next = self._tail
        self._tail.prev = self._head

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def get(self, key: str) -> Optional[str]:
        node = self._index.get(key)
        log_cache_operation(logger, "get", key, hit=node is not None, tier="memory")
        return node.value if node else None

    def set(self, key: str, value: str) -> None:
        node = self._index.get(key)
        if node:
            node.value = value
            return

        if len(self._index) >= self.max_size:
            self._evict_oldest()

        node = _Node(key, value)
        last = self._tail.prev
        last.next = node
        node.prev = last
        node.next = self._tail
        self._tail.prev = node
        self._index[key] = node

    def clear(self) -> None:
        self._index.clear()
        self._head.next = self._tail
        self._tail.prev = self._head

    def keys(self):
        """Keys from oldest to newest."""
        node = self._head.next
        while node is not self._tail:
            yield node.key
            node = node.next

    def _evict_oldest(self) -> None:
        oldest = self._head.next
        if oldest is self._tail:
            return
        self._head.next = oldest.next
        oldest.next.prev = self._head
        del self._index[oldest.key]
        log_cache_operation(logger, "evict", oldest.key, tier="memory")


class DurableCache:
    """TTL-bounded cache persisted through the storage adapter.

    Record format under `image_cache_prefix + key`:
        {"v": 1, "url": "<value>", "timestamp": <epoch seconds>}

    Best-effort: a failed write is logged and swallowed, never raised.
    """

    def __init__(self, adapter: StorageAdapter, settings: Settings,
                 clock: Callable[[], float] = time.time):
        self.adapter = adapter
        self.prefix = settings.image_cache_prefix
        self.ttl = settings.image_cache_ttl
        self.clock = clock

    def _storage_key(self, key: str) -> str:
        return self.prefix + key

    async def get(self, key: str) -> Optional[str]:
        """Return a live value, purging the record if expired or corrupt."""
        storage_key = self._storage_key(key)
        raw = await self.adapter.get(storage_key)
        if raw is None:
            log_cache_operation(logger, "get", key, hit=False, tier="durable")
            return None

        try:
            record = json.loads(raw)
            url = record["url"]
            timestamp = float(record["timestamp"])
            if not isinstance(url, str) or not url:
                raise ValueError("url must be a non-empty string")
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable cache record", cache_key=key, error=str(e))
            await self.adapter.delete(storage_key)
            return None

        age = self.clock() - timestamp
        if age < self.ttl:
            log_cache_operation(logger, "get", key, hit=True, tier="durable")
            return url

        log_cache_operation(logger, "expire", key, tier="durable", age_seconds=round(age))
        await self.adapter.delete(storage_key)
        return None

    async def set(self, key: str, value: str) -> bool:
        record = json.dumps({
            "v": DURABLE_RECORD_VERSION,
            "url": value,
            "timestamp": self.clock(),
        })
        stored = await self.adapter.set(self._storage_key(key), record)
        if not stored:
            logger.warning("Cache write error", cache_key=key)
        else:
            log_cache_operation(logger, "set", key, tier="durable", ttl=self.ttl)
        return stored

    async def clear(self) -> int:
        """Remove every durable cache record. Returns count deleted."""
        deleted = 0
        for storage_key in await self.adapter.list(self.prefix):
            if await self.adapter.delete(storage_key):
                deleted += 1
        log_cache_operation(logger, "clear", self.prefix, tier="durable", deleted=deleted)
        return deleted
