"""Namespaced, quota-checked key-value storage adapter.

System of record for commands and tags, and backing store for the durable
image cache. Keys handed in by callers are prefixed with an adapter-private
namespace so unrelated data in the same host store never collides.

Failure policy: nothing here raises for an unavailable store, an oversized
value or a store error. `get` returns None, `set`/`delete` return False and
`list` returns an empty set.
"""

import time
from typing import Optional, Set

from core.config import Settings
from core.database import KeyValueStore
from core.logging import get_logger, log_storage_operation
from models.results import StorageInfo

logger = get_logger(__name__)


class StorageAdapter:
    """Async storage interface over a host key-value store."""

    def __init__(self, store: KeyValueStore, settings: Settings):
        self.store = store
        self.settings = settings
        self.namespace = settings.storage_namespace
        self.quota_bytes = settings.storage_quota_bytes
        self.available = True

    async def startup(self) -> bool:
        """Probe the host store with a throwaway write and delete.

        A failed probe is logged once and marks the adapter unavailable;
        every later operation then degrades to failure/absence.
        """
        probe_key = self._full_key(f"test_{int(time.time() * 1000)}")
        try:
            await self.store.set_item(probe_key, "test")
            await self.store.remove_item(probe_key)
            self.available = True
            logger.info("Storage available", namespace=self.namespace)
        except Exception as e:
            self.available = False
            logger.warning("Storage is not available", namespace=self.namespace, error=str(e))
        return self.available

    def _full_key(self, key: str) -> str:
        return self.namespace + key

    @staticmethod
    def size_of(value: str) -> int:
        """Serialized byte size of a value as the host store accounts it."""
        return len(value.encode("utf-8"))

    def fits_quota(self, value: str) -> bool:
        return self.size_of(value) <= self.quota_bytes

    async def list(self, prefix: str) -> Set[str]:
        """Keys currently stored under `prefix`, without the adapter namespace."""
        keys = await self.scan(prefix)
        return keys if keys is not None else set()

    async def scan(self, prefix: str) -> Optional[Set[str]]:
        """Like `list`, but None when the store could not be listed."""
        if not self.available:
            return None
        try:
            full_keys = await self.store.keys(self._full_key(prefix))
            return {key[len(self.namespace):] for key in full_keys}
        except Exception as e:
            logger.error("Error listing keys", prefix=prefix, error=str(e))
            return None

    async def get(self, key: str) -> Optional[str]:
        if not self.available:
            return None
        try:
            return await self.store.get_item(self._full_key(key))
        except Exception as e:
            logger.error("Error getting key", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str) -> bool:
        """Store a value. Rejected values never reach the store."""
        if not self.available:
            return False

        if not isinstance(value, str) or not value:
            logger.error("Value must be a non-empty string", key=key)
            return False

        size = self.size_of(value)
        if size > self.quota_bytes:
            logger.error("Value too large to store", key=key, size=size, quota=self.quota_bytes)
            return False

        try:
            await self.store.set_item(self._full_key(key), value)
            log_storage_operation(logger, "set", key, success=True, size=size)
            return True
        except Exception as e:
            logger.error("Error setting key", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """Delete a key. Deleting a missing key succeeds."""
        if not self.available:
            return False
        try:
            await self.store.remove_item(self._full_key(key))
            log_storage_operation(logger, "delete", key, success=True)
            return True
        except Exception as e:
            logger.error("Error deleting key", key=key, error=str(e))
            return False

    async def clear(self) -> bool:
        """Delete every key in the adapter namespace."""
        if not self.available:
            return False
        try:
            for full_key in await self.store.keys(self.namespace):
                await self.store.remove_item(full_key)
            logger.info("Storage namespace cleared", namespace=self.namespace)
            return True
        except Exception as e:
            logger.error("Error clearing storage", error=str(e))
            return False

    async def get_storage_info(self) -> StorageInfo:
        """Bytes used by namespaced keys and values."""
        used = 0
        capacity = self.settings.storage_capacity_bytes
        if self.available:
            try:
                for full_key in await self.store.keys(self.namespace):
                    value = await self.store.get_item(full_key)
                    if value:
                        used += self.size_of(full_key) + self.size_of(value)
            except Exception as e:
                logger.error("Error measuring storage", error=str(e))

        return StorageInfo(
            used=used,
            available=capacity,
            percentage=round(used / capacity * 100),
        )
