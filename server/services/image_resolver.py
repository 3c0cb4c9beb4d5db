"""Resolve command names to wiki image URLs through a two-tier cache.

Lookup order for a name:
    1. Memory cache
    2. Durable cache (hit is copied into memory)
    3. Remote candidates, in order, first success wins

Concurrent resolutions of the same name are not coalesced; each caller
runs the full candidate sequence.
"""

import time
from typing import Dict, Iterable, List, Optional, Set

from core.cache import DurableCache, MemoryCache
from core.config import Settings
from core.logging import get_logger, log_execution_time
from models.entities import Command
from services.cancellation import CancellationToken, is_cancelled
from services.wiki_client import RemoteLookupError, WikiImageClient

logger = get_logger(__name__)


def normalize_key(name: Optional[str]) -> str:
    """Cache key for a raw resource name: trimmed and lowercased."""
    return (name or "").strip().lower()


class ImageResolver:
    """Read-through, write-through image URL resolver."""

    def __init__(self, memory_cache: MemoryCache, durable_cache: DurableCache,
                 wiki_client: WikiImageClient, settings: Settings):
        self.memory_cache = memory_cache
        self.durable_cache = durable_cache
        self.wiki = wiki_client
        self.suffixes = list(settings.image_candidate_suffixes)
        self.extension = settings.image_extension
        self._in_flight: Set[int] = set()

    def candidate_filenames(self, name: str) -> List[str]:
        cleaned = name.strip()
        return [f"{cleaned}{suffix}{self.extension}" for suffix in self.suffixes]

    async def resolve(self, name: Optional[str],
                      token: Optional[CancellationToken] = None) -> Optional[str]:
        """Image URL for `name`, or None when blank, unknown or cancelled."""
        key = normalize_key(name)
        if not key:
            return None

        cached = self.memory_cache.get(key)
        if cached:
            return cached

        cached = await self.durable_cache.get(key)
        if cached:
            self.memory_cache.set(key, cached)
            return cached

        start_time = time.time()
        for filename in self.candidate_filenames(name):
            if is_cancelled(token):
                logger.debug("Image resolution cancelled", cache_key=key)
                return None

            try:
                url = await self.wiki.lookup(filename)
            except RemoteLookupError as e:
                logger.warning("Image candidate lookup failed", filename=filename, error=str(e))
                continue

            if is_cancelled(token):
                logger.debug("Discarding image resolved after cancellation", cache_key=key)
                return None

            if url:
                self.memory_cache.set(key, url)
                await self.durable_cache.set(key, url)
                log_execution_time(logger, "resolve_image", start_time, time.time(),
                                   cache_key=key, filename=filename)
                return url

        logger.info("No image found", cache_key=key, candidates=len(self.suffixes))
        return None

    async def resolve_missing_images(self, commands: Iterable[Command],
                                     token: Optional[CancellationToken] = None) -> Dict[int, str]:
        """Resolve images for commands without a manual image.

        Commands already being resolved by another call are skipped. Stops
        issuing lookups once the token is cancelled.
        """
        resolved: Dict[int, str] = {}
        for command in commands:
            if is_cancelled(token):
                break
            if command.image or command.id in self._in_flight:
                continue

            self._in_flight.add(command.id)
            try:
                url = await self.resolve(command.name, token)
            finally:
                self._in_flight.discard(command.id)

            if url and not is_cancelled(token):
                resolved[command.id] = url

        return resolved

    async def clear_caches(self) -> None:
        self.memory_cache.clear()
        await self.durable_cache.clear()
