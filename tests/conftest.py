"""Shared fixtures: in-memory store, fake clock, scripted wiki transport."""

import json
from typing import Callable, Dict, List, Optional, Set

import httpx
import pytest
import pytest_asyncio

from core.cache import DurableCache, MemoryCache
from core.config import Settings
from core.database import MemoryStore
from core.storage import StorageAdapter
from services.entity_sync import EntitySynchronizer
from services.image_resolver import ImageResolver
from services.wiki_client import WikiImageClient


class FlakyStore(MemoryStore):
    """MemoryStore that raises for selected keys or for everything."""

    def __init__(self):
        super().__init__()
        self.fail_all = False
        self.fail_keys: Set[str] = set()
        self.fail_listing = False
        self.writes: List[str] = []

    def _check(self, key: str) -> None:
        if self.fail_all or key in self.fail_keys:
            raise OSError(f"store unavailable for {key}")

    async def get_item(self, key: str) -> Optional[str]:
        self._check(key)
        return await super().get_item(key)

    async def set_item(self, key: str, value: str) -> None:
        self._check(key)
        self.writes.append(key)
        await super().set_item(key, value)

    async def remove_item(self, key: str) -> None:
        self._check(key)
        await super().remove_item(key)

    async def keys(self, prefix: str = "") -> List[str]:
        if self.fail_all or self.fail_listing:
            raise OSError("store unavailable")
        return await super().keys(prefix)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class WikiStub:
    """httpx transport answering imageinfo queries from a title -> url map."""

    def __init__(self, images: Optional[Dict[str, str]] = None):
        self.images = dict(images or {})
        self.failing_titles: Set[str] = set()
        self.requested: List[str] = []
        self.on_request: Optional[Callable[[], None]] = None

    @property
    def calls(self) -> int:
        return len(self.requested)

    def handler(self, request: httpx.Request) -> httpx.Response:
        title = request.url.params["titles"]
        self.requested.append(title)
        if self.on_request:
            self.on_request()
        if title in self.failing_titles:
            raise httpx.ConnectError("connection refused", request=request)

        filename = title[len("File:"):]
        if filename in self.images:
            page = {"pageid": 1, "title": title, "imageinfo": [{"url": self.images[filename]}]}
            return httpx.Response(200, text=json.dumps({"query": {"pages": {"1": page}}}))
        missing = {"ns": 6, "title": title, "missing": ""}
        return httpx.Response(200, text=json.dumps({"query": {"pages": {"-1": missing}}}))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        storage_backend="memory",
        database_url=f"sqlite+aiosqlite:///{tmp_path}/test.db",
        memory_cache_size=3,
        save_success_delay=0.01,
    )


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest_asyncio.fixture
async def adapter(store: FlakyStore, settings: Settings) -> StorageAdapter:
    adapter = StorageAdapter(store, settings)
    await adapter.startup()
    return adapter


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wiki() -> WikiStub:
    return WikiStub()


@pytest_asyncio.fixture
async def http_client(wiki: WikiStub):
    client = httpx.AsyncClient(transport=httpx.MockTransport(wiki.handler))
    yield client
    await client.aclose()


@pytest.fixture
def resolver(adapter, settings, clock, http_client) -> ImageResolver:
    return ImageResolver(
        memory_cache=MemoryCache(settings.memory_cache_size),
        durable_cache=DurableCache(adapter, settings, clock=clock),
        wiki_client=WikiImageClient(http_client, settings),
        settings=settings,
    )


@pytest.fixture
def sync(adapter, settings) -> EntitySynchronizer:
    return EntitySynchronizer(adapter, settings)
