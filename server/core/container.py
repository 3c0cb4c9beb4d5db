"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database, MemoryStore
from core.storage import StorageAdapter
from core.cache import MemoryCache, DurableCache
from services.wiki_client import WikiImageClient, create_http_client
from services.image_resolver import ImageResolver
from services.entity_sync import EntitySynchronizer
from services.viewer_favorites import ViewerFavorites
from services.editor import CommandEditor, TagEditor


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Host persistent store (SQLite by default, in-memory for tests)
    store = providers.Selector(
        settings.provided.storage_backend,
        sqlite=providers.Singleton(Database, settings=settings),
        memory=providers.Singleton(MemoryStore, settings=settings),
    )

    storage = providers.Singleton(
        StorageAdapter,
        store=store,
        settings=settings
    )

    # Image cache tiers
    memory_cache = providers.Singleton(
        MemoryCache,
        max_size=settings.provided.memory_cache_size
    )

    durable_cache = providers.Singleton(
        DurableCache,
        adapter=storage,
        settings=settings
    )

    # Remote lookup
    http_client = providers.Singleton(
        create_http_client,
        settings=settings
    )

    wiki_client = providers.Singleton(
        WikiImageClient,
        client=http_client,
        settings=settings
    )

    image_resolver = providers.Singleton(
        ImageResolver,
        memory_cache=memory_cache,
        durable_cache=durable_cache,
        wiki_client=wiki_client,
        settings=settings
    )

    # Entities
    entity_sync = providers.Singleton(
        EntitySynchronizer,
        adapter=storage,
        settings=settings
    )

    viewer_favorites = providers.Singleton(
        ViewerFavorites,
        adapter=storage,
        settings=settings
    )

    command_editor = providers.Factory(
        CommandEditor,
        synchronizer=entity_sync,
        settings=settings
    )

    tag_editor = providers.Factory(
        TagEditor,
        synchronizer=entity_sync,
        settings=settings
    )


# Global container instance
container = Container()
