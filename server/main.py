"""
DST Command Manager services.

Entry point for the presentation layer: starts storage, probes it, and
hands out the wired container.

Usage:
    async with lifespan() as app:
        result = await app.entity_sync().load_all()
        url = await app.image_resolver().resolve("Spider")
"""

from contextlib import asynccontextmanager
from typing import Optional

from core.container import Container, container as default_container
from core.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: Optional[Container] = None):
    """Application lifespan management."""
    app = app or default_container
    settings = app.settings()
    configure_logging(settings)

    logger.info("Starting DST Command Manager services", storage_backend=settings.storage_backend)

    store = app.store()
    try:
        await store.startup()
    except Exception as e:
        # The adapter probe below marks storage unavailable
        logger.error("Storage backend failed to start", error=str(e))
    await app.storage().startup()

    try:
        yield app
    finally:
        await app.http_client().aclose()
        await store.shutdown()
        logger.info("DST Command Manager services stopped")
