"""Host persistent stores backing the storage adapter.

Both stores expose the same small async key-value surface. They raise on
failure, the way a browser storage area does; StorageAdapter is the layer
that turns those failures into success/absence values.
"""

import time
from typing import Dict, List, Optional, Protocol
from contextlib import asynccontextmanager
from sqlmodel import SQLModel, col, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from core.config import Settings
from models.storage import StorageRecord
from core.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Async string key-value store provided by the host environment."""

    async def startup(self) -> None: ...

    async def shutdown(self) -> None: ...

    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...

    async def keys(self, prefix: str = "") -> List[str]: ...


class Database:
    """SQLModel-backed key-value store."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            self.engine = create_async_engine(
                self.settings.database_url,
                echo=self.settings.database_echo,
                future=True
            )

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully", url=self.settings.database_url)

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    # ============================================================================
    # Key-value records
    # ============================================================================

    async def get_item(self, key: str) -> Optional[str]:
        async with self.get_session() as session:
            record = await session.get(StorageRecord, key)
            return record.value if record else None

    async def set_item(self, key: str, value: str) -> None:
        async with self.get_session() as session:
            record = await session.get(StorageRecord, key)
            if record:
                record.value = value
                record.updated_at = time.time()
            else:
                session.add(StorageRecord(key=key, value=value))
            await session.commit()

    async def remove_item(self, key: str) -> None:
        async with self.get_session() as session:
            record = await session.get(StorageRecord, key)
            if record:
                await session.delete(record)
                await session.commit()

    async def keys(self, prefix: str = "") -> List[str]:
        async with self.get_session() as session:
            stmt = select(StorageRecord.key)
            if prefix:
                stmt = stmt.where(col(StorageRecord.key).startswith(prefix, autoescape=True))
            result = await session.execute(stmt)
            return list(result.scalars().all())


class MemoryStore:
    """In-process key-value store.

    Used for tests and for ephemeral runs where nothing should touch disk.
    Contents are lost on restart.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings
        self._data: Dict[str, str] = {}

    async def startup(self):
        logger.info("Using in-memory key-value store")

    async def shutdown(self):
        logger.debug("In-memory key-value store closed", records=len(self._data))

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]
