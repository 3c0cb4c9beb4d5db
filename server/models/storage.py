"""SQLite-backed key-value record model.

One opaque serialized string per namespaced key. The storage layer never
interprets the value.
"""

import time
from sqlmodel import SQLModel, Field, Column, Text


class StorageRecord(SQLModel, table=True):
    """Generic string key-value record."""

    __tablename__ = "storage_records"

    key: str = Field(primary_key=True, max_length=512)
    value: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: float = Field(default_factory=time.time)
