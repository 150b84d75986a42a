# src/sentence_stash/storage/__init__.py
"""Storage backends and the request-scoped dependency that selects one."""

from __future__ import annotations

from collections.abc import Generator

from sentence_stash.core.settings import settings
from sentence_stash.db import SessionLocal

from .base import Storage
from .database import DatabaseStorage
from .memory import MemoryStorage, get_memory_storage


def get_storage() -> Generator[Storage, None, None]:
    """Yield the configured backend for one request."""
    if settings.storage_backend == "memory":
        yield get_memory_storage()
        return
    db = SessionLocal()
    try:
        yield DatabaseStorage(db)
    finally:
        db.close()


__all__ = [
    "DatabaseStorage",
    "MemoryStorage",
    "Storage",
    "get_memory_storage",
    "get_storage",
]
