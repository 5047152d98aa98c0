"""Storage backends for the retrieval index."""

from __future__ import annotations

from .base import (
    INDEX_FORMAT_VERSION,
    ChunkRecord,
    IndexDimensionError,
    InMemoryStorage,
    KnowledgeIndex,
    StorageBackend,
    StorageError,
)
from .duckdb import DuckDBStorage
from .json_file import JsonFileStorage


def create_storage(path: str, backend: str = "json") -> StorageBackend:
    """Build the storage backend named by *backend* for the index at *path*."""
    if backend == "json":
        return JsonFileStorage(path)
    if backend == "duckdb":
        return DuckDBStorage(path)
    raise ValueError(f"Unsupported storage backend: {backend!r}")


__all__ = [
    "INDEX_FORMAT_VERSION",
    "ChunkRecord",
    "IndexDimensionError",
    "InMemoryStorage",
    "KnowledgeIndex",
    "StorageBackend",
    "StorageError",
    "DuckDBStorage",
    "JsonFileStorage",
    "create_storage",
]
