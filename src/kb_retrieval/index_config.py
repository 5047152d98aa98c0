"""
Configuration helpers for local index storage.
"""

from __future__ import annotations

import os
from pathlib import Path


DEFAULT_INDEX_PATH = "~/.kb_retrieval/index.json"
ENV_INDEX_PATH = "KB_RETRIEVAL_INDEX_PATH"

DEFAULT_STORAGE_BACKEND = "json"
ENV_STORAGE_BACKEND = "KB_RETRIEVAL_STORAGE"
SUPPORTED_STORAGE_BACKENDS: tuple[str, ...] = ("json", "duckdb")


def resolve_index_path(override_path: str | None = None) -> str:
    """
    Resolve the index file path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) KB_RETRIEVAL_INDEX_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_INDEX_PATH) or DEFAULT_INDEX_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def resolve_storage_backend(override: str | None = None) -> str:
    """Resolve the storage backend name with the same precedence as the path."""
    backend = (override or os.getenv(ENV_STORAGE_BACKEND) or DEFAULT_STORAGE_BACKEND)
    backend = backend.strip().lower()
    if backend not in SUPPORTED_STORAGE_BACKENDS:
        supported = ", ".join(SUPPORTED_STORAGE_BACKENDS)
        raise ValueError(f"Unsupported storage backend {backend!r} (expected one of: {supported})")
    return backend
