from pathlib import Path

import pytest

from kb_retrieval.embeddings import HashingEmbedder
from kb_retrieval.index import RetrievalIndex
from kb_retrieval.storage import InMemoryStorage


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path: Path):
    """Keep tests away from the user's index and environment overrides."""
    for name in (
        "KB_RETRIEVAL_STORAGE",
        "KB_RETRIEVAL_DIMENSIONS",
        "KB_RETRIEVAL_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("KB_RETRIEVAL_INDEX_PATH", str(tmp_path / "default" / "index.json"))


@pytest.fixture()
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture()
def memory_index(memory_storage: InMemoryStorage) -> RetrievalIndex:
    return RetrievalIndex(memory_storage, embedder=HashingEmbedder(dim=1024))
