"""
Retrieval index: ingestion, ranked search and statistics over a chunk corpus.

The index is loaded once when opened and kept in memory. Writes are
serialized behind a lock and persisted before they become visible; reads
work on the immutable snapshot that was current when they started, so
searches never see a half-applied ingestion.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any

from .embeddings import HashingEmbedder, cosine_similarity, tokenize
from .index_config import resolve_index_path, resolve_storage_backend
from .indexing.chunker import SentenceChunker
from .search.bm25 import CorpusStatistics, bm25_score
from .search.ranker import DocumentMatch, aggregate_documents, fuse_scores, rank_documents
from .storage import ChunkRecord, KnowledgeIndex, StorageBackend, create_storage


logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
MIN_TOP_K = 1
MAX_TOP_K = 20
MIN_POOL_SIZE = 10
POOL_MULTIPLIER = 5


@dataclass(frozen=True)
class IngestResult:
    """Outcome of adding one document."""

    document_id: str
    chunks_added: int


@dataclass(frozen=True)
class SearchResult:
    """Ranked document matches for a query."""

    query: str
    items: list[DocumentMatch] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query, "items": [item.to_dict() for item in self.items]}


@dataclass(frozen=True)
class IndexStats:
    """Size summary of the index."""

    dimensions: int
    chunk_count: int
    document_count: int

    def to_dict(self) -> dict[str, int]:
        return {
            "dimensions": self.dimensions,
            "chunk_count": self.chunk_count,
            "document_count": self.document_count,
        }


def _new_id() -> str:
    return uuid.uuid4().hex


def clamp_top_k(k: int | None) -> int:
    if k is None:
        return DEFAULT_TOP_K
    return max(MIN_TOP_K, min(MAX_TOP_K, int(k)))


class RetrievalIndex:
    """Owns the persisted chunk index and answers ranked queries against it."""

    def __init__(
        self,
        storage: StorageBackend,
        embedder: HashingEmbedder | None = None,
    ) -> None:
        self.storage = storage
        self.embedder = embedder or HashingEmbedder()
        self._write_lock = threading.Lock()
        self._index = self._load_or_create()

    @property
    def dimensions(self) -> int:
        return self.embedder.dim

    def reload(self) -> None:
        """Re-read the index from storage, discarding the in-memory copy."""
        with self._write_lock:
            self._index = self._load_or_create()

    def add_document(
        self,
        text: str,
        *,
        title: str | None = None,
        chunk_size: int | None = None,
        document_id: str | None = None,
    ) -> IngestResult:
        """Chunk, embed and append *text*, then persist the whole index."""
        if not text:
            raise ValueError("text must be non-empty")

        doc_id = document_id or _new_id()
        chunks = SentenceChunker(chunk_size).chunk_text(text)
        vectors = self.embedder.embed_texts([chunk.text for chunk in chunks])
        records = [
            ChunkRecord(
                id=_new_id(),
                doc_id=doc_id,
                title=title,
                text=chunk.text,
                embedding=vector,
            )
            for chunk, vector in zip(chunks, vectors)
        ]

        with self._write_lock:
            updated = self._index.with_chunks(records)
            self.storage.save(updated)
            self._index = updated

        logger.info(
            "Added document %s (%d chunks, %d chars)", doc_id, len(records), len(text)
        )
        return IngestResult(document_id=doc_id, chunks_added=len(records))

    def search(self, query: str, k: int | None = DEFAULT_TOP_K) -> SearchResult:
        """Return the top-*k* documents for *query* by fused cosine/BM25 score."""
        top_k = clamp_top_k(k)
        chunks = self._index.chunks
        if not chunks:
            return SearchResult(query=query, items=[])

        query_vector = self.embedder.embed_query(query)
        by_cosine = sorted(
            ((chunk, cosine_similarity(query_vector, chunk.embedding)) for chunk in chunks),
            key=lambda pair: pair[1],
            reverse=True,
        )
        pool_size = min(len(by_cosine), max(MIN_POOL_SIZE, top_k * POOL_MULTIPLIER))
        pool = by_cosine[:pool_size]

        stats = CorpusStatistics.from_texts([chunk.text for chunk in chunks])
        query_tokens = tokenize(query)
        bm25_scores = [bm25_score(query_tokens, chunk.text, stats) for chunk, _ in pool]

        ranked = fuse_scores(pool, bm25_scores)
        documents = aggregate_documents(ranked)
        items = rank_documents(documents, limit=top_k)
        logger.debug(
            "Search over %d chunks (pool %d) returned %d documents",
            len(chunks),
            pool_size,
            len(items),
        )
        return SearchResult(query=query, items=items)

    def stats(self) -> IndexStats:
        index = self._index
        return IndexStats(
            dimensions=index.dims,
            chunk_count=len(index.chunks),
            document_count=len({chunk.doc_id for chunk in index.chunks}),
        )

    def _load_or_create(self) -> KnowledgeIndex:
        index = self.storage.load()
        if index is None:
            index = KnowledgeIndex.empty(self.dimensions)
            self.storage.save(index)
            logger.info("Created empty index with %d dimensions", self.dimensions)
            return index
        index.validate_dims(self.dimensions)
        return index


def open_index(
    index_path: str | None = None,
    *,
    backend: str | None = None,
    dim: int | None = None,
) -> RetrievalIndex:
    """Open the index described by arguments, environment and defaults."""
    resolved_backend = resolve_storage_backend(backend)
    resolved_path = resolve_index_path(index_path)
    storage = create_storage(resolved_path, resolved_backend)
    return RetrievalIndex(storage, embedder=HashingEmbedder(dim=dim))
