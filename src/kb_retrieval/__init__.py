"""
kb_retrieval - lightweight semantic retrieval over a local knowledge base.

Documents are split into sentence-aligned chunks, embedded with hashed
bag-of-words vectors and stored in a single index file. Queries are ranked
by a fusion of cosine similarity and BM25 and returned per document with a
deduplicated excerpt.

Example usage:
    >>> from kb_retrieval import RetrievalIndex, InMemoryStorage
    >>> index = RetrievalIndex(InMemoryStorage())
    >>> index.add_document("Paris is the capital of France.", title="Paris")
    >>> index.search("capital of France", k=3).items
"""

from .embeddings import HashingEmbedder, cosine_similarity, embed, hash_token, tokenize
from .index import IndexStats, IngestResult, RetrievalIndex, SearchResult, open_index
from .search import DocumentMatch
from .storage import (
    DuckDBStorage,
    IndexDimensionError,
    InMemoryStorage,
    JsonFileStorage,
    StorageError,
)

__all__ = [
    # Embeddings
    "HashingEmbedder",
    "cosine_similarity",
    "embed",
    "hash_token",
    "tokenize",
    # Index
    "RetrievalIndex",
    "IngestResult",
    "SearchResult",
    "IndexStats",
    "DocumentMatch",
    "open_index",
    # Storage
    "DuckDBStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "StorageError",
    "IndexDimensionError",
]
