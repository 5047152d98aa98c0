"""
Storage interfaces and data models for index persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


INDEX_FORMAT_VERSION = 1


class StorageError(Exception):
    """Raised when the persisted index cannot be read or written."""


class IndexDimensionError(StorageError):
    """Raised when persisted vectors do not match the configured dimensionality."""


@dataclass(frozen=True)
class ChunkRecord:
    """A text chunk stored with its embedding."""

    id: str
    doc_id: str
    text: str
    embedding: list[float]
    title: str | None = None

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "docId": self.doc_id}
        if self.title is not None:
            payload["title"] = self.title
        payload["text"] = self.text
        payload["vec"] = self.embedding
        return payload

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "ChunkRecord":
        title = payload.get("title")
        return cls(
            id=str(payload["id"]),
            doc_id=str(payload["docId"]),
            title=str(title) if title is not None else None,
            text=str(payload["text"]),
            embedding=[float(v) for v in payload["vec"]],
        )


@dataclass(frozen=True)
class KnowledgeIndex:
    """The whole persisted corpus: format version, dimensionality and chunks."""

    dims: int
    chunks: tuple[ChunkRecord, ...] = field(default_factory=tuple)
    version: int = INDEX_FORMAT_VERSION

    @classmethod
    def empty(cls, dims: int) -> "KnowledgeIndex":
        return cls(dims=dims)

    def with_chunks(self, new_chunks: list[ChunkRecord]) -> "KnowledgeIndex":
        """Return a copy with *new_chunks* appended."""
        return KnowledgeIndex(
            dims=self.dims,
            chunks=self.chunks + tuple(new_chunks),
            version=self.version,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "dims": self.dims,
            "chunks": [chunk.to_json() for chunk in self.chunks],
        }

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "KnowledgeIndex":
        raw_chunks = payload.get("chunks", [])
        if not isinstance(raw_chunks, list):
            raise ValueError("`chunks` must be a list")
        return cls(
            version=int(payload.get("version", INDEX_FORMAT_VERSION)),
            dims=int(payload["dims"]),
            chunks=tuple(ChunkRecord.from_json(item) for item in raw_chunks),
        )

    def validate_dims(self, expected: int) -> None:
        """Reject an index whose dimensionality disagrees with *expected*."""
        if self.dims != expected:
            raise IndexDimensionError(
                f"Index was built with {self.dims} dimensions, "
                f"but the embedder is configured for {expected}."
            )
        for chunk in self.chunks:
            if len(chunk.embedding) != expected:
                raise IndexDimensionError(
                    f"Chunk {chunk.id} has a vector of length "
                    f"{len(chunk.embedding)}, expected {expected}."
                )


class StorageBackend(Protocol):
    """Protocol for whole-index persistence used by the retrieval index."""

    def load(self) -> KnowledgeIndex | None:
        """Return the persisted index, or None when nothing is stored yet."""

    def save(self, index: KnowledgeIndex) -> None:
        """Persist the full index, replacing any previous copy."""


class InMemoryStorage:
    """Storage backend that keeps the index in process memory."""

    def __init__(self, index: KnowledgeIndex | None = None) -> None:
        self._index = index
        self.save_count = 0

    def load(self) -> KnowledgeIndex | None:
        return self._index

    def save(self, index: KnowledgeIndex) -> None:
        self._index = index
        self.save_count += 1
