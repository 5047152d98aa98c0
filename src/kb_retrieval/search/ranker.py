"""
Ranking helpers: score fusion and document-level aggregation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from ..storage import ChunkRecord


COSINE_WEIGHT = 0.5
BM25_WEIGHT = 0.5
FRAGMENTS_PER_DOCUMENT = 3
MAX_DOCUMENT_CHARS = 2000

_WHITESPACE_RE = re.compile(r"\s+")
_SEGMENT_SPLIT_RE = re.compile(r"(?<=[。；;.!?\n])")


@dataclass(frozen=True)
class ScoredChunk:
    """A pooled candidate chunk with its vector and lexical scores."""

    chunk: ChunkRecord
    cosine: float
    bm25: float = 0.0
    bm25_normalized: float = 0.0

    @property
    def score(self) -> float:
        return COSINE_WEIGHT * self.cosine + BM25_WEIGHT * self.bm25_normalized


@dataclass(frozen=True)
class DocumentMatch:
    """A document-level search result with its assembled excerpt."""

    document_id: str
    title: str | None
    text: str
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "title": self.title,
            "text": self.text,
            "score": self.score,
        }


def fuse_scores(
    candidates: list[tuple[ChunkRecord, float]],
    bm25_scores: list[float],
) -> list[ScoredChunk]:
    """Normalize BM25 by the pool maximum, fuse with cosine and sort."""
    bm25_max = max(bm25_scores, default=0.0)
    fused = [
        ScoredChunk(
            chunk=chunk,
            cosine=cosine,
            bm25=bm25,
            bm25_normalized=bm25 / bm25_max if bm25_max > 0 else 0.0,
        )
        for (chunk, cosine), bm25 in zip(candidates, bm25_scores)
    ]
    return sorted(fused, key=lambda item: item.score, reverse=True)


def split_segments(text: str) -> list[str]:
    """Collapse whitespace and cut after sentence punctuation."""
    compact = _WHITESPACE_RE.sub(" ", text).strip()
    segments = (segment.strip() for segment in _SEGMENT_SPLIT_RE.split(compact))
    return [segment for segment in segments if segment]


def assemble_excerpt(texts: list[str], *, max_chars: int = MAX_DOCUMENT_CHARS) -> str:
    """
    Join the sentences of *texts* into one excerpt, dropping exact repeats.

    Accumulation stops at the first sentence that would push the excerpt
    past *max_chars*. A first sentence that is longer than the limit on its
    own is truncated so that a matched document never comes back empty.
    """
    seen: set[str] = set()
    excerpt = ""
    for text in texts:
        for segment in split_segments(text):
            if segment in seen:
                continue
            if not excerpt and len(segment) > max_chars:
                return segment[:max_chars]
            separator = "\n" if excerpt else ""
            if len(excerpt) + len(separator) + len(segment) > max_chars:
                return excerpt
            seen.add(segment)
            excerpt += separator + segment
    return excerpt


def aggregate_documents(
    ranked: list[ScoredChunk],
    *,
    fragments_per_document: int = FRAGMENTS_PER_DOCUMENT,
    max_document_chars: int = MAX_DOCUMENT_CHARS,
) -> list[DocumentMatch]:
    """
    Group ranked chunks by document and build one excerpt per document.

    *ranked* must already be sorted by fused score. Each document keeps its
    ``fragments_per_document`` best chunks and is scored by the best one.
    """
    grouped: dict[str, list[ScoredChunk]] = {}
    for item in ranked:
        parts = grouped.setdefault(item.chunk.doc_id, [])
        if len(parts) < fragments_per_document:
            parts.append(item)

    documents: list[DocumentMatch] = []
    for document_id, parts in grouped.items():
        documents.append(
            DocumentMatch(
                document_id=document_id,
                title=parts[0].chunk.title,
                text=assemble_excerpt(
                    [part.chunk.text for part in parts],
                    max_chars=max_document_chars,
                ),
                score=parts[0].score,
            )
        )
    return documents


def rank_documents(documents: list[DocumentMatch], *, limit: int) -> list[DocumentMatch]:
    """Sort documents by score, apply limit and round scores for output."""
    ordered = sorted(documents, key=lambda doc: doc.score, reverse=True)
    return [
        DocumentMatch(
            document_id=doc.document_id,
            title=doc.title,
            text=doc.text,
            score=round(doc.score, 6),
        )
        for doc in ordered[: max(limit, 1)]
    ]
