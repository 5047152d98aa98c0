"""Search helpers for the chunk corpus."""

from .bm25 import CorpusStatistics, bm25_score
from .ranker import (
    DocumentMatch,
    ScoredChunk,
    aggregate_documents,
    assemble_excerpt,
    fuse_scores,
    rank_documents,
)

__all__ = [
    "CorpusStatistics",
    "bm25_score",
    "DocumentMatch",
    "ScoredChunk",
    "aggregate_documents",
    "assemble_excerpt",
    "fuse_scores",
    "rank_documents",
]
