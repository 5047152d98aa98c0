"""Indexing components for the retrieval index."""

from .chunker import SentenceChunker, TextChunk, clamp_chunk_size

__all__ = [
    "SentenceChunker",
    "TextChunk",
    "clamp_chunk_size",
]
