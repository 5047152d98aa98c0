"""
Chunking utilities for indexing document content.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


DEFAULT_CHUNK_SIZE = 800
MIN_CHUNK_SIZE = 300
MAX_CHUNK_SIZE = 1500

# Line breaks and sentence-ending punctuation, ASCII and full-width. The
# capturing group keeps delimiters in the split output.
_SENTENCE_SPLIT_RE = re.compile(r"([\n\r。！？；;.?!])")


@dataclass(frozen=True)
class TextChunk:
    """A content chunk with source offsets."""

    text: str
    position: int
    start_char: int
    end_char: int


def clamp_chunk_size(chunk_size: int | None) -> int:
    """Apply the default and clamp to ``[MIN_CHUNK_SIZE, MAX_CHUNK_SIZE]``."""
    if chunk_size is None:
        return DEFAULT_CHUNK_SIZE
    return max(MIN_CHUNK_SIZE, min(MAX_CHUNK_SIZE, int(chunk_size)))


class SentenceChunker:
    """
    Sentence-aware chunker without overlap.

    Text is cut after sentence delimiters and accumulated until a chunk
    reaches ``chunk_size`` characters, so every chunk except the last is at
    least that long. Chunks are exact slices of the input: joining them
    gives back the original text.
    """

    def __init__(self, chunk_size: int | None = None) -> None:
        self.chunk_size = clamp_chunk_size(chunk_size)

    def chunk_text(self, text: str) -> list[TextChunk]:
        if not text.strip():
            return []

        pieces: list[str] = []
        buf = ""
        for part in _SENTENCE_SPLIT_RE.split(text):
            buf += part
            if len(buf) >= self.chunk_size:
                pieces.append(buf)
                buf = ""
        if buf.strip():
            pieces.append(buf)
        elif buf:
            # blank tail belongs to the previous chunk
            pieces[-1] += buf

        chunks: list[TextChunk] = []
        start = 0
        for position, piece in enumerate(pieces):
            end = start + len(piece)
            chunks.append(
                TextChunk(text=piece, position=position, start_char=start, end_char=end)
            )
            start = end
        return chunks
