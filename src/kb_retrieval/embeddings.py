"""
Model-free text embeddings for vector-based retrieval.

Texts are turned into fixed-length vectors by feature hashing: every token is
hashed into one of ``dim`` buckets and the bucket counts are L2-normalized.
Bucket collisions are accepted as an approximation.

The hash is FNV-1a (32-bit) over the token's UTF-8 bytes. Any deterministic,
well-distributed hash would do, but it must never change for an index that
already holds vectors built with it.
"""

from __future__ import annotations

import math
import os
import re


_DEFAULT_DIM = 1024
_FNV_OFFSET_BASIS = 2166136261
_FNV_PRIME = 16777619

# Everything except ASCII letters/digits, CJK unified ideographs and whitespace.
_NON_TOKEN_RE = re.compile(r"[^a-z0-9\u4e00-\u9fff\s]")


def tokenize(text: str) -> list[str]:
    """Lower-case, strip punctuation and split on whitespace."""
    cleaned = _NON_TOKEN_RE.sub(" ", text.lower())
    return cleaned.split()


def hash_token(token: str, dim: int = _DEFAULT_DIM) -> int:
    """Map a token to a bucket index in ``[0, dim)``."""
    h = _FNV_OFFSET_BASIS
    for byte in token.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h % dim


def embed(text: str, dim: int = _DEFAULT_DIM) -> list[float]:
    """Return the L2-normalized hashed bag-of-words vector for *text*."""
    vec = [0.0] * dim
    for token in tokenize(text):
        vec[hash_token(token, dim)] += 1.0
    norm = math.sqrt(sum(v * v for v in vec)) or 1.0
    return [v / norm for v in vec]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two unit vectors, i.e. their dot product."""
    return sum(x * y for x, y in zip(a, b))


class HashingEmbedder:
    """Generate text embeddings by feature hashing."""

    def __init__(self, *, dim: int | None = None) -> None:
        self.dim = dim or int(os.getenv("KB_RETRIEVAL_DIMENSIONS", str(_DEFAULT_DIM)))
        if self.dim <= 0:
            raise ValueError("dim must be > 0")

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of texts, preserving order."""
        return [embed(text, self.dim) for text in texts]

    def embed_query(self, query: str) -> list[float]:
        """Embed a single query text for retrieval."""
        return embed(query, self.dim)
