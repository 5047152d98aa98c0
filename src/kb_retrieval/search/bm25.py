"""
BM25 lexical scoring over the stored chunk corpus.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field

from ..embeddings import tokenize


K1 = 1.2
B = 0.75
# df used for query terms that never occur in the corpus
MISSING_DF = 0.5


@dataclass(frozen=True)
class CorpusStatistics:
    """Corpus-wide statistics needed by BM25."""

    total_chunks: int
    avg_length: float
    doc_freq: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_texts(cls, texts: list[str]) -> "CorpusStatistics":
        doc_freq: Counter[str] = Counter()
        total_tokens = 0
        for text in texts:
            tokens = tokenize(text)
            total_tokens += len(tokens)
            doc_freq.update(set(tokens))
        avg_length = total_tokens / len(texts) if texts else 1.0
        return cls(
            total_chunks=len(texts),
            avg_length=avg_length or 1.0,
            doc_freq=dict(doc_freq),
        )

    def idf(self, token: str) -> float:
        n = self.total_chunks or 1
        df = self.doc_freq.get(token) or MISSING_DF
        return math.log((n - df + 0.5) / (df + 0.5) + 1)


def bm25_score(
    query_tokens: list[str],
    text: str,
    stats: CorpusStatistics,
    *,
    k1: float = K1,
    b: float = B,
) -> float:
    """Score *text* against *query_tokens*; repeated query tokens count repeatedly."""
    tokens = tokenize(text)
    doc_len = len(tokens) or 1
    tf = Counter(tokens)
    score = 0.0
    for token in query_tokens:
        freq = tf.get(token, 0)
        if freq == 0:
            continue
        numerator = freq * (k1 + 1)
        denominator = freq + k1 * (1 - b + b * (doc_len / stats.avg_length))
        score += stats.idf(token) * numerator / denominator
    return score
