"""Tests for ingestion, fused ranking and document aggregation."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from kb_retrieval.embeddings import HashingEmbedder
from kb_retrieval.index import RetrievalIndex, clamp_top_k
from kb_retrieval.search import (
    CorpusStatistics,
    ScoredChunk,
    aggregate_documents,
    assemble_excerpt,
    bm25_score,
    fuse_scores,
)
from kb_retrieval.storage import (
    ChunkRecord,
    InMemoryStorage,
    JsonFileStorage,
    KnowledgeIndex,
    StorageError,
)


PARIS = "Paris is the capital of France. It is a large city."


def _chunk(chunk_id: str, doc_id: str, text: str, title: str | None = None) -> ChunkRecord:
    return ChunkRecord(id=chunk_id, doc_id=doc_id, title=title, text=text, embedding=[])


def _long_document(prefix: str, sentences: int = 200) -> str:
    return "".join(
        f"{prefix} zebra sentence number {i} describes striped animals. "
        for i in range(sentences)
    )


# ---------------------------------------------------------------------------
# Index operations
# ---------------------------------------------------------------------------


def test_empty_corpus_returns_no_items(memory_index: RetrievalIndex) -> None:
    result = memory_index.search("anything", 5)

    assert result.query == "anything"
    assert result.items == []
    assert result.to_dict() == {"query": "anything", "items": []}


def test_new_index_is_persisted_empty(memory_storage: InMemoryStorage) -> None:
    RetrievalIndex(memory_storage, embedder=HashingEmbedder(dim=64))

    stored = memory_storage.load()
    assert stored is not None
    assert stored.dims == 64
    assert stored.chunks == ()


def test_single_short_document_scenario(memory_index: RetrievalIndex) -> None:
    added = memory_index.add_document(PARIS, title="T")

    assert added.chunks_added == 1

    result = memory_index.search("capital of France", 5)
    assert len(result.items) == 1
    item = result.items[0]
    assert item.document_id == added.document_id
    assert item.title == "T"
    assert "Paris is the capital of France." in item.text
    assert item.score > 0


def test_add_document_updates_stats(memory_index: RetrievalIndex) -> None:
    before = memory_index.stats()
    first = memory_index.add_document(_long_document("alpha", 60), title="Long")
    after_first = memory_index.stats()

    assert before.chunk_count == 0
    assert after_first.chunk_count == first.chunks_added
    assert after_first.document_count == 1
    assert after_first.dimensions == 1024

    second = memory_index.add_document(
        "More text for the same document.", document_id=first.document_id
    )
    after_second = memory_index.stats()

    assert second.document_id == first.document_id
    assert after_second.chunk_count == after_first.chunk_count + second.chunks_added
    assert after_second.document_count == 1


def test_add_document_persists_once_per_call(memory_storage: InMemoryStorage) -> None:
    index = RetrievalIndex(memory_storage)
    saves_after_open = memory_storage.save_count

    result = index.add_document(_long_document("beta", 80))

    assert result.chunks_added > 1
    assert memory_storage.save_count == saves_after_open + 1


def test_add_document_rejects_empty_text(memory_index: RetrievalIndex) -> None:
    with pytest.raises(ValueError):
        memory_index.add_document("")


def test_stored_chunks_reproduce_the_document(memory_storage: InMemoryStorage) -> None:
    index = RetrievalIndex(memory_storage)
    text = _long_document("gamma", 50) + "  tail without punctuation"

    result = index.add_document(text, chunk_size=300)

    stored = memory_storage.load()
    assert stored is not None
    chunk_texts = [c.text for c in stored.chunks if c.doc_id == result.document_id]
    assert "".join(chunk_texts) == text
    assert len({c.id for c in stored.chunks}) == len(stored.chunks)


def test_search_ranks_relevant_document_first(memory_index: RetrievalIndex) -> None:
    paris = memory_index.add_document(PARIS, title="Paris")
    memory_index.add_document("Bananas grow in tropical climates and need rain.", title="Fruit")
    memory_index.add_document("The stock market closed higher on Friday.", title="Markets")

    result = memory_index.search("What is the capital of France?", 5)

    assert result.items[0].document_id == paris.document_id
    scores = [item.score for item in result.items]
    assert scores == sorted(scores, reverse=True)


def test_search_respects_top_k_and_distinct_documents(memory_index: RetrievalIndex) -> None:
    for i in range(6):
        memory_index.add_document(_long_document(f"doc{i}", 40), title=f"Doc {i}")

    for k in (1, 3, 6, 20):
        items = memory_index.search("zebra striped animals", k).items
        assert len(items) <= min(k, 6)
        assert len({item.document_id for item in items}) == len(items)

    assert len(memory_index.search("zebra", 0).items) == 1
    assert len(memory_index.search("zebra", 50).items) == 6


def test_fragment_cap_and_excerpt_length(memory_storage: InMemoryStorage) -> None:
    index = RetrievalIndex(memory_storage)
    result = index.add_document(_long_document("omega"), title="Zebras")
    assert result.chunks_added > 3

    items = index.search("omega zebra striped animals", 5).items

    assert len(items) == 1
    excerpt = items[0].text
    assert 0 < len(excerpt) <= 2000

    stored = memory_storage.load()
    assert stored is not None
    contributing = set()
    for line in excerpt.split("\n"):
        if len(line) < 20:
            # stray delimiters left over where a chunk boundary split a sentence
            continue
        owners = [c.id for c in stored.chunks if line in " ".join(c.text.split())]
        assert owners
        contributing.add(owners[0])
    assert len(contributing) <= 3


def test_excerpt_deduplicates_repeated_sentences(memory_index: RetrievalIndex) -> None:
    # 27-character lines, so every chunk holds exactly 30 whole lines
    memory_index.add_document("The same sentence repeats.\n" * 120, title="Echo", chunk_size=810)

    items = memory_index.search("same sentence", 5).items

    assert items[0].text == "The same sentence repeats."


def test_search_is_idempotent(memory_index: RetrievalIndex) -> None:
    for i in range(4):
        memory_index.add_document(_long_document(f"doc{i}", 30))

    first = memory_index.search("zebra sentence number 7", 3)
    second = memory_index.search("zebra sentence number 7", 3)

    assert first == second


def test_scores_are_rounded_to_six_digits(memory_index: RetrievalIndex) -> None:
    memory_index.add_document(PARIS)
    memory_index.add_document("A city in France with a long history of art.")

    for item in memory_index.search("France city", 5).items:
        assert item.score == round(item.score, 6)


def test_blank_query_returns_low_relevance_results(memory_index: RetrievalIndex) -> None:
    memory_index.add_document(PARIS)

    items = memory_index.search("   ", 5).items

    assert len(items) == 1
    assert items[0].score == 0.0


def test_persisted_index_reloads_with_same_results(tmp_path: Path) -> None:
    path = str(tmp_path / "index.json")
    index = RetrievalIndex(JsonFileStorage(path))
    index.add_document(PARIS, title="Paris")
    index.add_document(_long_document("delta", 40), title="Zebras")
    expected = index.search("capital zebra", 5)

    reopened = RetrievalIndex(JsonFileStorage(path))

    assert reopened.stats() == index.stats()
    actual = reopened.search("capital zebra", 5)
    assert [i.document_id for i in actual.items] == [i.document_id for i in expected.items]
    assert [i.score for i in actual.items] == pytest.approx([i.score for i in expected.items])


def test_concurrent_ingestion_loses_no_chunks(tmp_path: Path) -> None:
    path = str(tmp_path / "index.json")
    index = RetrievalIndex(JsonFileStorage(path))

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(
            executor.map(
                lambda i: index.add_document(_long_document(f"t{i}", 30)),
                range(16),
            )
        )

    expected_chunks = sum(r.chunks_added for r in results)
    assert index.stats().chunk_count == expected_chunks
    assert index.stats().document_count == 16
    assert RetrievalIndex(JsonFileStorage(path)).stats().chunk_count == expected_chunks


class _FailingStorage(InMemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def save(self, index: KnowledgeIndex) -> None:
        if self.fail:
            raise StorageError("disk full")
        super().save(index)


def test_failed_save_leaves_index_unchanged() -> None:
    storage = _FailingStorage()
    index = RetrievalIndex(storage)
    index.add_document(PARIS)
    storage.fail = True

    with pytest.raises(StorageError, match="disk full"):
        index.add_document("Another document that will not be saved.")

    assert index.stats().chunk_count == 1


def test_reload_picks_up_external_changes(memory_storage: InMemoryStorage) -> None:
    index = RetrievalIndex(memory_storage)
    other_writer = RetrievalIndex(memory_storage)
    other_writer.add_document(PARIS)

    assert index.stats().chunk_count == 0
    index.reload()
    assert index.stats().chunk_count == 1


def test_clamp_top_k() -> None:
    assert clamp_top_k(None) == 5
    assert clamp_top_k(0) == 1
    assert clamp_top_k(7) == 7
    assert clamp_top_k(100) == 20


# ---------------------------------------------------------------------------
# Ranking helpers
# ---------------------------------------------------------------------------


def test_corpus_statistics() -> None:
    stats = CorpusStatistics.from_texts(["a b c", "a a", "d"])

    assert stats.total_chunks == 3
    assert stats.avg_length == pytest.approx(2.0)
    assert stats.doc_freq == {"a": 2, "b": 1, "c": 1, "d": 1}


def test_corpus_statistics_of_empty_corpus() -> None:
    stats = CorpusStatistics.from_texts([])

    assert stats.total_chunks == 0
    assert stats.avg_length == 1.0


def test_bm25_rewards_term_matches() -> None:
    texts = ["zebra stripes", "lion mane", "zebra zebra herd"]
    stats = CorpusStatistics.from_texts(texts)

    scores = [bm25_score(["zebra"], text, stats) for text in texts]

    assert scores[1] == 0.0
    assert scores[0] > 0
    assert scores[2] > 0


def test_bm25_unknown_term_uses_default_df() -> None:
    stats = CorpusStatistics.from_texts(["alpha beta"])

    assert stats.idf("missing") > 0
    assert bm25_score(["missing"], "alpha beta", stats) == 0.0


def test_fuse_scores_normalizes_bm25_by_pool_maximum() -> None:
    a, b = _chunk("a", "d1", "x"), _chunk("b", "d2", "y")

    fused = fuse_scores([(a, 0.2), (b, 0.4)], [4.0, 2.0])

    assert [item.chunk.id for item in fused] == ["a", "b"]
    assert fused[0].bm25_normalized == 1.0
    assert fused[0].score == pytest.approx(0.5 * 0.2 + 0.5 * 1.0)
    assert fused[1].score == pytest.approx(0.5 * 0.4 + 0.5 * 0.5)


def test_fuse_scores_with_zero_bm25_keeps_cosine_order() -> None:
    a, b = _chunk("a", "d1", "x"), _chunk("b", "d2", "y")

    fused = fuse_scores([(a, 0.9), (b, 0.3)], [0.0, 0.0])

    assert [item.chunk.id for item in fused] == ["a", "b"]
    assert all(item.bm25_normalized == 0.0 for item in fused)


def test_aggregate_documents_caps_fragments_and_uses_best_score() -> None:
    ranked = [
        ScoredChunk(chunk=_chunk(f"c{i}", "doc", f"Fragment {i}.", title="Doc"), cosine=1.0 - i / 10)
        for i in range(5)
    ] + [ScoredChunk(chunk=_chunk("o1", "other", "Other text."), cosine=0.05)]

    documents = aggregate_documents(ranked)

    assert [doc.document_id for doc in documents] == ["doc", "other"]
    assert documents[0].text == "Fragment 0.\nFragment 1.\nFragment 2."
    assert documents[0].score == pytest.approx(0.5)
    assert documents[0].title == "Doc"


def test_assemble_excerpt_stops_before_exceeding_limit() -> None:
    texts = ["First sentence here. Second sentence here.", "Third sentence here."]

    excerpt = assemble_excerpt(texts, max_chars=45)

    assert excerpt == "First sentence here.\nSecond sentence here."
    assert len(excerpt) <= 45


def test_assemble_excerpt_collapses_whitespace_and_dedupes() -> None:
    excerpt = assemble_excerpt(["One.\n\n  Two!   One.", "Two! Three?"])

    assert excerpt == "One.\nTwo!\nThree?"


def test_assemble_excerpt_truncates_oversized_first_sentence() -> None:
    excerpt = assemble_excerpt(["x" * 3000], max_chars=2000)

    assert excerpt == "x" * 2000
