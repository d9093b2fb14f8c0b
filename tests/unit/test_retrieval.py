"""Unit tests for the retrieval layer: models, context assembly and SemanticRetriever."""

from __future__ import annotations

import pytest

from knowledge_rag.errors import EmbeddingBackendError, VectorIndexError
from knowledge_rag.retrieval.base import VectorStoreBase
from knowledge_rag.retrieval.context import NO_CONTEXT_SENTINEL, assemble_context, format_chunk
from knowledge_rag.retrieval.models import MetadataFilter, RetrievedChunk, TextChunk
from knowledge_rag.retrieval.retriever import SemanticRetriever


# ── Fakes for deterministic testing ─────────────────────────────────────


class FakeVectorStore(VectorStoreBase):
    """In-memory fake that returns canned results."""

    def __init__(self, hits: list[RetrievedChunk] | None = None, error: Exception | None = None) -> None:
        super().__init__("test-collection", vector_size=3)
        self._hits = hits or []
        self._error = error
        self.last_limit: int | None = None
        self.last_filters: list[MetadataFilter] | None = None
        self.upserted: list[TextChunk] = []

    def upsert(self, chunks: list[TextChunk]) -> None:
        self.upserted.extend(chunks)

    def delete_document(self, document_id: str) -> None:
        self.upserted = [c for c in self.upserted if c.document_id != document_id]

    def search(
        self, query_vector: list[float], limit: int = 5, filters: list[MetadataFilter] | None = None
    ) -> list[RetrievedChunk]:
        self.last_limit = limit
        self.last_filters = filters
        if self._error is not None:
            raise self._error
        return self._hits[:limit]

    def health_check(self) -> bool:
        return True


class FakeEmbeddings:
    def __init__(self, error: Exception | None = None) -> None:
        self._error = error
        self.queries: list[str] = []

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [[1.0, 0.0, 0.0] for _ in texts]

    def embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        if self._error is not None:
            raise self._error
        return [1.0, 0.0, 0.0]


def _hit(content: str, score: float, title: str | None = "退款规则", category: str | None = None) -> RetrievedChunk:
    return RetrievedChunk(content=content, document_id="doc-1", title=title, category_id=category, score=score)


# ── Fixtures ────────────────────────────────────────────────────────────

SAMPLE_HITS: list[RetrievedChunk] = [
    _hit("七天无理由退货。", 0.9),
    _hit("退款将在三个工作日内到账。", 0.8),
    _hit("运费由买家承担。", 0.6),
    _hit("与问题无关的内容。", 0.4),
    _hit("七天无理由退货。", 0.9),
]


@pytest.fixture()
def fake_store() -> FakeVectorStore:
    return FakeVectorStore(hits=SAMPLE_HITS)


@pytest.fixture()
def retriever(fake_store: FakeVectorStore) -> SemanticRetriever:
    return SemanticRetriever(fake_store, FakeEmbeddings(), default_k=5)


# ── Model tests ─────────────────────────────────────────────────────────


class TestModels:
    def test_payload_omits_none(self) -> None:
        chunk = TextChunk(content="x", document_id="d", title="T")
        assert chunk.payload() == {"document_id": "d", "title": "T"}

    def test_payload_carries_path(self) -> None:
        chunk = TextChunk(content="x", document_id="d", path="售后/退款")
        assert chunk.payload() == {"document_id": "d", "path": "售后/退款"}

    def test_scope_filters(self) -> None:
        assert MetadataFilter.scope() == []
        filters = MetadataFilter.scope(category_id="faq", path="售后")
        assert [(f.field, f.operator, f.value) for f in filters] == [
            ("category_id", "eq", "faq"),
            ("path", "eq", "售后"),
        ]

    def test_provenance(self) -> None:
        assert TextChunk(content="x", document_id="d").provenance == "d"
        assert TextChunk(content="x", document_id="d", title="T", category_id="c").provenance == "T / c"

    def test_score_bounds(self) -> None:
        with pytest.raises(ValueError):
            _hit("x", 1.5)

    def test_str(self) -> None:
        assert "0.900" in str(_hit("hello", 0.9))


# ── Context assembly ────────────────────────────────────────────────────


class TestAssembleContext:
    def test_filters_dedupes_and_orders(self) -> None:
        context = assemble_context(SAMPLE_HITS, min_score=0.5, max_length=2000)
        entries = context.split("\n\n")

        assert len(entries) == 3
        assert entries[0] == "【片段1】(退款规则)\n相似度: 0.900\n七天无理由退货。"
        assert entries[1].startswith("【片段2】")
        assert "退款将在三个工作日内到账" in entries[1]
        assert entries[2].startswith("【片段3】")
        assert "无关" not in context

    def test_higher_score_ranks_first(self) -> None:
        hits = [_hit("low", 0.6), _hit("high", 0.95)]
        context = assemble_context(hits)
        assert context.index("high") < context.index("low")

    def test_ties_keep_search_order(self) -> None:
        hits = [_hit("first", 0.7), _hit("second", 0.7)]
        context = assemble_context(hits)
        assert context.index("first") < context.index("second")

    def test_nothing_above_threshold(self) -> None:
        assert assemble_context([_hit("x", 0.3)], min_score=0.5) == NO_CONTEXT_SENTINEL

    def test_empty_hits(self) -> None:
        assert assemble_context([]) == NO_CONTEXT_SENTINEL

    def test_category_in_provenance(self) -> None:
        context = assemble_context([_hit("x", 0.9, title="Guide", category="after-sales")])
        assert context.startswith("【片段1】(Guide / after-sales)")

    def test_stops_at_first_overflowing_entry(self) -> None:
        a, b, c = _hit("a" * 50, 0.9), _hit("b" * 50, 0.8), _hit("c" * 5, 0.7)
        first, second = format_chunk(1, a), format_chunk(2, b)

        fits_two = len(first) + 2 + len(second)
        assert assemble_context([a, b], max_length=fits_two) == f"{first}\n\n{second}"

        context = assemble_context([a, b, c], max_length=fits_two - 1)
        assert context == first

    def test_first_entry_too_long(self) -> None:
        assert assemble_context([_hit("x" * 500, 0.9)], max_length=100) == NO_CONTEXT_SENTINEL


# ── SemanticRetriever ───────────────────────────────────────────────────


class TestSemanticRetriever:
    def test_build_context(self, retriever: SemanticRetriever) -> None:
        context = retriever.build_context("如何退款?")
        assert context.count("【片段") == 3

    def test_search_honours_k(self, retriever: SemanticRetriever, fake_store: FakeVectorStore) -> None:
        hits = retriever.search("q", k=2)
        assert len(hits) == 2
        assert fake_store.last_limit == 2

    def test_k_zero_returns_sentinel_without_embedding(self, fake_store: FakeVectorStore) -> None:
        embedder = FakeEmbeddings()
        retriever = SemanticRetriever(fake_store, embedder)
        assert retriever.build_context("q", k=0) == NO_CONTEXT_SENTINEL
        assert embedder.queries == []

    def test_overrides_min_score(self, retriever: SemanticRetriever) -> None:
        assert retriever.build_context("q", min_score=0.95) == NO_CONTEXT_SENTINEL

    def test_embedding_failure_degrades_to_sentinel(self, fake_store: FakeVectorStore) -> None:
        retriever = SemanticRetriever(fake_store, FakeEmbeddings(error=EmbeddingBackendError("down", 503)))
        assert retriever.build_context("q") == NO_CONTEXT_SENTINEL

    def test_index_failure_degrades_to_sentinel(self) -> None:
        store = FakeVectorStore(error=VectorIndexError("unreachable"))
        retriever = SemanticRetriever(store, FakeEmbeddings())
        assert retriever.build_context("q") == NO_CONTEXT_SENTINEL

    def test_search_propagates_failures(self) -> None:
        store = FakeVectorStore(error=VectorIndexError("unreachable"))
        with pytest.raises(VectorIndexError):
            SemanticRetriever(store, FakeEmbeddings()).search("q")

    def test_delete_not_supported_by_default(self, fake_store: FakeVectorStore) -> None:
        with pytest.raises(NotImplementedError):
            fake_store.delete(["x"])

    def test_filters_reach_the_store(self, retriever: SemanticRetriever, fake_store: FakeVectorStore) -> None:
        scope = MetadataFilter.scope(category_id="faq")
        retriever.build_context("q", filters=scope)
        assert fake_store.last_filters == scope

        retriever.search("q")
        assert fake_store.last_filters is None

    def test_replace_document_drops_previous_chunks(self, fake_store: FakeVectorStore) -> None:
        fake_store.upsert([TextChunk(content="old", document_id="d"), TextChunk(content="keep", document_id="e")])
        fake_store.replace_document("d", [TextChunk(content="new", document_id="d")])
        assert sorted(c.content for c in fake_store.upserted) == ["keep", "new"]
