"""Semantic retriever — query embedding, vector search and context assembly.

This module is the **primary public interface** for the read path.  The
answer-generation collaborator only needs :meth:`SemanticRetriever.build_context`.

Usage::

    from knowledge_rag.retrieval.retriever import SemanticRetriever

    retriever = SemanticRetriever(store, embedder)
    context = retriever.build_context("如何申请退款?")
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.embeddings import Embeddings

from knowledge_rag.errors import EmbeddingBackendError, VectorIndexError
from knowledge_rag.retrieval.base import VectorStoreBase
from knowledge_rag.retrieval.context import NO_CONTEXT_SENTINEL, assemble_context
from knowledge_rag.retrieval.models import MetadataFilter, RetrievedChunk

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """High-level retriever that wraps any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    embedder:
        Embedding provider used in query mode.
    default_k:
        Default number of nearest chunks to fetch.
    min_score:
        Default similarity threshold for context assembly.
    max_length:
        Default character budget for assembled context.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: Embeddings,
        *,
        default_k: int = 5,
        min_score: float = 0.5,
        max_length: int = 2000,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.default_k = default_k
        self.min_score = min_score
        self.max_length = max_length

    @classmethod
    def from_settings(cls, settings: Any, store: VectorStoreBase, embedder: Embeddings) -> SemanticRetriever:
        return cls(
            store,
            embedder,
            default_k=settings.context_k,
            min_score=settings.context_min_score,
            max_length=settings.context_max_length,
        )

    # -- public API -----------------------------------------------------------

    def search(
        self,
        query: str,
        *,
        k: int | None = None,
        filters: list[MetadataFilter] | None = None,
    ) -> list[RetrievedChunk]:
        """Embed *query* and return the *k* nearest chunks, best first.

        *filters* restrict the search, e.g. to one category or catalog path
        (see :meth:`MetadataFilter.scope`).

        Embedding and index failures propagate.
        """
        k = self.default_k if k is None else k
        if k <= 0:
            return []
        vector = self._embedder.embed_query(query)
        return self._store.search(vector, limit=k, filters=filters)

    def build_context(
        self,
        query: str,
        k: int | None = None,
        min_score: float | None = None,
        max_length: int | None = None,
        filters: list[MetadataFilter] | None = None,
    ) -> str:
        """Return a relevance-filtered, deduplicated, length-bounded context block.

        Never raises for an empty or failed search: the caller gets
        :data:`~knowledge_rag.retrieval.context.NO_CONTEXT_SENTINEL` instead.
        """
        try:
            hits = self.search(query, k=k, filters=filters)
        except (EmbeddingBackendError, VectorIndexError):
            logger.warning("Context retrieval failed for %r; continuing without context", query, exc_info=True)
            return NO_CONTEXT_SENTINEL

        context = assemble_context(
            hits,
            min_score=self.min_score if min_score is None else min_score,
            max_length=self.max_length if max_length is None else max_length,
        )
        logger.info("Assembled context from %d hits for %r (%d chars)", len(hits), query, len(context))
        return context
