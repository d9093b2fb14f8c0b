"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from typing import Any

import chromadb
from langchain_core.embeddings import Embeddings

from knowledge_rag.errors import VectorIndexError
from knowledge_rag.retrieval.base import VectorStoreBase
from knowledge_rag.retrieval.models import MetadataFilter, RetrievedChunk, TextChunk

logger = logging.getLogger(__name__)

DISTANCE_METRIC = "cosine"


def _similarity(distance: float) -> float:
    """Convert a Chroma cosine distance into a ``[0, 1]`` similarity."""
    return min(1.0, max(0.0, 1.0 - distance))


_OP_MAP = {"eq": "$eq", "ne": "$ne", "in": "$in", "nin": "$nin"}


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None
    clauses = [{f.field: {_OP_MAP[f.operator]: f.value}} for f in filters]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    Parameters
    ----------
    embedder:
        Embedding provider used to vectorise chunk contents on upsert.
    collection_name:
        Name of the Chroma collection.
    vector_size:
        Required dimensionality of every vector.
    host / port:
        Chroma server location (ignored when *client* is given).
    client:
        Pre-built Chroma client (e.g. ``chromadb.EphemeralClient()`` in tests).

    The collection is created lazily, with cosine distance, the first time
    it is needed; every upsert and search re-ensures it idempotently.
    """

    def __init__(
        self,
        embedder: Embeddings,
        collection_name: str = "documents",
        *,
        vector_size: int = 1024,
        host: str = "localhost",
        port: int = 8000,
        client: Any = None,
    ) -> None:
        super().__init__(collection_name, vector_size)
        self._embedder = embedder
        self._host = host
        self._port = port
        self._client = client

    @classmethod
    def from_settings(cls, settings: Any, embedder: Embeddings) -> ChromaVectorStore:
        return cls(
            embedder,
            settings.chroma_collection,
            vector_size=settings.vector_size,
            host=settings.chroma_host,
            port=settings.chroma_port,
        )

    # -- VectorStoreBase overrides --------------------------------------------

    def upsert(self, chunks: list[TextChunk]) -> None:
        if not chunks:
            return
        vectors = self._embedder.embed_documents([c.content for c in chunks])
        for vec in vectors:
            self._check_dimensions(vec)

        collection = self._ensure_collection()
        try:
            collection.upsert(
                ids=[c.id for c in chunks],
                embeddings=vectors,
                documents=[c.content for c in chunks],
                metadatas=[c.payload() for c in chunks],
            )
        except Exception as exc:
            raise VectorIndexError(
                f"Upsert of {len(chunks)} records into {self.collection_name!r} failed: {exc}"
            ) from exc
        logger.debug("Upserted %d records into %s", len(chunks), self.collection_name)

    def search(
        self,
        query_vector: list[float],
        limit: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[RetrievedChunk]:
        if limit <= 0:
            return []
        self._check_dimensions(query_vector)
        collection = self._ensure_collection()
        try:
            results = collection.query(
                query_embeddings=[query_vector],
                n_results=limit,
                where=_build_chroma_where(filters or []),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise VectorIndexError(f"Query on {self.collection_name!r} failed: {exc}") from exc

        ids = (results.get("ids") or [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        hits: list[RetrievedChunk] = []
        for chunk_id, content, meta, dist in zip(ids, docs, metas, distances):
            meta = meta or {}
            hits.append(
                RetrievedChunk(
                    id=chunk_id,
                    content=content or "",
                    document_id=str(meta.get("document_id", "")),
                    category_id=meta.get("category_id"),
                    title=meta.get("title"),
                    source_url=meta.get("source_url"),
                    path=meta.get("path"),
                    score=_similarity(dist),
                )
            )
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits

    def health_check(self) -> bool:
        try:
            self._get_client().heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    def delete_document(self, document_id: str) -> None:
        collection = self._ensure_collection()
        try:
            collection.delete(where={"document_id": document_id})
        except Exception as exc:
            raise VectorIndexError(
                f"Could not remove records of {document_id!r} from {self.collection_name!r}: {exc}"
            ) from exc
        logger.debug("Removed records of %s from %s", document_id, self.collection_name)

    def delete(self, ids: list[str]) -> None:
        try:
            self._ensure_collection().delete(ids=ids)
        except VectorIndexError:
            raise
        except Exception as exc:
            raise VectorIndexError(f"Delete from {self.collection_name!r} failed: {exc}") from exc

    # -- internals ------------------------------------------------------------

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = chromadb.HttpClient(host=self._host, port=self._port)
        return self._client

    def _ensure_collection(self) -> Any:
        try:
            return self._get_client().get_or_create_collection(
                self.collection_name,
                metadata={"hnsw:space": DISTANCE_METRIC},
            )
        except Exception as exc:
            raise VectorIndexError(
                f"Could not open collection {self.collection_name!r}: {exc}"
            ) from exc

    def _check_dimensions(self, vector: list[float]) -> None:
        if len(vector) != self.vector_size:
            raise VectorIndexError(
                f"Vector has {len(vector)} dimensions, collection "
                f"{self.collection_name!r} expects {self.vector_size}"
            )
