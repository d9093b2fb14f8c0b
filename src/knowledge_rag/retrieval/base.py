"""Abstract base class for vector-store backends.

Adding a new backend (Qdrant, pgvector …) only requires subclassing
:class:`VectorStoreBase` and implementing the abstract methods.  The
rest of the retrieval stack is backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from knowledge_rag.retrieval.models import MetadataFilter, RetrievedChunk, TextChunk


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    vector_size:
        Dimensionality every stored and queried vector must have.
    """

    def __init__(self, collection_name: str, vector_size: int = 1024) -> None:
        self.collection_name = collection_name
        self.vector_size = vector_size

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def upsert(self, chunks: list[TextChunk]) -> None:
        """Embed *chunks* as one batch and write one record per chunk.

        Records are keyed by :attr:`TextChunk.id`, so re-upserting a chunk
        overwrites it.

        Raises
        ------
        EmbeddingBackendError
            The embedding service failed.
        VectorIndexError
            The backend rejected the write.
        """
        ...

    @abstractmethod
    def search(
        self,
        query_vector: list[float],
        limit: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[RetrievedChunk]:
        """Return up to *limit* chunks nearest to *query_vector*.

        Results are ordered by descending cosine similarity, scores in
        ``[0, 1]``.  When *filters* are given, only chunks whose metadata
        satisfies all of them are considered.
        """
        ...

    @abstractmethod
    def delete_document(self, document_id: str) -> None:
        """Remove every record cut from *document_id*."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- derived operations ---------------------------------------------------

    def replace_document(self, document_id: str, chunks: list[TextChunk]) -> None:
        """Drop the document's previous records, then upsert *chunks*."""
        self.delete_document(document_id)
        self.upsert(chunks)

    # -- optional overrides ---------------------------------------------------

    def delete(self, ids: list[str]) -> None:
        """Delete records by their IDs.  Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")
