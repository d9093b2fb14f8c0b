"""
Retrieval — vector index, semantic search, and context assembly.

This module wraps the vector store behind a clean interface so that
answer-generation callers never need to know which DB is backing retrieval.

Public surface
--------------
- :class:`SemanticRetriever` — query embedding, search and context assembly.
- :class:`VectorStoreBase` — abstract backend (subclass for Qdrant, etc.).
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`TextChunk`, :class:`RetrievedChunk` — data models.
- :class:`MetadataFilter` — scope a search to a category or catalog path.
- :func:`assemble_context` / :data:`NO_CONTEXT_SENTINEL` — pure assembly step.
"""

from knowledge_rag.retrieval.base import VectorStoreBase
from knowledge_rag.retrieval.context import NO_CONTEXT_SENTINEL, assemble_context
from knowledge_rag.retrieval.models import MetadataFilter, RetrievedChunk, TextChunk
from knowledge_rag.retrieval.retriever import SemanticRetriever

__all__ = [
    "ChromaVectorStore",
    "MetadataFilter",
    "NO_CONTEXT_SENTINEL",
    "RetrievedChunk",
    "SemanticRetriever",
    "TextChunk",
    "VectorStoreBase",
    "assemble_context",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from knowledge_rag.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
