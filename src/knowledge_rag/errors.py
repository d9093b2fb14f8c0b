"""Exception hierarchy shared by the ingestion and retrieval layers.

The sync loop decides what to retry by exception type:

* :class:`TransientFetchError` and :class:`EmbeddingBackendError` are retried
  on the next round.
* :class:`PayloadParseError` is retried only up to
  ``settings.sync_parse_error_rounds`` since the payload will not change.
* :class:`VectorIndexError` fails the item on the write path and degrades to
  the "no context" sentinel on the read path.
"""

from __future__ import annotations


class KnowledgeRAGError(Exception):
    """Base class for every error raised by this package."""


class TransientFetchError(KnowledgeRAGError):
    """Network failure or non-2xx response from the remote catalog."""


class PayloadParseError(KnowledgeRAGError):
    """A remote payload could not be decoded into the expected shape."""


class DeltaParseError(PayloadParseError):
    """A rich-text delta document (or one of its ops) is malformed."""


class EmbeddingBackendError(KnowledgeRAGError):
    """The embedding service rejected a request or returned a bad response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"[{self.status_code}] {self.message}"


class VectorIndexError(KnowledgeRAGError):
    """The vector store is unreachable or rejected an upsert / query."""
