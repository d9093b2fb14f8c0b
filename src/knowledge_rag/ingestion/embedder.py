"""Embedding providers: one HTTP client, many configured backends.

Every supported service speaks the same OpenAI-style contract::

    POST <api_url>
    {"model": ..., "input": [texts], "encoding_format": "float", "dimensions": N}
    → {"data": [{"index": 0, "embedding": [...]}, ...]}

so backends differ only in URL and default model.  They are plain
:class:`EmbeddingBackend` values in :data:`EMBEDDING_BACKENDS`, and
:func:`get_embeddings` builds the :class:`HttpEmbeddings` client for the one
named in settings.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from langchain_core.embeddings import Embeddings
from pydantic import BaseModel

from knowledge_rag.errors import EmbeddingBackendError

logger = logging.getLogger(__name__)


class EmbeddingBackend(BaseModel):
    """Static description of an embedding service."""

    name: str
    api_url: str
    default_model: str


EMBEDDING_BACKENDS: dict[str, EmbeddingBackend] = {
    "siliconflow": EmbeddingBackend(
        name="siliconflow",
        api_url="https://api.siliconflow.cn/v1/embeddings",
        default_model="BAAI/bge-large-zh-v1.5",
    ),
    "baishan": EmbeddingBackend(
        name="baishan",
        api_url="https://api.edgefn.net/v1/embeddings",
        default_model="BAAI/bge-m3",
    ),
    "gitee": EmbeddingBackend(
        name="gitee",
        api_url="https://ai.gitee.com/v1/embeddings",
        default_model="bge-m3",
    ),
}


class HttpEmbeddings(Embeddings):
    """LangChain-compatible embeddings backed by an HTTP embedding API.

    Parameters
    ----------
    api_url:
        Full URL of the ``/embeddings`` endpoint.
    api_key:
        Bearer token for the service.
    model:
        Model identifier sent with every request.
    dimensions:
        Requested (and enforced) vector length.
    batch_size:
        Maximum number of texts per request.
    timeout:
        Per-request timeout in seconds.
    session:
        Optional :class:`requests.Session` (injected in tests).
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str,
        *,
        dimensions: int = 1024,
        batch_size: int = 32,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ValueError(f"An API key is required for {api_url}")
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.dimensions = dimensions
        self.batch_size = max(1, batch_size)
        self.timeout = timeout
        self._session = session or requests.Session()

    # -- Embeddings interface -------------------------------------------------

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* and return one vector per text, in input order."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            vectors.extend(self._embed_batch(texts[start : start + self.batch_size]))
        return vectors

    def embed_query(self, text: str) -> list[float]:
        return self.embed_documents([text])[0]

    # -- internals ------------------------------------------------------------

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        body = {
            "model": self.model,
            "input": texts,
            "encoding_format": "float",
            "dimensions": self.dimensions,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = self._session.post(self.api_url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise EmbeddingBackendError(f"Request to {self.api_url} failed: {exc}") from exc

        if not resp.ok:
            raise EmbeddingBackendError(resp.text[:500] or resp.reason or "error", resp.status_code)

        try:
            items = resp.json()["data"]
            if all("index" in item for item in items):
                items = sorted(items, key=lambda item: item["index"])
            vectors = [[float(x) for x in item["embedding"]] for item in items]
        except (ValueError, KeyError, TypeError) as exc:
            raise EmbeddingBackendError(
                f"Invalid API response structure: {exc}", resp.status_code
            ) from exc

        if len(vectors) != len(texts):
            raise EmbeddingBackendError(
                f"Expected {len(texts)} embeddings, got {len(vectors)}", resp.status_code
            )
        bad = next((len(v) for v in vectors if len(v) != self.dimensions), None)
        if bad is not None:
            raise EmbeddingBackendError(
                f"Expected {self.dimensions}-dimensional vectors, got {bad}", resp.status_code
            )
        logger.debug("Embedded %d texts with %s", len(texts), self.model)
        return vectors


def get_embeddings(settings: Any) -> HttpEmbeddings:
    """Return the embedding client selected by ``settings.embedding_backend``."""
    backend = EMBEDDING_BACKENDS.get(settings.embedding_backend)
    if backend is None:
        raise ValueError(
            f"Unsupported embedding_backend={settings.embedding_backend!r}. "
            f"Choose from: {', '.join(EMBEDDING_BACKENDS)}."
        )
    model = settings.embedding_model or backend.default_model
    logger.info("Using %s embeddings (model=%s, dim=%d)", backend.name, model, settings.embedding_dimensions)
    return HttpEmbeddings(
        backend.api_url,
        settings.embedding_api_key,
        model,
        dimensions=settings.embedding_dimensions,
        batch_size=settings.embedding_batch_size,
        timeout=settings.embedding_timeout,
    )
