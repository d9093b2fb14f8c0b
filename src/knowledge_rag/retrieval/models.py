"""Domain models for indexed chunks and retrieval results."""

from __future__ import annotations

from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        Chunk metadata key to filter on (``"category_id"``, ``"path"``, ...).
    operator:
        One of ``eq``, ``ne``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: Literal["eq", "ne", "in", "nin"] = "eq"
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)

    @classmethod
    def scope(cls, *, category_id: str | None = None, path: str | None = None) -> list[MetadataFilter]:
        """Equality filters for the given category and/or catalog path."""
        filters = []
        if category_id is not None:
            filters.append(cls.equals("category_id", category_id))
        if path is not None:
            filters.append(cls.equals("path", path))
        return filters


class TextChunk(BaseModel):
    """A bounded-size slice of a document, the unit of indexing and retrieval.

    Attributes
    ----------
    id:
        UUID string; doubles as the vector-store record id.
    content:
        The chunk text.
    document_id:
        Id of the source document the chunk was cut from.
    category_id:
        Optional business category of the source document.
    title:
        Source document title, used as provenance in assembled context.
    source_url:
        Where the source document came from.
    path:
        Slash-joined catalog path of the source document.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    document_id: str
    category_id: str | None = None
    title: str | None = None
    source_url: str | None = None
    path: str | None = None

    def payload(self) -> dict[str, Any]:
        """Flat metadata stored next to the vector (``None`` values omitted)."""
        meta = {
            "document_id": self.document_id,
            "category_id": self.category_id,
            "title": self.title,
            "source_url": self.source_url,
            "path": self.path,
        }
        return {k: v for k, v in meta.items() if v is not None}

    @property
    def provenance(self) -> str:
        """Human-readable origin, e.g. ``"Refund rules / after-sales"``."""
        origin = self.title or self.document_id
        if self.category_id:
            return f"{origin} / {self.category_id}"
        return origin


class RetrievedChunk(TextChunk):
    """A :class:`TextChunk` returned by vector search, with its similarity."""

    score: float = Field(ge=0.0, le=1.0)

    def __str__(self) -> str:  # noqa: D105
        return f"[{self.provenance} {self.score:.3f}] {self.content[:120]}…"
