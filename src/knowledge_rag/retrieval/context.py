"""Context assembly: turn ranked search hits into a prompt-ready text block."""

from __future__ import annotations

from typing import Iterable

from knowledge_rag.retrieval.models import RetrievedChunk

NO_CONTEXT_SENTINEL = "没有找到相关的文档片段。"
"""Returned whenever no chunk survives filtering."""

SEPARATOR = "\n\n"


def format_chunk(ordinal: int, chunk: RetrievedChunk) -> str:
    """Render one chunk as ``【片段n】(provenance)`` + score + content."""
    return f"【片段{ordinal}】({chunk.provenance})\n相似度: {chunk.score:.3f}\n{chunk.content}"


def dedupe_by_content(chunks: Iterable[RetrievedChunk]) -> list[RetrievedChunk]:
    """Keep the first occurrence of each distinct content string."""
    seen: set[str] = set()
    unique: list[RetrievedChunk] = []
    for chunk in chunks:
        if chunk.content in seen:
            continue
        seen.add(chunk.content)
        unique.append(chunk)
    return unique


def assemble_context(
    chunks: Iterable[RetrievedChunk],
    *,
    min_score: float = 0.5,
    max_length: int = 2000,
) -> str:
    """Filter, deduplicate and length-bound *chunks* into one text block.

    Chunks are ranked by descending score (stable, so ties keep search
    order), those below *min_score* are dropped and content duplicates keep
    their best-ranked copy.  Formatted entries are appended while the running
    length, counting two separator characters per entry, stays within
    *max_length*; the first entry that would overflow ends the block.

    Returns :data:`NO_CONTEXT_SENTINEL` when nothing is appended.
    """
    ranked = sorted((c for c in chunks if c.score >= min_score), key=lambda c: c.score, reverse=True)

    entries: list[str] = []
    total = 0
    for chunk in dedupe_by_content(ranked):
        entry = format_chunk(len(entries) + 1, chunk)
        if total + len(entry) > max_length:
            break
        entries.append(entry)
        total += len(entry) + len(SEPARATOR)

    if not entries:
        return NO_CONTEXT_SENTINEL
    return SEPARATOR.join(entries)
