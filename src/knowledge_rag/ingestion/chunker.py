"""Text chunking strategies."""

from __future__ import annotations

import uuid

from langchain_text_splitters import RecursiveCharacterTextSplitter

from knowledge_rag.retrieval.models import TextChunk

# Paragraph → line → sentence (CJK and Latin) → clause → word → character.
SEPARATORS = ["\n\n", "\n", "。", "！", "？", ". ", "! ", "? ", "；", "，", " ", ""]


def split_text(text: str, chunk_size: int = 500, chunk_overlap: int = 100) -> list[str]:
    """Split *text* into overlapping chunks of at most *chunk_size* characters.

    The splitter first cuts the text into contiguous pieces of at most
    ``chunk_size - chunk_overlap`` characters at the preferred separators.
    Every chunk is then its piece prefixed with the ``chunk_overlap``
    characters that precede it, so that for consecutive chunks
    ``nxt[:chunk_overlap] == prev[-chunk_overlap:]`` and::

        chunks[0] + "".join(c[chunk_overlap:] for c in chunks[1:]) == text

    Parameters
    ----------
    text:
        Converted document text.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Number of characters repeated between consecutive chunks.

    Returns
    -------
    list[str]
        Chunks in document order; empty for empty input.
    """
    if chunk_overlap >= chunk_size:
        raise ValueError(f"chunk_overlap ({chunk_overlap}) must be < chunk_size ({chunk_size})")
    if not text:
        return []
    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size - chunk_overlap,
        chunk_overlap=0,
        length_function=len,
        separators=SEPARATORS,
        keep_separator="end",
        strip_whitespace=False,
    )

    # Piece boundaries; each piece starts where the previous one ended.
    ends: list[int] = []
    cursor = 0
    for piece in splitter.split_text(text):
        found = text.find(piece, cursor)
        cursor = (found if found >= 0 else cursor) + len(piece)
        ends.append(cursor)
    if not ends or ends[-1] < len(text):
        ends.append(len(text))

    chunks = []
    start = 0
    for i, end in enumerate(ends):
        # A piece ending inside the first overlap window is a prefix of the next chunk.
        if end > chunk_overlap or i == len(ends) - 1:
            chunks.append(text[max(0, start - chunk_overlap) : end])
        start = end
    return chunks


def chunk_id(document_id: str, ordinal: int) -> str:
    """Stable record id of the *ordinal*-th chunk of a document."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{document_id}:{ordinal}"))


def chunk_document(
    text: str,
    *,
    document_id: str,
    category_id: str | None = None,
    title: str | None = None,
    source_url: str | None = None,
    path: str | None = None,
    chunk_size: int = 500,
    chunk_overlap: int = 100,
) -> list[TextChunk]:
    """Split a document and wrap every piece in a :class:`TextChunk`.

    Chunk ids are derived from the document id and the chunk position, so
    re-chunking the same document yields the same ids.
    """
    return [
        TextChunk(
            id=chunk_id(document_id, ordinal),
            content=piece,
            document_id=document_id,
            category_id=category_id,
            title=title,
            source_url=source_url,
            path=path,
        )
        for ordinal, piece in enumerate(split_text(text, chunk_size=chunk_size, chunk_overlap=chunk_overlap))
    ]
