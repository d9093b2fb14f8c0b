"""Rich-text delta → markdown-like text conversion.

Remote articles arrive as a *delta* document::

    {"deltas": {"<zone id>": {"ops": [{"insert": "Title",
                                       "attributes": {"heading": "h1"}}, ...]}}}

Each op carries its formatting as a loose bag of optional attributes on the
wire.  :func:`parse_document` turns every op into exactly one tagged variant
(:class:`Heading`, :class:`Bullet`, :class:`Hyperlink`, …) and
:func:`convert` renders the variants zone by zone.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Union

from knowledge_rag.errors import DeltaParseError

# Stand-in the editor emits for an empty heading / quote / list line.
BLANK_MARKER = "*"


# ---------------------------------------------------------------------------
# Op variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Heading:
    text: str
    level: int


@dataclass(frozen=True)
class Blockquote:
    text: str


@dataclass(frozen=True)
class Bullet:
    text: str


@dataclass(frozen=True)
class Hyperlink:
    text: str
    href: str


@dataclass(frozen=True)
class AutoLink:
    text: str
    url: str


@dataclass(frozen=True)
class Bold:
    text: str


@dataclass(frozen=True)
class Image:
    """Embedded image; renders as nothing."""


@dataclass(frozen=True)
class Plain:
    text: str


DeltaOp = Union[Heading, Blockquote, Bullet, Hyperlink, AutoLink, Bold, Image, Plain]

RichDocument = dict[str, list[DeltaOp]]
"""Zone id → ordered ops, zones already in rendering order."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _blank(text: str) -> str:
    return "" if text == BLANK_MARKER else text


def _parse_href(raw: Any) -> str:
    try:
        obj = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise DeltaParseError(f"Malformed hyperlink attribute: {raw!r}") from exc
    if not isinstance(obj, dict) or not isinstance(obj.get("href"), str):
        raise DeltaParseError(f"Hyperlink attribute has no 'href': {raw!r}")
    return obj["href"]


def parse_op(raw: Mapping[str, Any]) -> DeltaOp | None:
    """Convert one wire op into its variant, or ``None`` when it is skipped.

    Ops with an empty ``insert`` are skipped.  Non-string inserts (embedded
    objects) are kept with empty text so their attributes still apply.
    """
    if not isinstance(raw, Mapping):
        raise DeltaParseError(f"Op must be an object, got {type(raw).__name__}")
    insert = raw.get("insert")
    if not insert:
        return None
    text = insert if isinstance(insert, str) else ""
    attrs = raw.get("attributes") or {}
    if not isinstance(attrs, Mapping):
        raise DeltaParseError(f"Op attributes must be an object, got {type(attrs).__name__}")

    heading = attrs.get("heading")
    if heading == "h1":
        return Heading(_blank(text), 1)
    if heading == "h2":
        return Heading(_blank(text), 2)
    if attrs.get("blockquote"):
        return Blockquote(_blank(text))
    list_kind = attrs.get("list")
    if isinstance(list_kind, str) and list_kind.startswith("bullet"):
        return Bullet(_blank(text))
    if attrs.get("hyperlink"):
        return Hyperlink(text, _parse_href(attrs["hyperlink"]))
    if attrs.get("clientside-auto-url"):
        return AutoLink(text, str(attrs["clientside-auto-url"]))
    if attrs.get("bold"):
        return Bold(text)
    if attrs.get("IMAGE"):
        return Image()
    return Plain(text)


def _zone_order(zone_ids: list[str]) -> list[str]:
    """Integer-like ids ascending first, then the rest in insertion order.

    Matches the key order the editor's own (JavaScript) renderer iterates in.
    """
    numeric = sorted((z for z in zone_ids if z.isascii() and z.isdigit()), key=int)
    others = [z for z in zone_ids if not (z.isascii() and z.isdigit())]
    return numeric + others


def parse_document(raw: Mapping[str, Any]) -> RichDocument:
    """Parse a wire document (with or without the ``deltas`` wrapper)."""
    if not isinstance(raw, Mapping):
        raise DeltaParseError(f"Delta document must be an object, got {type(raw).__name__}")
    zones = raw.get("deltas", raw)
    if not isinstance(zones, Mapping):
        raise DeltaParseError("'deltas' must map zone ids to zones")

    doc: RichDocument = {}
    for zone_id in _zone_order([str(z) for z in zones]):
        zone = zones[zone_id]
        ops = zone.get("ops") if isinstance(zone, Mapping) else None
        if not isinstance(ops, list):
            raise DeltaParseError(f"Zone {zone_id!r} has no 'ops' list")
        doc[zone_id] = [op for op in (parse_op(o) for o in ops) if op is not None]
    return doc


def loads(content: str) -> RichDocument:
    """Decode a JSON-encoded delta document."""
    try:
        raw = json.loads(content)
    except (TypeError, ValueError) as exc:
        raise DeltaParseError(f"Delta document is not valid JSON: {exc}") from exc
    return parse_document(raw)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_op(op: DeltaOp) -> str:
    if isinstance(op, Heading):
        return f"\n{'#' * op.level} {op.text}"
    if isinstance(op, Blockquote):
        return f"> {op.text}"
    if isinstance(op, Bullet):
        return f"- {op.text}"
    if isinstance(op, Hyperlink):
        return f"[{op.text}]({op.href})"
    if isinstance(op, AutoLink):
        return f"[{op.text}]({op.url})"
    if isinstance(op, Bold):
        return f"**{op.text}**"
    if isinstance(op, Image):
        return ""
    return op.text


def convert(doc: RichDocument | Mapping[str, Any]) -> str:
    """Render a delta document as linear markdown-like text.

    Accepts either a parsed :data:`RichDocument` or the raw wire mapping.
    Every zone is followed by a newline.
    """
    if not _is_parsed(doc):
        doc = parse_document(doc)
    parts: list[str] = []
    for ops in doc.values():
        parts.extend(render_op(op) for op in ops)
        parts.append("\n")
    return "".join(parts)


def _is_parsed(doc: Mapping[str, Any]) -> bool:
    return all(
        isinstance(ops, list) and all(not isinstance(op, Mapping) for op in ops)
        for ops in doc.values()
    ) and "deltas" not in doc
