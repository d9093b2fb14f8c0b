"""Unit tests for the incremental diff engine."""

from __future__ import annotations

from knowledge_rag.ingestion.diff import pending_items
from knowledge_rag.ingestion.models import CatalogItem


def _item(item_id: str, updated_at: int) -> CatalogItem:
    return CatalogItem(id=item_id, title=f"title {item_id}", updated_at=updated_at)


CATALOG = [_item("a", 100), _item("b", 200), _item("c", 300), _item("d", 400)]


def test_unknown_items_are_pending() -> None:
    assert pending_items(CATALOG, {}) == CATALOG


def test_older_known_timestamp_is_pending() -> None:
    known = {"a": 100, "b": 150, "c": 300, "d": 500}
    assert [i.id for i in pending_items(CATALOG, known)] == ["b"]


def test_equal_timestamp_counts_as_synced() -> None:
    known = {i.id: i.updated_at for i in CATALOG}
    assert pending_items(CATALOG, known) == []


def test_catalog_order_is_preserved() -> None:
    shuffled = [CATALOG[2], CATALOG[0], CATALOG[3], CATALOG[1]]
    assert [i.id for i in pending_items(shuffled, {"c": 1})] == ["c", "a", "d", "b"]


def test_pure_and_idempotent() -> None:
    known = {"a": 50, "c": 300}
    first = pending_items(CATALOG, known)
    second = pending_items(CATALOG, known)
    assert first == second
    assert known == {"a": 50, "c": 300}


def test_catalog_item_accepts_wire_aliases() -> None:
    item = CatalogItem.model_validate(
        {"id": 42, "name": "退款规则", "update_timestamp": 1700000000, "path": ["root", "after-sales"]}
    )
    assert item.id == "42"
    assert item.title == "退款规则"
    assert item.updated_at == 1700000000
    assert item.path_segments == ("root", "after-sales")
