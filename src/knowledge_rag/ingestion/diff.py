"""Incremental diff between the remote catalog and already-ingested state."""

from __future__ import annotations

from typing import Iterable, Mapping

from knowledge_rag.ingestion.models import CatalogItem


def pending_items(catalog: Iterable[CatalogItem], known: Mapping[str, int]) -> list[CatalogItem]:
    """Return the catalog items that still need to be (re-)ingested.

    An item is pending when its id is missing from *known* or the known
    timestamp is strictly older than the catalog's.  Equal timestamps count as
    synced.  Catalog order is preserved so re-syncs are deterministic.
    """
    return [
        item
        for item in catalog
        if item.id not in known or known[item.id] < item.updated_at
    ]
