"""HTTP client for the remote article catalog.

Both operations are single GETs against ``base_url``.  There is no retry or
rate limiting in here: the sync loop wraps every :meth:`CatalogClient.fetch_item`
call in the shared :class:`~knowledge_rag.scheduler.RateLimitedScheduler` and
retries failed items on the next round.

Wire shapes::

    GET {base}/article/list?node_id=…&page_size=…&page=…
        → {"data": {"articles": [{"id", "name", "update_timestamp", "path"}],
                    "has_more": bool}}

    GET {base}/article/detail?id=…
        → {"data": {"article_info": {"content": "<delta JSON>",
                                     "name": str, "update_timestamp": int}}}
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import ValidationError

from knowledge_rag.errors import PayloadParseError, TransientFetchError
from knowledge_rag.ingestion import delta
from knowledge_rag.ingestion.models import ArticlePayload, CatalogItem

logger = logging.getLogger(__name__)


class CatalogClient:
    """Fetch the catalog listing and individual articles.

    Parameters
    ----------
    base_url:
        Library API root, e.g. ``https://school.jinritemai.com/api/eschool/v2/library``.
    page_size:
        Number of entries requested per listing page.
    timeout:
        Per-request timeout in seconds.
    session:
        Optional pre-configured :class:`requests.Session` (injected in tests).
    """

    def __init__(
        self,
        base_url: str,
        *,
        page_size: int = 1000,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Any) -> CatalogClient:
        return cls(
            settings.catalog_base_url,
            page_size=settings.catalog_page_size,
            timeout=settings.request_timeout,
        )

    # -- public API -----------------------------------------------------------

    def fetch_catalog(self, root_id: str) -> list[CatalogItem]:
        """Return every item listed under *root_id*, following pagination."""
        items: list[CatalogItem] = []
        seen: set[str] = set()
        page = 1
        while True:
            data = self._get_data(
                "/article/list",
                {"node_id": root_id, "page_size": self.page_size, "page": page},
            )
            articles = data.get("articles")
            if not isinstance(articles, list):
                raise PayloadParseError("Catalog listing has no 'articles' list")
            try:
                listed = [CatalogItem.model_validate(a) for a in articles]
            except ValidationError as exc:
                raise PayloadParseError(f"Malformed catalog entry: {exc}") from exc
            fresh = []
            for item in listed:
                if item.id not in seen:
                    seen.add(item.id)
                    fresh.append(item)
            items.extend(fresh)
            if listed and not fresh:
                # The server ignores 'page' or keeps repeating itself.
                logger.warning("Catalog %s page %d repeats earlier items; stopping", root_id, page)
                break

            has_more = data.get("has_more")
            if has_more is False or len(articles) < self.page_size or not articles:
                break
            page += 1

        logger.info("Catalog %s lists %d items (%d page(s))", root_id, len(items), page)
        return items

    def fetch_item(self, item_id: str) -> ArticlePayload:
        """Download one article and decode its delta document."""
        data = self._get_data("/article/detail", {"id": item_id})
        info = data.get("article_info")
        if not isinstance(info, dict) or "content" not in info:
            raise PayloadParseError(f"Article {item_id} has no 'article_info.content'")

        document = delta.loads(info["content"])
        try:
            return ArticlePayload(
                id=item_id,
                title=info.get("name", ""),
                updated_at=info.get("update_timestamp", 0),
                document=document,
            )
        except ValidationError as exc:
            raise PayloadParseError(f"Malformed article {item_id}: {exc}") from exc

    def item_url(self, item_id: str) -> str:
        """Public detail URL recorded as the document's source."""
        return f"{self.base_url}/article/detail?id={item_id}"

    # -- internals ------------------------------------------------------------

    def _get_data(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise TransientFetchError(f"GET {url} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise PayloadParseError(f"GET {url} returned invalid JSON") from exc

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise PayloadParseError(f"GET {url} response has no 'data' object")
        return data
