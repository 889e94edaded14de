"""Catalog use case: quick search, category listings and media pages."""

from __future__ import annotations

from urllib.parse import quote

import structlog

from rezkastream.domain.entities import CatalogItem, MediaPage, MediaReference
from rezkastream.domain.ports import HttpFetcherPort
from rezkastream.infrastructure.rezka.catalog import (
    parse_catalog_page,
    parse_search_results,
)
from rezkastream.infrastructure.rezka.scraper import scrape_media_page

log = structlog.get_logger(__name__)


class CatalogUseCase:
    """Browses the site: search popup, new releases, media landing pages.

    Transport errors propagate; parsing never raises.
    """

    def __init__(
        self,
        fetcher: HttpFetcherPort,
        *,
        base_url: str = "https://rezka.ag",
        referer: str | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")
        self._referer = referer or f"{self._base_url}/"

    async def search(self, query: str) -> list[CatalogItem]:
        """Run the site's quick search.

        Args:
            query: Free text; blank queries return ``[]`` without a request.
        """
        if not query.strip():
            return []

        resp = await self._fetcher.post(
            f"{self._base_url}/engine/ajax/search.php",
            data={"q": query},
            headers={"Referer": self._referer, "Accept": "text/html, */*; q=0.01"},
        )
        items = parse_search_results(resp.text, self._base_url)
        log.info("catalog_search", query=query, results=len(items))
        return items

    def listing_url(self, base_path: str, filter: str = "last", page: int = 1) -> str:
        path = base_path.strip("/")
        query = f"?filter={quote(filter)}"
        if page <= 1:
            return f"{self._base_url}/{path}/{query}"
        return f"{self._base_url}/{path}/page/{page}/{query}"

    async def new_releases(
        self, base_path: str, filter: str = "last", page: int = 1
    ) -> list[CatalogItem]:
        """Fetch one page of a category listing (1-based *page*)."""
        url = self.listing_url(base_path, filter, page)
        resp = await self._fetcher.get(url, headers={"Referer": self._referer})
        items = parse_catalog_page(resp.text, self._base_url)
        log.info(
            "catalog_listing",
            base_path=base_path,
            filter=filter,
            page=page,
            results=len(items),
        )
        return items

    async def load_media_page(self, url: str) -> tuple[MediaReference, MediaPage]:
        """Fetch and scrape a media landing page."""
        resp = await self._fetcher.get(url, headers={"Referer": self._referer})
        page = scrape_media_page(resp.text)
        if not page.translations:
            log.warning("media_page_without_translations", url=url)
        return MediaReference(media_id=page.media_id, url=url), page
