"""Listing parsers for the quick-search popup and catalog pages.

Both produce :class:`CatalogItem` lists; both are tolerant of missing
fields (absent values become ``None``) and never raise on odd markup.
"""

from __future__ import annotations

import re
from html.parser import HTMLParser
from urllib.parse import urljoin, urlparse

import structlog

from rezkastream.domain.entities import CatalogItem, Category
from rezkastream.infrastructure.common.html_selectors import (
    extract_attr,
    extract_text,
    parse_html,
    select_items,
)

log = structlog.get_logger(__name__)

CATEGORIES: tuple[Category, ...] = (
    Category(label="Последние", base_path="new", filter="last"),
    Category(label="Популярное", base_path="new", filter="popular"),
    Category(label="Сейчас смотрят", base_path="new", filter="watching"),
    Category(label="Фильмы", base_path="films", filter="last"),
    Category(label="Сериалы", base_path="series", filter="last"),
    Category(label="Мультфильмы", base_path="cartoons", filter="last"),
    Category(label="Аниме", base_path="animation", filter="last"),
)

_YEAR_RE = re.compile(r"(\d{4})")
_META_RE = re.compile(r"\(([^)]+)\)")
_WS_RE = re.compile(r"\s+")


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _item_id(url: str) -> str:
    segments = [s for s in urlparse(url).path.split("/") if s]
    return segments[-1] if segments else url


def _absolute(url: str, base_url: str) -> str:
    if url.startswith(("http://", "https://")):
        return url
    return urljoin(base_url.rstrip("/") + "/", url)


def _poster_url(src: str) -> str:
    return f"https:{src}" if src.startswith("//") else src


# ---------------------------------------------------------------------------
# Quick search
# ---------------------------------------------------------------------------
class _SearchResultParser(HTMLParser):
    """Parse the quick-search popup.

    Each result has structure::

        <li><a href="/films/…/123-name.html">
          <span class="enty">Title</span> (Original, 2019)
          <span class="rating"><i>7.5</i></span>
        </a></li>
    """

    def __init__(self) -> None:
        super().__init__()
        self.results: list[dict[str, str]] = []

        self._in_li = False
        self._in_a = False
        self._in_enty = False
        self._in_rating = False
        self._href = ""
        self._prefix = ""
        self._title = ""
        self._tail = ""
        self._rating = ""

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        attr_dict = dict(attrs)
        classes = (attr_dict.get("class", "") or "").split()

        if tag == "li":
            self._in_li = True
            self._href = self._prefix = self._title = self._tail = self._rating = ""
        elif tag == "a" and self._in_li:
            self._in_a = True
            self._href = attr_dict.get("href", "") or ""
        elif tag == "span" and self._in_a:
            if "enty" in classes:
                self._in_enty = True
            elif "rating" in classes:
                self._in_rating = True

    def handle_data(self, data: str) -> None:
        if not self._in_a:
            return
        if self._in_enty:
            self._title += data
        elif self._in_rating:
            self._rating += data
        elif self._title:
            self._tail += data
        else:
            self._prefix += data

    def handle_endtag(self, tag: str) -> None:
        if tag == "span":
            if self._in_enty:
                self._in_enty = False
            elif self._in_rating:
                self._in_rating = False
        elif tag == "a" and self._in_a:
            self._in_a = False
        elif tag == "li" and self._in_li:
            self._in_li = False
            if self._href and self._title.strip():
                self.results.append(
                    {
                        "href": self._href.strip(),
                        "prefix": self._prefix,
                        "title": self._title,
                        "tail": self._tail,
                        "rating": self._rating,
                    }
                )


def parse_search_results(html: str, base_url: str) -> list[CatalogItem]:
    """Parse the quick-search listing into catalog items."""
    parser = _SearchResultParser()
    parser.feed(html or "")
    parser.close()

    items: list[CatalogItem] = []
    for row in parser.results:
        tail = row["tail"]
        original_title: str | None = None
        year: str | None = None

        meta = _META_RE.search(tail)
        if meta:
            parts = [p.strip() for p in meta.group(1).split(",")]
            original_title = parts[0] or None
            year_match = _YEAR_RE.search(parts[-1])
            year = year_match.group(1) if year_match else None
            tail = tail[: meta.start()] + tail[meta.end() :]

        title = _collapse(" ".join((row["prefix"], row["title"], tail)))
        url = _absolute(row["href"], base_url)
        items.append(
            CatalogItem(
                id=_item_id(url),
                title=title,
                url=url,
                original_title=original_title,
                year=year,
                rating=_collapse(row["rating"]) or None,
            )
        )

    log.debug("search_results_parsed", count=len(items))
    return items


# ---------------------------------------------------------------------------
# Catalog pages
# ---------------------------------------------------------------------------
#
# Structure of one block:
#
#     <div class="b-content__inline_item" data-url="/films/…/12345-name.html">
#       <div class="b-content__inline_item-link"><img src="//…jpg"></div>
#       <div class="b-content__inline_item-2">
#         <a href="…">Title</a>
#         <div class="misc">2024, США, Драма</div>
#         <i class="entity">Фильм</i>
#       </div>
#       <span class="b-category-bestrating">7.9</span>
#     </div>
_ITEM_SELECTOR = "div.b-content__inline_item[data-url]"


def parse_catalog_page(html: str, base_url: str) -> list[CatalogItem]:
    """Parse a catalog listing page. Blocks without a title link are skipped."""
    blocks = select_items(parse_html(html), _ITEM_SELECTOR)

    items: list[CatalogItem] = []
    for block in blocks:
        data_url = extract_attr(block, "", "data-url")
        title = _collapse(extract_text(block, "a"))
        if not data_url or not title:
            continue

        # Nested tags inside misc become spaces before whitespace collapses
        description = _collapse(extract_text(block, "div.misc", separator=" ")) or None
        year_match = _YEAR_RE.search(description or "")
        items.append(
            CatalogItem(
                id=_item_id(data_url),
                title=title,
                url=_absolute(data_url, base_url),
                year=year_match.group(1) if year_match else None,
                poster=_poster_url(extract_attr(block, "img", "src")) or None,
                rating=_collapse(extract_text(block, "span.b-category-bestrating"))
                or None,
                description=description,
                content_type=_collapse(extract_text(block, "i.entity")) or None,
            )
        )

    log.debug("catalog_page_parsed", count=len(items), skipped=len(blocks) - len(items))
    return items
