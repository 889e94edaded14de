"""CSS-selector helpers over BeautifulSoup for listing markup.

Each extractor takes a primary selector plus optional fallbacks; the
first selector that yields a non-empty value wins.
"""

from __future__ import annotations

from bs4 import BeautifulSoup, Tag


def parse_html(html: str) -> BeautifulSoup:
    """Parse an HTML string with the ``lxml`` parser."""
    return BeautifulSoup(html or "", "lxml")


def select_items(
    root: BeautifulSoup | Tag,
    selector: str,
    *fallback_selectors: str,
) -> list[Tag]:
    """Select elements via CSS, trying fallbacks until one matches."""
    for sel in (selector, *fallback_selectors):
        items = root.select(sel)
        if items:
            return items
    return []


def extract_text(
    element: Tag,
    selector: str,
    *fallback_selectors: str,
    default: str = "",
    separator: str = "",
) -> str:
    """Text of the first matching child with non-empty text.

    *separator* is inserted between text nodes of nested tags.
    """
    for sel in (selector, *fallback_selectors):
        for match in element.select(sel):
            text = match.get_text(separator, strip=not separator)
            if text.strip():
                return text
    return default


def extract_attr(
    element: Tag,
    selector: str,
    attr: str,
    *fallback_selectors: str,
    default: str = "",
) -> str:
    """Attribute of the first matching child that carries it.

    With ``selector=""`` the attribute is read from *element* itself.
    """
    if selector == "":
        val = element.get(attr)
        return str(val) if val else default

    for sel in (selector, *fallback_selectors):
        match = element.select_one(f"{sel}[{attr}]")
        if match:
            val = match.get(attr)
            if val:
                return str(val)
    return default
