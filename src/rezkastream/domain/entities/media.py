"""Domain entities describing a media item as scraped from its landing page.

Pure value objects without I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class MediaReference:
    """External identity of a media item: numeric id + canonical page URL."""

    media_id: str  # numeric string, "" when the page carried no id
    url: str


@dataclass(frozen=True)
class Translation:
    """A dub/localization offering for one media item."""

    id: str
    title: str
    slug: str | None = None  # e.g. "56-dublyazh", used to build episode URLs


@dataclass(frozen=True)
class Season:
    id: str
    title: str


@dataclass(frozen=True)
class Episode:
    """Single episode; list order (not id order) defines the next episode."""

    id: str
    title: str
    season_id: str


@dataclass(frozen=True)
class MediaPage:
    """Structural metadata extracted from a media landing page.

    ``seasons`` and ``episodes`` are ``None`` (not empty) for pages without
    a season/episode selector, i.e. movies.
    """

    media_id: str
    translations: list[Translation] = field(default_factory=list)
    seasons: list[Season] | None = None
    episodes: list[Episode] | None = None


@dataclass(frozen=True)
class NextEpisode:
    """Episode following the current one; ``season`` set on season change."""

    episode: Episode
    season: Season | None = None


@dataclass(frozen=True)
class CatalogItem:
    """Entry of a search result or catalog listing."""

    id: str  # last URL path segment, e.g. "86824-legenda-2025.html"
    title: str
    url: str
    original_title: str | None = None
    year: str | None = None
    poster: str | None = None
    rating: str | None = None
    description: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class Category:
    """Catalog section addressed as ``/{base_path}/?filter={filter}``."""

    label: str
    base_path: str
    filter: str


@dataclass(frozen=True)
class LastWatch:
    """What the user resolved last, for "continue watching"."""

    item: CatalogItem
    translation_id: str | None = None
    translation_title: str | None = None
    season_id: str | None = None
    season_title: str | None = None
    episode_id: str | None = None
    episode_title: str | None = None
    timestamp: float = 0.0  # unix seconds, set by the repository on save
