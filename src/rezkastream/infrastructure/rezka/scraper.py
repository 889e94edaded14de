"""Media page scraper: extracts translations, seasons, episodes,
translator slugs and the inline stream payload from a media landing page.

Pure string/regex work on already-fetched HTML. Missing sections degrade
to empty results; only a non-``str`` input is a hard failure.

Page anatomy (only the parts we read)::

    <div ... data-id="5278">
    <ul id="translators-list">
      <li data-translator_id="56" title="Дубляж">…</li>
    </ul>
    <ul id="simple-seasons-tabs"><li data-tab_id="1">Сезон 1</li></ul>
    <div id="simple-episodes-tabs">
      <ul><li data-season_id="1" data-episode_id="1">Серия 1</li></ul>
    </div>
    <a href="/series/…/5278-name/56-dublyazh/1-season.html">
    <script>sof.tv.initCDNSeriesEvents(5278, 56, 1, 1, …,
        {"streams":"…","subtitle":"…","subtitle_lns":{…}});</script>
"""

from __future__ import annotations

import html as html_lib
import json
import re

import structlog

from rezkastream.domain.entities import (
    Episode,
    MediaPage,
    NextEpisode,
    Season,
    SubtitleTrack,
    Translation,
)
from rezkastream.domain.exceptions import ScrapeEmpty

log = structlog.get_logger(__name__)

_MEDIA_ID_RE = re.compile(r'data-id="(\d+)"')
_SLUG_RE = re.compile(r'href="[^"]*/(\d+-[\w-]+)/\d+-season')

_TRANSLATORS_BLOCK_RE = re.compile(
    r'<ul id="translators-list"[^>]*>(.*?)</ul>', re.IGNORECASE | re.DOTALL
)
_TRANSLATOR_TAG_RE = re.compile(
    r'<(?:a|li)[^>]*data-translator_id="(\d+)"[^>]*>', re.IGNORECASE
)
_TITLE_ATTR_RE = re.compile(r'title="([^"]+)"')

# initCDNSeriesEvents(<media>, <translator>, …) / initCDNMoviesEvents(…)
_INIT_CALL_RE = re.compile(r"initCDN(?:Series|Movies?)Events\(\s*(\d+)\s*,\s*(\d+)")
_IN_TRANSLATION_RE = re.compile(
    r"В переводе\s*(?:</h2>)?\s*:?\s*(?:</td>\s*<td[^>]*>)?\s*([^<\n]+)",
    re.IGNORECASE,
)

_SEASONS_BLOCK_RE = re.compile(
    r'<ul id="simple-seasons-tabs"[^>]*>(.*?)</ul>', re.IGNORECASE | re.DOTALL
)
_SEASON_RE = re.compile(
    r'<(a|li)\b[^>]*data-tab_id="(\d+)"[^>]*>([^<]+)</\1>', re.IGNORECASE
)

_EPISODES_START_RE = re.compile(r'<div id="simple-episodes-tabs"[^>]*>', re.IGNORECASE)
_EPISODES_END_RE = re.compile(r"</div>\s*</div>", re.IGNORECASE)
_EPISODE_TAG_RE = re.compile(r"<(a|li)\b([^>]*)>([^<]+)</\1>", re.IGNORECASE)
_SEASON_ID_ATTR_RE = re.compile(r'data-season_id="(\d+)"')
_EPISODE_ID_ATTR_RE = re.compile(r'data-episode_id="(\d+)"')

_STREAMS_RE = re.compile(r'"streams"\s*:\s*"((?:[^"\\]|\\.)*)"')
_SUBTITLE_RE = re.compile(r'"subtitle"\s*:\s*"((?:[^"\\]|\\.)*)"')
_SUBTITLE_LNS_RE = re.compile(r'"subtitle_lns"\s*:\s*(\{[^{}]*\})')
_SUBTITLE_TOKEN_RE = re.compile(r"\[([^\]]+)\](https?://[^\s,]+)")


def _ensure_text(html: object) -> str:
    if not isinstance(html, str):
        raise TypeError(f"Expected HTML text, got: {type(html)!r}")
    return html


def _json_unescape(value: str) -> str:
    """Unescape a captured JSON string body; fall back to ``\\/`` only."""
    try:
        return json.loads(f'"{value}"')
    except (json.JSONDecodeError, ValueError):
        return value.replace("\\/", "/")


# ---------------------------------------------------------------------------
# Translator slugs / translations
# ---------------------------------------------------------------------------


def scrape_translator_slugs(html: str) -> dict[str, str]:
    """Map translator id → ``"<id>-<words>"`` slug from season links."""
    html = _ensure_text(html)
    slugs: dict[str, str] = {}
    for match in _SLUG_RE.finditer(html):
        full_slug = match.group(1)
        slugs[full_slug.split("-", 1)[0]] = full_slug
    return slugs


def _title_from_slug(slug: str) -> str | None:
    tail = slug.split("-", 1)[1] if "-" in slug else ""
    words = tail.replace("-", " ").strip()
    return words[:1].upper() + words[1:] if words else None


def _fallback_translation(html: str, slugs: dict[str, str]) -> Translation | None:
    """Recover the single translation of a page without a translator list."""
    translator_id: str | None = None
    init_call = _INIT_CALL_RE.search(html)
    if init_call:
        translator_id = init_call.group(2)
    elif len(slugs) == 1:
        translator_id = next(iter(slugs))

    if translator_id is None:
        return None

    slug = slugs.get(translator_id)
    title: str | None = None
    in_translation = _IN_TRANSLATION_RE.search(html)
    if in_translation:
        title = html_lib.unescape(in_translation.group(1)).strip() or None
    if title is None and slug:
        title = _title_from_slug(slug)
    if title is None:
        title = f"Translation {translator_id}"

    log.debug("translation_fallback", translator_id=translator_id, title=title)
    return Translation(id=translator_id, title=title, slug=slug)


def _scrape_translations(html: str, slugs: dict[str, str]) -> list[Translation]:
    translations: list[Translation] = []
    block = _TRANSLATORS_BLOCK_RE.search(html)

    if block is None:
        fallback = _fallback_translation(html, slugs)
        if fallback is not None:
            translations.append(fallback)
    else:
        seen: set[str] = set()
        for match in _TRANSLATOR_TAG_RE.finditer(block.group(1)):
            translator_id = match.group(1)
            if translator_id in seen:
                continue
            seen.add(translator_id)
            title_match = _TITLE_ATTR_RE.search(match.group(0))
            title = (
                html_lib.unescape(title_match.group(1))
                if title_match
                else f"Translation {translator_id}"
            )
            translations.append(
                Translation(id=translator_id, title=title, slug=slugs.get(translator_id))
            )

    # A lone translation takes the only slug the page links to
    if len(translations) == 1 and not translations[0].slug and len(slugs) == 1:
        only = translations[0]
        translations[0] = Translation(
            id=only.id, title=only.title, slug=next(iter(slugs.values()))
        )

    return translations


# ---------------------------------------------------------------------------
# Seasons / episodes
# ---------------------------------------------------------------------------


def _scrape_seasons(html: str) -> list[Season]:
    block = _SEASONS_BLOCK_RE.search(html)
    if block is None:
        return []
    return [
        Season(id=m.group(2), title=html_lib.unescape(m.group(3)).strip())
        for m in _SEASON_RE.finditer(block.group(1))
    ]


def _episodes_section(html: str) -> str:
    start = _EPISODES_START_RE.search(html)
    if start is None:
        raise ScrapeEmpty("simple-episodes-tabs")
    body = html[start.end() :]
    end = _EPISODES_END_RE.search(body)
    return body[: end.start()] if end else body


def _scrape_episodes(html: str) -> list[Episode]:
    try:
        section = _episodes_section(html)
    except ScrapeEmpty:
        return []

    episodes: list[Episode] = []
    for match in _EPISODE_TAG_RE.finditer(section):
        attrs = match.group(2)
        season_id = _SEASON_ID_ATTR_RE.search(attrs)
        episode_id = _EPISODE_ID_ATTR_RE.search(attrs)
        if season_id is None or episode_id is None:
            continue
        episodes.append(
            Episode(
                id=episode_id.group(1),
                title=html_lib.unescape(match.group(3)).strip(),
                season_id=season_id.group(1),
            )
        )
    return episodes


def scrape_media_page(html: str) -> MediaPage:
    """Extract media id, translations, seasons and episodes from *html*."""
    html = _ensure_text(html)

    id_match = _MEDIA_ID_RE.search(html)
    slugs = scrape_translator_slugs(html)
    seasons = _scrape_seasons(html)
    episodes = _scrape_episodes(html)

    page = MediaPage(
        media_id=id_match.group(1) if id_match else "",
        translations=_scrape_translations(html, slugs),
        seasons=seasons or None,
        episodes=episodes or None,
    )
    log.debug(
        "media_page_scraped",
        media_id=page.media_id,
        translations=len(page.translations),
        seasons=len(seasons),
        episodes=len(episodes),
    )
    return page


# ---------------------------------------------------------------------------
# Inline player payload
# ---------------------------------------------------------------------------


def extract_embedded_stream_payload(html: str) -> str | None:
    """Return the unescaped ``"streams"`` value of the inline init script."""
    html = _ensure_text(html)
    match = _STREAMS_RE.search(html)
    if match is None:
        return None
    return _json_unescape(match.group(1))


def parse_subtitle_tracks(
    raw: str | None,
    languages: dict[str, str] | None = None,
) -> list[SubtitleTrack]:
    """Parse ``[Title]url,[Title]url`` and attach ISO codes by title."""
    if not raw or not isinstance(raw, str):
        return []
    languages = languages or {}
    tracks: list[SubtitleTrack] = []
    for part in raw.split(","):
        match = _SUBTITLE_TOKEN_RE.search(part)
        if match is None:
            continue
        title = match.group(1)
        tracks.append(
            SubtitleTrack(title=title, url=match.group(2), language=languages.get(title))
        )
    return tracks


def parse_subtitle_languages(value: object) -> dict[str, str]:
    """Normalize a ``subtitle_lns`` value (dict, or ``false``) to a mapping."""
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if isinstance(v, str) and v}


def extract_embedded_subtitles(html: str) -> list[SubtitleTrack]:
    """Return subtitle tracks announced by the inline init script."""
    html = _ensure_text(html)
    match = _SUBTITLE_RE.search(html)
    if match is None:
        return []

    languages: dict[str, str] = {}
    lns = _SUBTITLE_LNS_RE.search(html)
    if lns:
        try:
            languages = parse_subtitle_languages(json.loads(lns.group(1)))
        except (json.JSONDecodeError, ValueError):
            log.debug("subtitle_lns_unparseable")

    return parse_subtitle_tracks(_json_unescape(match.group(1)), languages)


# ---------------------------------------------------------------------------
# Autoplay order
# ---------------------------------------------------------------------------


def next_episode(page: MediaPage, current: Episode) -> NextEpisode | None:
    """Return the episode after *current* in document order.

    ``season`` is filled only when the next episode opens another season.
    """
    if not page.episodes:
        return None

    index = next(
        (
            i
            for i, ep in enumerate(page.episodes)
            if ep.id == current.id and ep.season_id == current.season_id
        ),
        -1,
    )
    if index == -1 or index >= len(page.episodes) - 1:
        return None

    following = page.episodes[index + 1]
    if following.season_id != current.season_id and page.seasons:
        season = next((s for s in page.seasons if s.id == following.season_id), None)
        return NextEpisode(episode=following, season=season)
    return NextEpisode(episode=following)
