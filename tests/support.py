"""Builders and test doubles shared across the test suite."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any

from rezkastream.domain.exceptions import TransportError
from rezkastream.domain.ports import FetchResponse

# ---------------------------------------------------------------------------
# HTML builders
# ---------------------------------------------------------------------------

SERIES_URL = "https://rezka.ag/series/thriller/5278-the-show-2019.html"


def embedded_page(
    streams: str,
    *,
    subtitle: str | None = None,
    subtitle_lns: dict[str, str] | None = None,
) -> str:
    """Minimal episode page carrying an inline player init script.

    Values are JSON-encoded the way the site does it (``\\/`` escapes).
    """
    player: dict[str, Any] = {"id": "cdnplayer", "streams": streams}
    if subtitle is not None:
        player["subtitle"] = subtitle
        player["subtitle_lns"] = subtitle_lns or {}
    payload = json.dumps(player, ensure_ascii=False).replace("/", "\\/")
    return (
        "<html><body>"
        '<div class="b-player" data-id="5278"></div>'
        "<script>$(function () { sof.tv.initCDNSeriesEvents("
        f"5278, 56, 1, 1, false, 'rezka.ag', false, {payload}"
        "); });</script>"
        "</body></html>"
    )


def stream_list(**qualities: str) -> str:
    """``stream_list(p720="u")`` -> ``"[720p]u"``; ``ultra`` -> ``1080p Ultra``."""
    parts = []
    for key, url in qualities.items():
        label = "1080p Ultra" if key == "ultra" else f"{key.removeprefix('p')}p"
        parts.append(f"[{label}]{url}")
    return ",".join(parts)


SERIES_PAGE_HTML = r"""
<html><body>
<div class="b-userset__fav_holder" data-id="5278"></div>
<h2 class="b-post__lang">В переводе:</h2>
<ul id="translators-list" class="b-translators__list">
  <li title="Дубляж" class="b-translator__item active" data-translator_id="56">Дубляж</li>
  <li title="LostFilm" class="b-translator__item" data-translator_id="238">LostFilm</li>
  <li class="b-translator__item" data-translator_id="111">Оригинал</li>
</ul>
<div class="b-simple_seasons__wrapper">
<ul id="simple-seasons-tabs" class="b-simple_seasons__list clearfix">
  <li class="b-simple_season__item active" data-tab_id="1">Сезон 1</li>
  <li class="b-simple_season__item" data-tab_id="2">Сезон 2</li>
</ul>
</div>
<div id="simple-episodes-tabs">
  <ul id="simple-episodes-list-1" class="b-simple_episodes__list clearfix">
    <li class="b-simple_episode__item active" data-id="5278" data-season_id="1" data-episode_id="1">Серия 1</li>
    <li class="b-simple_episode__item" data-episode_id="2" data-id="5278" data-season_id="1">Серия 2</li>
  </ul>
  <ul id="simple-episodes-list-2" class="b-simple_episodes__list clearfix">
    <li class="b-simple_episode__item" data-id="5278" data-season_id="2" data-episode_id="1">Серия 1</li>
  </ul>
</div>
</div>
<a href="https://rezka.ag/series/thriller/5278-the-show-2019/56-dublyazh/1-season.html">Сезон 1</a>
<a href="https://rezka.ag/series/thriller/5278-the-show-2019/238-lostfilm/2-season.html">Сезон 2</a>
<script>
sof.tv.initCDNSeriesEvents(5278, 56, 1, 1, false, 'rezka.ag', false, {"id":"cdnplayer","streams":"[720p]https:\/\/cdn\/a.mp4,[1080p]https:\/\/cdn\/b.mp4","subtitle":"[Русский]https:\/\/cdn\/ru.vtt,[English]https:\/\/cdn\/en.vtt","subtitle_lns":{"off":"","Русский":"ru","English":"en"},"subtitle_def":"ru"});
</script>
</body></html>
"""


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

Handler = Callable[..., FetchResponse]


def ok(
    text: str, status: int = 200, cookies: dict[str, str] | None = None
) -> FetchResponse:
    return FetchResponse(status=status, text=text, headers={}, cookies=cookies or {})


def sequence(*items: FetchResponse | Exception) -> Handler:
    """Handler answering with *items* in order; the last one repeats."""
    queue = list(items)

    def handler(*_: Any, **__: Any) -> FetchResponse:
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    return handler


class StubFetcher:
    """In-memory HttpFetcherPort recording every call."""

    def __init__(
        self,
        *,
        get: Handler | None = None,
        post: Handler | None = None,
    ) -> None:
        self._get = get
        self._post = post
        self.calls: list[dict[str, Any]] = []

    @property
    def get_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["method"] == "GET"]

    @property
    def post_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["method"] == "POST"]

    async def get(
        self, url: str, *, headers: Mapping[str, str] | None = None
    ) -> FetchResponse:
        self.calls.append({"method": "GET", "url": url, "headers": dict(headers or {})})
        if self._get is None:
            raise TransportError(f"unexpected GET {url}", url=url)
        return self._get(url)

    async def post(
        self,
        url: str,
        *,
        data: Mapping[str, str],
        headers: Mapping[str, str] | None = None,
    ) -> FetchResponse:
        self.calls.append(
            {
                "method": "POST",
                "url": url,
                "data": dict(data),
                "headers": dict(headers or {}),
            }
        )
        if self._post is None:
            raise TransportError(f"unexpected POST {url}", url=url)
        return self._post(url, data)


class MemoryCache:
    """Dict-backed CachePort recording the ttl of every write."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> Any:
        return self.data.get(key)

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.data.pop(key, None) is not None

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> MemoryCache:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

