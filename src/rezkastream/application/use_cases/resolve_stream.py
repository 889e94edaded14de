"""Stream resolution use case: probe the backend for the best quality.

The backend hands out a different quality mix on every request (often
capped at 720p under load), so one resolve call probes it up to
``max_attempts`` times, keeps the best stream seen, and stops early as
soon as a top quality shows up or the backend answers 503.

Each probe tries two strategies in order::

    DirectQuery  POST {site}/ajax/get_cdn_series/?t=<ms>   (needs media id)
    SlugPage     GET  {media}/{slug}/{season}-season/{episode}-episode.html

A rejected direct query falls back to the slug page within the same probe.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
import structlog

from rezkastream.domain.entities import (
    TOP_QUALITIES,
    Episode,
    MediaPage,
    MediaReference,
    NextEpisode,
    ResolutionResult,
    StreamInfo,
    SubtitleTrack,
    Translation,
    quality_rank,
)
from rezkastream.domain.exceptions import (
    BackendRejectedError,
    RezkaStreamError,
    ResolutionError,
    StreamNotFoundError,
    TransportError,
)
from rezkastream.domain.ports import FetchResponse, HttpFetcherPort
from rezkastream.infrastructure.rezka.decoder import PayloadDecoder, normalize_url
from rezkastream.infrastructure.rezka.scraper import (
    extract_embedded_stream_payload,
    extract_embedded_subtitles,
    next_episode,
    parse_subtitle_languages,
    parse_subtitle_tracks,
)

log = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int, str | None], None]
Sleep = Callable[[float], Awaitable[None]]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 0.8


@dataclass
class RequestContext:
    """Per-call session state: extra headers, cookies and the favs token.

    Speculative and foreground resolutions each get their own context.
    Cookies the site sets on a response are merged back into the context
    that made the request, and nowhere else. ``favs`` defaults to a random
    token; callers that scraped the page's real favs token should put it
    here.
    """

    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    favs: str = field(default_factory=lambda: str(uuid.uuid4()))

    def request_headers(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        merged = {**(base or {}), **self.headers}
        if self.cookies:
            merged["Cookie"] = "; ".join(f"{k}={v}" for k, v in self.cookies.items())
        return merged

    def absorb(self, resp: FetchResponse) -> None:
        self.cookies.update(resp.cookies)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DirectQuery:
    media_id: str
    translation_id: str
    season_id: str | None = None
    episode_id: str | None = None

    def form_data(self, favs: str) -> dict[str, str]:
        data = {
            "id": self.media_id,
            "translator_id": self.translation_id,
            "favs": favs,
        }
        if self.season_id and self.episode_id:
            data.update(
                action="get_stream", season=self.season_id, episode=self.episode_id
            )
        else:
            data["action"] = "get_movie"
        return data


@dataclass(frozen=True)
class SlugPage:
    url: str


Strategy = DirectQuery | SlugPage


def build_page_url(
    media_url: str,
    translator_slug: str | None,
    season_id: str | None = None,
    episode_id: str | None = None,
) -> str:
    """Build the translator-specific page URL that embeds the stream payload."""
    if not translator_slug:
        return media_url
    base = media_url.removesuffix(".html")
    if season_id and episode_id:
        return f"{base}/{translator_slug}/{season_id}-season/{episode_id}-episode.html"
    if season_id:
        return f"{base}/{translator_slug}/{season_id}-season.html"
    return f"{base}/{translator_slug}.html"


def plan_strategies(
    media: MediaReference,
    translation_id: str,
    translator_slug: str | None = None,
    season_id: str | None = None,
    episode_id: str | None = None,
    *,
    direct_query_enabled: bool = True,
) -> list[Strategy]:
    """Order the strategies one probe tries, by the inputs available."""
    page = SlugPage(build_page_url(media.url, translator_slug, season_id, episode_id))
    if direct_query_enabled and media.media_id and translation_id:
        return [
            DirectQuery(media.media_id, translation_id, season_id, episode_id),
            page,
        ]
    return [page]


@dataclass(frozen=True)
class FetchOutcome:
    """What one probe produced."""

    info: StreamInfo
    subtitles: tuple[SubtitleTrack, ...] = ()
    strategy: str = ""


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------
class StreamResolutionController:
    """Resolves a playable stream URL (+ subtitles) with a quality retry policy.

    Stateless between calls; everything per-call lives on the stack and in
    the :class:`RequestContext`.
    """

    def __init__(
        self,
        fetcher: HttpFetcherPort,
        *,
        base_url: str = "https://rezka.ag",
        referer: str | None = None,
        decoder: PayloadDecoder | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        direct_query_enabled: bool = True,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")
        self._referer = referer or f"{self._base_url}/"
        self._decoder = decoder or PayloadDecoder()
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay_seconds
        self._direct_query_enabled = direct_query_enabled
        self._sleep = sleep

    # -- single probe ------------------------------------------------------

    async def _direct_query(
        self, query: DirectQuery, context: RequestContext
    ) -> FetchOutcome:
        url = f"{self._base_url}/ajax/get_cdn_series/?t={int(time.time() * 1000)}"
        headers = context.request_headers(
            {"Referer": self._referer, "Origin": self._base_url}
        )
        resp = await self._fetcher.post(
            url, data=query.form_data(context.favs), headers=headers
        )
        context.absorb(resp)

        try:
            reply = json.loads(resp.text)
        except (json.JSONDecodeError, ValueError) as exc:
            raise BackendRejectedError("direct query reply is not JSON") from exc
        if not isinstance(reply, dict) or not reply.get("success"):
            message = reply.get("message") if isinstance(reply, dict) else None
            raise BackendRejectedError(message or "direct query unsuccessful")

        payload = reply.get("url")
        if not isinstance(payload, str) or not payload:
            raise BackendRejectedError("direct query returned no stream payload")

        subtitles = parse_subtitle_tracks(
            reply.get("subtitle") if isinstance(reply.get("subtitle"), str) else None,
            parse_subtitle_languages(reply.get("subtitle_lns")),
        )
        return FetchOutcome(
            info=self._decoder.parse_stream_info(payload),
            subtitles=tuple(subtitles),
            strategy="direct_query",
        )

    async def _slug_page(self, page: SlugPage, context: RequestContext) -> FetchOutcome:
        resp = await self._fetcher.get(
            page.url, headers=context.request_headers({"Referer": self._referer})
        )
        context.absorb(resp)
        payload = extract_embedded_stream_payload(resp.text)
        if payload is None:
            raise StreamNotFoundError(f"no stream payload on {page.url}")
        return FetchOutcome(
            info=self._decoder.parse_stream_info(payload),
            subtitles=tuple(extract_embedded_subtitles(resp.text)),
            strategy="slug_page",
        )

    async def fetch_once(
        self,
        media: MediaReference,
        translation_id: str,
        translator_slug: str | None = None,
        season_id: str | None = None,
        episode_id: str | None = None,
        *,
        context: RequestContext | None = None,
    ) -> FetchOutcome:
        """Run one probe: direct query first (when possible), else the slug page.

        Raises:
            TransportError: Network/HTTP failure (503 is never swallowed).
            StreamNotFoundError: The slug page carried no payload.
            BackendRejectedError: Only when no other strategy is left.
        """
        context = context or RequestContext()
        strategies = plan_strategies(
            media,
            translation_id,
            translator_slug,
            season_id,
            episode_id,
            direct_query_enabled=self._direct_query_enabled,
        )

        for index, strategy in enumerate(strategies):
            is_last = index == len(strategies) - 1
            try:
                if isinstance(strategy, DirectQuery):
                    return await self._direct_query(strategy, context)
                return await self._slug_page(strategy, context)
            except BackendRejectedError as exc:
                if is_last:
                    raise
                log.info(
                    "direct_query_rejected", media_id=media.media_id, reason=str(exc)
                )
            except TransportError as exc:
                if is_last or exc.is_service_unavailable:
                    raise
                log.info(
                    "direct_query_failed",
                    media_id=media.media_id,
                    status=exc.status,
                    error=str(exc),
                )

        raise AssertionError("unreachable: strategy list is never empty")

    # -- retry policy ------------------------------------------------------

    async def resolve(
        self,
        media: MediaReference,
        translation_id: str,
        translator_slug: str | None = None,
        season_id: str | None = None,
        episode_id: str | None = None,
        *,
        max_attempts: int | None = None,
        on_progress: ProgressCallback | None = None,
        context: RequestContext | None = None,
    ) -> ResolutionResult:
        """Probe up to *max_attempts* times and return the best stream seen.

        Returns immediately on "1080p Ultra"/"1080p". A 503 stops probing:
        the best result so far is returned, otherwise the error propagates.

        Raises:
            ValueError: *max_attempts* is below 1.
            ResolutionError: Every probe succeeded but none carried a stream.
            RezkaStreamError: The last probe (or a 503) failed and nothing
                usable had been found before.
        """
        attempts_allowed = (
            max_attempts if max_attempts is not None else self._max_attempts
        )
        if attempts_allowed < 1:
            raise ValueError("max_attempts must be >= 1")
        context = context or RequestContext()
        best: ResolutionResult | None = None
        bound = log.bind(
            media_id=media.media_id,
            translation_id=translation_id,
            season_id=season_id,
            episode_id=episode_id,
        )

        for attempt in range(1, attempts_allowed + 1):
            is_last = attempt == attempts_allowed
            try:
                outcome = await self.fetch_once(
                    media,
                    translation_id,
                    translator_slug,
                    season_id,
                    episode_id,
                    context=context,
                )
            except RezkaStreamError as exc:
                bound.warning(
                    "resolve_attempt_failed",
                    attempt=attempt,
                    max_attempts=attempts_allowed,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                if on_progress is not None:
                    on_progress(attempt, attempts_allowed, None)

                if isinstance(exc, TransportError) and exc.is_service_unavailable:
                    bound.info("resolve_service_unavailable", attempt=attempt)
                    if best is not None:
                        return best
                    raise
                if is_last:
                    if best is not None:
                        return best
                    raise
                await self._pause()
                continue

            selected = outcome.info.selected
            quality = selected.quality if selected else None
            if on_progress is not None:
                on_progress(attempt, attempts_allowed, quality)

            if selected is not None:
                best_rank = quality_rank(best.quality) if best else None
                if best_rank is None or quality_rank(selected.quality) < best_rank:
                    best = ResolutionResult(
                        url=normalize_url(selected.url),
                        quality=selected.quality,
                        attempts=attempt,
                        subtitles=outcome.subtitles,
                    )
                    bound.debug(
                        "resolve_new_best",
                        attempt=attempt,
                        quality=selected.quality,
                        strategy=outcome.strategy,
                        streams=len(outcome.info.streams),
                    )
                if selected.quality in TOP_QUALITIES:
                    return best

            if is_last:
                if best is not None:
                    bound.info("resolve_completed", quality=best.quality, attempts=attempt)
                    return best
                raise ResolutionError(
                    "exhausted attempts",
                    media_id=media.media_id,
                    translation_id=translation_id,
                    season_id=season_id,
                    episode_id=episode_id,
                )

            await self._pause()

        raise AssertionError("unreachable: loop always returns or raises")

    async def _pause(self) -> None:
        if self._retry_delay > 0:
            await self._sleep(self._retry_delay)

    async def resolve_next(
        self,
        media: MediaReference,
        translation: Translation,
        page: MediaPage,
        current: Episode,
        *,
        max_attempts: int | None = None,
        on_progress: ProgressCallback | None = None,
        context: RequestContext | None = None,
    ) -> tuple[NextEpisode, ResolutionResult] | None:
        """Resolve the episode following *current* in document order.

        Returns ``None`` when *current* is the last episode.
        """
        following = next_episode(page, current)
        if following is None:
            return None
        result = await self.resolve(
            media,
            translation.id,
            translation.slug,
            following.episode.season_id,
            following.episode.id,
            max_attempts=max_attempts,
            on_progress=on_progress,
            context=context,
        )
        return following, result
