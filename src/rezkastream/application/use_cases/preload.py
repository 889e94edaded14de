"""Next-episode preloading owned by the playback caller."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from rezkastream.application.use_cases.resolve_stream import (
    RequestContext,
    StreamResolutionController,
)
from rezkastream.domain.entities import (
    Episode,
    MediaPage,
    MediaReference,
    NextEpisode,
    ResolutionResult,
    Translation,
)
from rezkastream.domain.exceptions import RezkaStreamError
from rezkastream.infrastructure.rezka.scraper import next_episode

log = structlog.get_logger(__name__)

# (media, translation, season, episode)
PreloadKey = tuple[str, str, str, str]


def preload_key(
    media: MediaReference, translation_id: str, season_id: str, episode_id: str
) -> PreloadKey:
    return (media.media_id or media.url, translation_id, season_id, episode_id)


@dataclass(frozen=True)
class PreloadedEpisode:
    key: PreloadKey
    next_episode: NextEpisode
    result: ResolutionResult


class EpisodePreloader:
    """Holds at most one preloaded next-episode result.

    In-flight resolutions are tracked per key so overlapping triggers
    (e.g. a progress tick firing twice near the end of an episode) start
    only one backend probe. Each preload runs with its own
    :class:`RequestContext`, isolated from the foreground resolution.
    """

    def __init__(
        self,
        controller: StreamResolutionController,
        *,
        max_attempts: int | None = None,
    ) -> None:
        self._controller = controller
        self._max_attempts = max_attempts
        self._in_flight: set[PreloadKey] = set()
        self._preloaded: PreloadedEpisode | None = None

    @property
    def preloaded(self) -> PreloadedEpisode | None:
        return self._preloaded

    def is_in_flight(self, key: PreloadKey) -> bool:
        return key in self._in_flight

    async def preload(
        self,
        media: MediaReference,
        translation: Translation,
        page: MediaPage,
        current: Episode,
    ) -> PreloadedEpisode | None:
        """Resolve the episode after *current* unless it is loaded or loading.

        Failures are logged and yield ``None``; preloading is best-effort.
        """
        following = next_episode(page, current)
        if following is None:
            return None

        key = preload_key(
            media, translation.id, following.episode.season_id, following.episode.id
        )
        if self._preloaded is not None and self._preloaded.key == key:
            return self._preloaded
        if key in self._in_flight:
            log.debug("preload_already_in_flight", key=key)
            return None

        self._in_flight.add(key)
        try:
            result = await self._controller.resolve(
                media,
                translation.id,
                translation.slug,
                following.episode.season_id,
                following.episode.id,
                max_attempts=self._max_attempts,
                context=RequestContext(),
            )
        except RezkaStreamError as exc:
            log.warning("preload_failed", key=key, error=str(exc))
            return None
        finally:
            self._in_flight.discard(key)

        self._preloaded = PreloadedEpisode(key=key, next_episode=following, result=result)
        log.info("preload_ready", key=key, quality=result.quality)
        return self._preloaded

    def take(self, key: PreloadKey) -> ResolutionResult | None:
        """Hand out the preloaded result for *key* once, then forget it."""
        if self._preloaded is None or self._preloaded.key != key:
            return None
        result = self._preloaded.result
        self._preloaded = None
        return result

    def invalidate(self) -> None:
        """Drop the preloaded result (e.g. translation switched)."""
        self._preloaded = None
