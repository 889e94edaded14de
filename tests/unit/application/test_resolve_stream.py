"""Tests for StreamResolutionController (quality retry policy)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from support import SERIES_URL, StubFetcher, embedded_page, ok, sequence, stream_list

from rezkastream.application.use_cases.resolve_stream import (
    DirectQuery,
    RequestContext,
    SlugPage,
    StreamResolutionController,
    build_page_url,
    plan_strategies,
)
from rezkastream.domain.entities import (
    Episode,
    MediaPage,
    MediaReference,
    Season,
    SubtitleTrack,
    Translation,
)
from rezkastream.domain.exceptions import (
    ResolutionError,
    StreamNotFoundError,
    TransportError,
)

AJAX_PREFIX = "https://rezka.ag/ajax/get_cdn_series/?t="
EPISODE_URL = (
    "https://rezka.ag/series/thriller/5278-the-show-2019/"
    "56-dublyazh/1-season/2-episode.html"
)


def _reply(streams: str, **extra: object) -> object:
    return ok(json.dumps({"success": True, "url": streams, **extra}))


def _rejected(message: str = "Время сессии истекло") -> object:
    return ok(json.dumps({"success": False, "message": message}))


def _service_unavailable() -> TransportError:
    return TransportError("HTTP 503", status=503, url=AJAX_PREFIX)


def _controller(
    fetcher: StubFetcher, *, max_attempts: int = 3, **kwargs: object
) -> StreamResolutionController:
    kwargs.setdefault("retry_delay_seconds", 0)
    return StreamResolutionController(fetcher, max_attempts=max_attempts, **kwargs)


# ---------------------------------------------------------------------------
# Strategy planning
# ---------------------------------------------------------------------------


class TestBuildPageUrl:
    def test_episode(self) -> None:
        assert build_page_url(SERIES_URL, "56-dublyazh", "1", "2") == EPISODE_URL

    def test_season_only(self) -> None:
        assert build_page_url(SERIES_URL, "56-dublyazh", "1") == (
            "https://rezka.ag/series/thriller/5278-the-show-2019/"
            "56-dublyazh/1-season.html"
        )

    def test_movie(self) -> None:
        url = "https://rezka.ag/films/drama/1-film.html"
        assert build_page_url(url, "110-original") == (
            "https://rezka.ag/films/drama/1-film/110-original.html"
        )

    def test_no_slug_keeps_media_url(self) -> None:
        assert build_page_url(SERIES_URL, None, "1", "2") == SERIES_URL


class TestPlanStrategies:
    def test_direct_query_first(self, series_ref: MediaReference) -> None:
        plan = plan_strategies(series_ref, "56", "56-dublyazh", "1", "2")
        assert plan == [DirectQuery("5278", "56", "1", "2"), SlugPage(EPISODE_URL)]

    def test_no_media_id(self) -> None:
        media = MediaReference(media_id="", url=SERIES_URL)
        assert plan_strategies(media, "56", "56-dublyazh", "1", "2") == [
            SlugPage(EPISODE_URL)
        ]

    def test_direct_query_disabled(self, series_ref: MediaReference) -> None:
        plan = plan_strategies(
            series_ref, "56", "56-dublyazh", "1", "2", direct_query_enabled=False
        )
        assert plan == [SlugPage(EPISODE_URL)]


class TestDirectQueryForm:
    def test_episode_form(self) -> None:
        data = DirectQuery("5278", "56", "1", "2").form_data("fav-token")
        assert data == {
            "id": "5278",
            "translator_id": "56",
            "favs": "fav-token",
            "action": "get_stream",
            "season": "1",
            "episode": "2",
        }

    def test_movie_form(self) -> None:
        data = DirectQuery("4321", "110").form_data("f")
        assert data["action"] == "get_movie"
        assert "season" not in data
        assert "episode" not in data


class TestRequestContext:
    def test_cookie_header(self) -> None:
        context = RequestContext(
            headers={"X-Test": "1"}, cookies={"dle_user_taken": "1", "PHPSESSID": "s"}
        )
        headers = context.request_headers({"Referer": "https://rezka.ag/"})
        assert headers == {
            "Referer": "https://rezka.ag/",
            "X-Test": "1",
            "Cookie": "dle_user_taken=1; PHPSESSID=s",
        }

    def test_contexts_are_isolated(self) -> None:
        first, second = RequestContext(), RequestContext()
        first.cookies["a"] = "1"
        assert second.cookies == {}
        assert first.favs != second.favs

    @pytest.mark.asyncio()
    async def test_response_cookies_stay_with_their_context(
        self, series_ref: MediaReference
    ) -> None:
        fetcher = StubFetcher(
            post=sequence(
                ok(
                    json.dumps({"success": True, "url": "[720p]https://cdn/a.mp4"}),
                    cookies={"PHPSESSID": "foreground"},
                ),
                _reply(stream_list(p720="https://cdn/a.mp4")),
            )
        )
        controller = _controller(fetcher, max_attempts=1)
        foreground, speculative = RequestContext(), RequestContext()

        await controller.resolve(series_ref, "56", None, "1", "1", context=foreground)
        await controller.resolve(series_ref, "56", None, "1", "2", context=speculative)

        assert foreground.cookies == {"PHPSESSID": "foreground"}
        assert speculative.cookies == {}
        assert "Cookie" not in fetcher.post_calls[1]["headers"]

    @pytest.mark.asyncio()
    async def test_session_cookie_reused_within_context(
        self, series_ref: MediaReference
    ) -> None:
        fetcher = StubFetcher(
            post=sequence(_rejected()),
            get=sequence(
                ok(
                    embedded_page(stream_list(p720="https://cdn/a.mp4")),
                    cookies={"PHPSESSID": "s1"},
                )
            ),
        )
        context = RequestContext()
        await _controller(fetcher, max_attempts=2).resolve(
            series_ref, "56", "56-dublyazh", "1", "2", context=context
        )

        assert "Cookie" not in fetcher.post_calls[0]["headers"]
        assert fetcher.post_calls[1]["headers"]["Cookie"] == "PHPSESSID=s1"


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


class TestResolve:
    @pytest.mark.asyncio()
    async def test_mediocre_quality_uses_every_attempt(
        self, series_ref: MediaReference
    ) -> None:
        fetcher = StubFetcher(post=sequence(_reply(stream_list(p720="https://cdn/a.mp4"))))
        result = await _controller(fetcher).resolve(
            series_ref, "56", "56-dublyazh", "1", "2"
        )

        assert len(fetcher.post_calls) == 3
        assert fetcher.get_calls == []
        assert result.quality == "720p"
        assert result.url == "https://cdn/a.mp4"
        assert result.attempts == 1

    @pytest.mark.asyncio()
    async def test_stops_on_top_quality(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(
            post=sequence(
                _reply(stream_list(p720="https://cdn/a.mp4")),
                _reply(stream_list(p720="https://cdn/a.mp4", ultra="https://cdn/u.mp4")),
            )
        )
        result = await _controller(fetcher).resolve(series_ref, "56", None, "1", "2")

        assert len(fetcher.post_calls) == 2
        assert result.quality == "1080p Ultra"
        assert result.url == "https://cdn/u.mp4"
        assert result.attempts == 2

    @pytest.mark.asyncio()
    async def test_first_1080p_returns_immediately(
        self, series_ref: MediaReference
    ) -> None:
        fetcher = StubFetcher(post=sequence(_reply(stream_list(p1080="https://cdn/b.mp4"))))
        result = await _controller(fetcher).resolve(series_ref, "56")

        assert len(fetcher.calls) == 1
        assert (result.quality, result.attempts) == ("1080p", 1)

    @pytest.mark.asyncio()
    async def test_equal_quality_keeps_first(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(
            post=sequence(
                _reply(stream_list(p720="https://cdn/first.mp4")),
                _reply(stream_list(p720="https://cdn/second.mp4")),
            )
        )
        result = await _controller(fetcher, max_attempts=2).resolve(series_ref, "56")
        assert result.url == "https://cdn/first.mp4"
        assert result.attempts == 1

    @pytest.mark.asyncio()
    async def test_better_quality_replaces(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(
            post=sequence(
                _reply(stream_list(p480="https://cdn/low.mp4")),
                _reply(stream_list(p720="https://cdn/mid.mp4")),
                _reply(stream_list(p360="https://cdn/worse.mp4")),
            )
        )
        result = await _controller(fetcher).resolve(series_ref, "56")
        assert (result.quality, result.attempts) == ("720p", 2)

    @pytest.mark.asyncio()
    async def test_url_is_normalized(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(
            post=sequence(_reply(stream_list(p1080="https://cdn//hls//b.mp4")))
        )
        result = await _controller(fetcher).resolve(series_ref, "56")
        assert result.url == "https://cdn/hls/b.mp4"

    @pytest.mark.asyncio()
    async def test_subtitles_from_direct_query(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(
            post=sequence(
                _reply(
                    stream_list(p1080="https://cdn/b.mp4"),
                    subtitle="[Русский]https://cdn/ru.vtt",
                    subtitle_lns={"off": "", "Русский": "ru"},
                )
            )
        )
        result = await _controller(fetcher).resolve(series_ref, "56", None, "1", "1")
        assert result.subtitles == (
            SubtitleTrack(title="Русский", url="https://cdn/ru.vtt", language="ru"),
        )

    @pytest.mark.asyncio()
    async def test_direct_query_request_shape(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(post=sequence(_reply(stream_list(p720="https://cdn/a.mp4"))))
        context = RequestContext(cookies={"PHPSESSID": "abc"})
        await _controller(fetcher, max_attempts=2).resolve(
            series_ref, "56", None, "1", "2", context=context
        )

        first, second = fetcher.post_calls
        assert first["url"].startswith(AJAX_PREFIX)
        assert first["data"]["action"] == "get_stream"
        assert first["data"]["favs"] == context.favs == second["data"]["favs"]
        assert first["headers"]["Referer"] == "https://rezka.ag/"
        assert first["headers"]["Origin"] == "https://rezka.ag"
        assert first["headers"]["Cookie"] == "PHPSESSID=abc"

    @pytest.mark.asyncio()
    async def test_override_attempts_per_call(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(post=sequence(_reply(stream_list(p720="https://cdn/a.mp4"))))
        await _controller(fetcher).resolve(series_ref, "56", max_attempts=1)
        assert len(fetcher.post_calls) == 1

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            StreamResolutionController(StubFetcher(), max_attempts=0)

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("attempts", [0, -1])
    async def test_rejects_non_positive_override(
        self, series_ref: MediaReference, attempts: int
    ) -> None:
        fetcher = StubFetcher(post=sequence(_reply(stream_list(p720="https://cdn/a.mp4"))))
        with pytest.raises(ValueError, match="max_attempts"):
            await _controller(fetcher).resolve(series_ref, "56", max_attempts=attempts)
        assert fetcher.calls == []


class TestFallbacks:
    @pytest.mark.asyncio()
    async def test_rejected_query_falls_back_to_slug_page(
        self, series_ref: MediaReference
    ) -> None:
        fetcher = StubFetcher(
            post=sequence(_rejected()),
            get=sequence(ok(embedded_page(stream_list(p1080="https://cdn/b.mp4")))),
        )
        result = await _controller(fetcher).resolve(
            series_ref, "56", "56-dublyazh", "1", "2"
        )

        assert [c["method"] for c in fetcher.calls] == ["POST", "GET"]
        assert fetcher.get_calls[0]["url"] == EPISODE_URL
        assert (result.quality, result.attempts) == ("1080p", 1)

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        "reply",
        [
            ok("<html>not json</html>"),
            ok(json.dumps({"success": True, "url": ""})),
            ok(json.dumps(["unexpected"])),
        ],
    )
    async def test_unusable_reply_falls_back(
        self, series_ref: MediaReference, reply: object
    ) -> None:
        fetcher = StubFetcher(
            post=sequence(reply),
            get=sequence(ok(embedded_page(stream_list(p1080="https://cdn/b.mp4")))),
        )
        result = await _controller(fetcher).resolve(
            series_ref, "56", "56-dublyazh", "1", "2"
        )
        assert result.quality == "1080p"

    @pytest.mark.asyncio()
    async def test_network_error_falls_back(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(
            post=sequence(TransportError("connection reset")),
            get=sequence(ok(embedded_page(stream_list(p1080="https://cdn/b.mp4")))),
        )
        result = await _controller(fetcher).resolve(
            series_ref, "56", "56-dublyazh", "1", "2"
        )
        assert result.quality == "1080p"

    @pytest.mark.asyncio()
    async def test_slug_page_only_without_media_id(self) -> None:
        media = MediaReference(media_id="", url=SERIES_URL)
        fetcher = StubFetcher(
            get=sequence(
                ok(
                    embedded_page(
                        stream_list(p1080="https://cdn/b.mp4"),
                        subtitle="[English]https://cdn/en.vtt",
                        subtitle_lns={"English": "en"},
                    )
                )
            )
        )
        result = await _controller(fetcher).resolve(media, "56", "56-dublyazh", "1", "2")

        assert fetcher.post_calls == []
        assert result.subtitles == (
            SubtitleTrack(title="English", url="https://cdn/en.vtt", language="en"),
        )

    @pytest.mark.asyncio()
    async def test_rejection_without_fallback_raises(
        self, series_ref: MediaReference
    ) -> None:
        # No slug: the fallback GET hits the landing page, which has no payload
        fetcher = StubFetcher(post=sequence(_rejected()), get=sequence(ok("<html/>")))
        with pytest.raises(StreamNotFoundError):
            await _controller(fetcher, max_attempts=2).resolve(series_ref, "56")
        assert len(fetcher.calls) == 4


class TestFailures:
    @pytest.mark.asyncio()
    async def test_503_without_result_raises(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(post=sequence(_service_unavailable()))
        with pytest.raises(TransportError) as exc_info:
            await _controller(fetcher).resolve(series_ref, "56", "56-dublyazh", "1", "2")

        assert exc_info.value.is_service_unavailable
        # 503 is never retried and never falls back
        assert len(fetcher.calls) == 1

    @pytest.mark.asyncio()
    async def test_503_returns_best_so_far(self, series_ref: MediaReference) -> None:
        fetcher = StubFetcher(
            post=sequence(
                _reply(stream_list(p720="https://cdn/a.mp4")),
                _service_unavailable(),
                _reply(stream_list(p1080="https://cdn/b.mp4")),
            )
        )
        result = await _controller(fetcher).resolve(series_ref, "56")

        assert len(fetcher.calls) == 2
        assert (result.quality, result.attempts) == ("720p", 1)

    @pytest.mark.asyncio()
    async def test_failure_then_success(self, series_ref: MediaReference) -> None:
        media = MediaReference(media_id="", url=SERIES_URL)
        fetcher = StubFetcher(
            get=sequence(
                TransportError("HTTP 502", status=502),
                ok(embedded_page(stream_list(p1080="https://cdn/b.mp4"))),
            )
        )
        result = await _controller(fetcher).resolve(media, "56", "56-dublyazh", "1", "2")
        assert (result.quality, result.attempts) == ("1080p", 2)

    @pytest.mark.asyncio()
    async def test_last_attempt_error_keeps_best(
        self, series_ref: MediaReference
    ) -> None:
        fetcher = StubFetcher(
            post=sequence(
                _reply(stream_list(p480="https://cdn/low.mp4")),
                TransportError("HTTP 502", status=502),
            ),
            get=sequence(TransportError("HTTP 502", status=502)),
        )
        result = await _controller(fetcher, max_attempts=2).resolve(
            series_ref, "56", "56-dublyazh", "1", "2"
        )
        assert result.quality == "480p"

    @pytest.mark.asyncio()
    async def test_every_attempt_failing_raises_last_error(self) -> None:
        media = MediaReference(media_id="", url=SERIES_URL)
        fetcher = StubFetcher(get=sequence(TransportError("HTTP 502", status=502)))
        with pytest.raises(TransportError, match="502"):
            await _controller(fetcher).resolve(media, "56", "56-dublyazh", "1", "2")
        assert len(fetcher.get_calls) == 3

    @pytest.mark.asyncio()
    async def test_empty_payloads_exhaust_attempts(self) -> None:
        media = MediaReference(media_id="", url=SERIES_URL)
        fetcher = StubFetcher(get=sequence(ok(embedded_page(""))))
        with pytest.raises(ResolutionError) as exc_info:
            await _controller(fetcher).resolve(media, "56", "56-dublyazh", "1", "2")

        assert "exhausted attempts" in str(exc_info.value)
        assert exc_info.value.translation_id == "56"
        assert exc_info.value.episode_id == "2"

    @pytest.mark.asyncio()
    async def test_failed_fallback_raises_fallback_error(
        self, series_ref: MediaReference
    ) -> None:
        # No GET handler: the slug page fetch fails after the rejection
        fetcher = StubFetcher(post=sequence(_rejected()))
        with pytest.raises(TransportError, match="unexpected GET"):
            await _controller(fetcher, max_attempts=1).resolve(
                series_ref, "56", "56-dublyazh"
            )


class TestProgressAndPacing:
    @pytest.mark.asyncio()
    async def test_progress_reported_per_attempt(
        self, series_ref: MediaReference
    ) -> None:
        fetcher = StubFetcher(
            post=sequence(
                _reply(stream_list(p720="https://cdn/a.mp4")),
                TransportError("boom", status=500),
                _reply(stream_list(p480="https://cdn/c.mp4")),
            ),
            get=sequence(TransportError("boom", status=500)),
        )
        seen: list[tuple[int, int, str | None]] = []
        await _controller(fetcher).resolve(
            series_ref,
            "56",
            "56-dublyazh",
            "1",
            "2",
            on_progress=lambda a, m, q: seen.append((a, m, q)),
        )
        assert seen == [(1, 3, "720p"), (2, 3, None), (3, 3, "480p")]

    @pytest.mark.asyncio()
    async def test_pause_between_attempts(self, series_ref: MediaReference) -> None:
        sleep = AsyncMock()
        fetcher = StubFetcher(post=sequence(_reply(stream_list(p720="https://cdn/a.mp4"))))
        controller = StreamResolutionController(
            fetcher, max_attempts=3, retry_delay_seconds=0.8, sleep=sleep
        )
        await controller.resolve(series_ref, "56")

        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.8)

    @pytest.mark.asyncio()
    async def test_no_pause_after_early_stop(self, series_ref: MediaReference) -> None:
        sleep = AsyncMock()
        fetcher = StubFetcher(post=sequence(_reply(stream_list(p1080="https://cdn/b.mp4"))))
        controller = StreamResolutionController(
            fetcher, retry_delay_seconds=0.8, sleep=sleep
        )
        await controller.resolve(series_ref, "56")
        sleep.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_zero_delay_skips_sleep(self, series_ref: MediaReference) -> None:
        sleep = AsyncMock()
        fetcher = StubFetcher(post=sequence(_reply(stream_list(p720="https://cdn/a.mp4"))))
        controller = StreamResolutionController(
            fetcher, retry_delay_seconds=0, sleep=sleep
        )
        await controller.resolve(series_ref, "56")
        sleep.assert_not_awaited()


class TestResolveNext:
    @pytest.fixture()
    def page(self, seasons: list[Season], episodes: list[Episode]) -> MediaPage:
        return MediaPage(media_id="5278", seasons=seasons, episodes=episodes)

    @pytest.mark.asyncio()
    async def test_crosses_into_next_season(
        self,
        series_ref: MediaReference,
        dub_translation: Translation,
        page: MediaPage,
        episodes: list[Episode],
        seasons: list[Season],
    ) -> None:
        fetcher = StubFetcher(post=sequence(_reply(stream_list(p1080="https://cdn/n.mp4"))))
        resolved = await _controller(fetcher).resolve_next(
            series_ref, dub_translation, page, episodes[1]
        )

        assert resolved is not None
        following, result = resolved
        assert following.episode == episodes[2]
        assert following.season == seasons[1]
        assert result.url == "https://cdn/n.mp4"
        data = fetcher.post_calls[0]["data"]
        assert (data["season"], data["episode"]) == ("2", "1")

    @pytest.mark.asyncio()
    async def test_last_episode_returns_none(
        self,
        series_ref: MediaReference,
        dub_translation: Translation,
        page: MediaPage,
        episodes: list[Episode],
    ) -> None:
        fetcher = StubFetcher()
        resolved = await _controller(fetcher).resolve_next(
            series_ref, dub_translation, page, episodes[2]
        )
        assert resolved is None
        assert fetcher.calls == []
