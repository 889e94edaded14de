"""Shared test fixtures for the rezkastream test suite."""

from __future__ import annotations

import pytest
from support import SERIES_URL, MemoryCache

from rezkastream.domain.entities import Episode, MediaReference, Season, Translation

# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def series_ref() -> MediaReference:
    return MediaReference(media_id="5278", url=SERIES_URL)


@pytest.fixture()
def dub_translation() -> Translation:
    return Translation(id="56", title="Дубляж", slug="56-dublyazh")


@pytest.fixture()
def seasons() -> list[Season]:
    return [Season(id="1", title="Сезон 1"), Season(id="2", title="Сезон 2")]


@pytest.fixture()
def episodes() -> list[Episode]:
    return [
        Episode(id="1", title="Серия 1", season_id="1"),
        Episode(id="2", title="Серия 2", season_id="1"),
        Episode(id="1", title="Серия 1", season_id="2"),
    ]


@pytest.fixture()
def memory_cache() -> MemoryCache:
    return MemoryCache()
