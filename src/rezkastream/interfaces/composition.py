"""Composition root: wires all engine components from an AppConfig."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx
import structlog

from rezkastream.application.use_cases.catalog import CatalogUseCase
from rezkastream.application.use_cases.preload import EpisodePreloader
from rezkastream.application.use_cases.resolve_stream import (
    StreamResolutionController,
)
from rezkastream.domain.ports import HistoryRepository
from rezkastream.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from rezkastream.infrastructure.config.schema import AppConfig
from rezkastream.infrastructure.http.fetcher import HttpxFetcher, build_client
from rezkastream.infrastructure.persistence.history_repository import (
    CacheHistoryRepository,
)
from rezkastream.infrastructure.rezka.decoder import PayloadDecoder

log = structlog.get_logger(__name__)


@dataclass
class Engine:
    """All long-lived components; valid inside ``build_engine``'s context."""

    config: AppConfig
    http_client: httpx.AsyncClient
    fetcher: HttpxFetcher
    controller: StreamResolutionController
    catalog: CatalogUseCase
    history: HistoryRepository

    def new_preloader(self) -> EpisodePreloader:
        """Create a preloader for one playback session (caller-owned)."""
        return EpisodePreloader(self.controller)


@asynccontextmanager
async def build_engine(config: AppConfig) -> AsyncIterator[Engine]:
    """Initialize and clean up all resources.

    Order matters:
        1. Cache (history repository depends on it)
        2. HTTP client (rate limiter + 429 retry transport)
        3. Use cases
    """
    cache = DiskcacheAdapter(directory=config.cache_dir)
    await cache.__aenter__()
    log.info("cache_initialized", directory=str(config.cache_dir))

    http_client = build_client(
        timeout_seconds=config.http.timeout_seconds,
        user_agent=config.http.user_agent,
        accept_language=config.http.accept_language,
        rate_limit_rps=config.http.rate_limit_rps,
        rate_limit_burst=config.http.rate_limit_burst,
        max_retries_429=config.http.max_retries_429,
    )
    log.info(
        "http_client_initialized",
        timeout=config.http.timeout_seconds,
        rate_limit_rps=config.http.rate_limit_rps,
    )

    try:
        fetcher = HttpxFetcher(http_client)
        decoder = PayloadDecoder(**config.decoder.model_dump())
        controller = StreamResolutionController(
            fetcher,
            base_url=config.site.base_url,
            referer=config.site.effective_referer,
            decoder=decoder,
            max_attempts=config.resolver.max_attempts,
            retry_delay_seconds=config.resolver.retry_delay_seconds,
            direct_query_enabled=config.resolver.direct_query_enabled,
        )
        catalog = CatalogUseCase(
            fetcher,
            base_url=config.site.base_url,
            referer=config.site.effective_referer,
        )

        yield Engine(
            config=config,
            http_client=http_client,
            fetcher=fetcher,
            controller=controller,
            catalog=catalog,
            history=CacheHistoryRepository(cache),
        )
    finally:
        await http_client.aclose()
        log.info("http_client_closed")
        await cache.aclose()
