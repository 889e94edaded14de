"""Port for the HTTP fetch capability the resolution engine depends on."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class FetchResponse:
    """Already-fetched response body handed to scrapers and decoders."""

    status: int
    text: str
    headers: dict[str, str] = field(default_factory=dict)
    # Set-Cookie values from this response; never kept by the fetcher
    cookies: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class HttpFetcherPort(Protocol):
    """Fetches pages and posts forms.

    Implementations own headers and proxying. They keep no cookies between
    calls: request cookies arrive in the ``Cookie`` header and response
    cookies are handed back on :class:`FetchResponse`. They MUST raise
    ``TransportError`` (carrying the HTTP status where known) for network
    failures and non-success statuses, so callers can tell a
    "service unavailable" answer apart from other errors.
    """

    async def get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> FetchResponse: ...

    async def post(
        self,
        url: str,
        *,
        data: Mapping[str, str],
        headers: Mapping[str, str] | None = None,
    ) -> FetchResponse: ...
