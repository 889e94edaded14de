"""httpx implementation of :class:`HttpFetcherPort`.

Owns the shared ``httpx.AsyncClient`` and the site's default headers. The
client's cookie jar refuses every cookie, so one resolution's session never
leaks into another; session cookies travel on the caller's request context.
Every failure surfaces as ``TransportError`` carrying the HTTP status, so
the controller can stop on 503 and retry on anything else.
"""

from __future__ import annotations

from collections.abc import Mapping
from http.cookiejar import Cookie, CookieJar, DefaultCookiePolicy
from typing import Any

import httpx
import structlog

from rezkastream.domain.exceptions import TransportError
from rezkastream.domain.ports import FetchResponse
from rezkastream.infrastructure.http.rate_limiter import DomainRateLimiter
from rezkastream.infrastructure.http.retry_transport import RetryTransport

log = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT_LANGUAGE = "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7"


class _RejectAllPolicy(DefaultCookiePolicy):
    def set_ok(self, cookie: Cookie, request: Any) -> bool:
        return False


def session_free_jar() -> CookieJar:
    """Cookie jar that never keeps response cookies.

    Handed to httpx as a raw ``CookieJar``: wrapping it in ``httpx.Cookies``
    first would copy it into a default jar and lose the policy.
    """
    return CookieJar(policy=_RejectAllPolicy())


def build_client(
    *,
    timeout_seconds: float = 30.0,
    user_agent: str = DEFAULT_USER_AGENT,
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE,
    rate_limit_rps: float = 2.0,
    rate_limit_burst: int = 5,
    max_retries_429: int = 2,
) -> httpx.AsyncClient:
    """Create the shared client: browser headers + rate-limited retry transport."""
    transport = RetryTransport(
        httpx.AsyncHTTPTransport(),
        DomainRateLimiter(default_rps=rate_limit_rps, burst=rate_limit_burst),
        max_retries=max_retries_429,
    )
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(timeout_seconds),
        follow_redirects=True,
        cookies=session_free_jar(),
        headers={
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": accept_language,
        },
    )


class HttpxFetcher:
    """Fetches site pages and AJAX endpoints through one ``httpx.AsyncClient``.

    The client is injected (see :func:`build_client`); the fetcher does not
    close it unless it created it. An injected client gets a cookie store
    that keeps nothing, the same as :func:`build_client` sets up.
    """

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = http_client is None
        self._http = http_client or build_client()
        self._http.cookies = session_free_jar()

    async def get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> FetchResponse:
        return await self._send("GET", url, headers=headers)

    async def post(
        self,
        url: str,
        *,
        data: Mapping[str, str],
        headers: Mapping[str, str] | None = None,
    ) -> FetchResponse:
        merged = {
            "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
            "X-Requested-With": "XMLHttpRequest",
            **(headers or {}),
        }
        return await self._send("POST", url, headers=merged, data=dict(data))

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None,
        data: dict[str, str] | None = None,
    ) -> FetchResponse:
        try:
            resp = await self._http.request(
                method, url, headers=dict(headers or {}), data=data
            )
        except httpx.TimeoutException as exc:
            log.warning("fetch_timeout", method=method, url=url)
            raise TransportError(f"timeout: {exc}", url=url) from exc
        except httpx.HTTPError as exc:
            log.warning("fetch_error", method=method, url=url, error=str(exc))
            raise TransportError(str(exc) or type(exc).__name__, url=url) from exc

        if not resp.is_success:
            log.warning("fetch_http_error", method=method, url=url, status=resp.status_code)
            raise TransportError(
                f"HTTP {resp.status_code} for {method} {url}",
                status=resp.status_code,
                url=url,
            )

        return FetchResponse(
            status=resp.status_code,
            text=resp.text,
            headers=dict(resp.headers),
            cookies=dict(resp.cookies),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
