"""httpx transport with per-host rate limiting and 429 retry.

503 is deliberately not retried here: the resolution controller treats
"service unavailable" as a signal to stop probing and must see it.
"""

from __future__ import annotations

import asyncio
import random

import httpx
import structlog

from rezkastream.infrastructure.http.rate_limiter import DomainRateLimiter

log = structlog.get_logger(__name__)

_DEFAULT_RETRYABLE = frozenset({429})


def _parse_retry_after(headers: httpx.Headers) -> float | None:
    """Parse ``Retry-After`` in its integer-seconds form, else ``None``."""
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    """Wraps an httpx transport with rate limiting and retry on 429.

    **Proactive:** ``DomainRateLimiter.acquire()`` before every request.

    **Reactive:** on retryable statuses, waits with exponential backoff
    plus jitter (or ``Retry-After``) and retries up to *max_retries* times.
    The last response is returned as-is when retries run out.
    """

    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport,
        rate_limiter: DomainRateLimiter,
        *,
        max_retries: int = 2,
        backoff_base: float = 1.0,
        max_backoff: float = 10.0,
        retryable_status_codes: frozenset[int] = _DEFAULT_RETRYABLE,
    ) -> None:
        self._wrapped = wrapped
        self._rate_limiter = rate_limiter
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self._retryable = retryable_status_codes

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        attempt = 0
        while True:
            await self._rate_limiter.acquire(str(request.url))
            response = await self._wrapped.handle_async_request(request)

            if response.status_code not in self._retryable or attempt >= self._max_retries:
                return response

            await response.aread()
            await response.aclose()

            delay = self._compute_delay(response, attempt)
            log.info(
                "http_retry",
                url=str(request.url),
                status=response.status_code,
                attempt=attempt + 1,
                delay=round(delay, 2),
            )
            await asyncio.sleep(delay)
            attempt += 1

    def _compute_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = _parse_retry_after(response.headers)
        if retry_after is not None:
            return min(retry_after, self._max_backoff)
        jitter = random.uniform(0, self._backoff_base)  # noqa: S311
        return min(self._backoff_base * (2**attempt) + jitter, self._max_backoff)

    async def aclose(self) -> None:
        await self._wrapped.aclose()
