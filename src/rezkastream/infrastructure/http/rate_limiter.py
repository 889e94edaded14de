"""Per-host token-bucket rate limiter for outgoing requests.

The site throttles aggressive clients (and answers 503 once it does), so
repeated resolve attempts are spread out at the transport level.
"""

from __future__ import annotations

import asyncio
import time
from urllib.parse import urlparse

import structlog

log = structlog.get_logger(__name__)


class TokenBucket:
    """Token bucket refilled at *rate* tokens per second, capped at *burst*.

    A rate of ``0`` disables limiting.
    """

    def __init__(self, rate: float, burst: int = 5) -> None:
        self._rate = rate
        self._burst = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        if self._rate <= 0:
            return

        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                wait = (1.0 - self._tokens) / self._rate
                log.debug("rate_limit_wait", wait=round(wait, 3))
                await asyncio.sleep(wait)
                self._refill()
            self._tokens -= 1.0

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self._burst, self._tokens + (now - self._last_refill) * self._rate)
        self._last_refill = now


class DomainRateLimiter:
    """Keeps one :class:`TokenBucket` per hostname.

    Args:
        default_rps: Requests per second per host. 0 = unlimited.
        burst: Maximum burst size per host.
    """

    def __init__(self, default_rps: float = 2.0, burst: int = 5) -> None:
        self._default_rps = default_rps
        self._burst = burst
        self._buckets: dict[str, TokenBucket] = {}

    def _bucket_for(self, url: str) -> TokenBucket | None:
        host = urlparse(url).hostname
        if not host:
            return None
        bucket = self._buckets.get(host)
        if bucket is None:
            bucket = TokenBucket(rate=self._default_rps, burst=self._burst)
            self._buckets[host] = bucket
        return bucket

    async def acquire(self, url: str) -> None:
        """Wait for rate limit clearance for the URL's host."""
        if self._default_rps <= 0:
            return
        bucket = self._bucket_for(url)
        if bucket is not None:
            await bucket.acquire()
