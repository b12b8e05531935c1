"""
Rate limiting for task submission.

Fixed-window counters on top of the CacheBackend, so limits are shared
across replicas when Redis is configured and per-process otherwise.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

from .cache_backend import CacheBackend, CacheError

logger = logging.getLogger(__name__)


def get_client_ip(headers: Dict[str, str], client_host: Optional[str] = None) -> str:
    """Extract client IP from request headers.

    Checks X-Forwarded-For for proxied requests, falls back to client host.
    """
    forwarded = headers.get("X-Forwarded-For") if hasattr(headers, "get") else None
    if forwarded:
        return forwarded.split(",")[0].strip()
    return client_host or "unknown"


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    retry_after_seconds: int = 0
    remaining: int = 0
    limit: int = 0
    reset_seconds: int = 0

    def to_headers(self) -> dict[str, str]:
        """Generate standard rate limit response headers."""
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(max(0, self.remaining)),
            "RateLimit-Reset": str(self.reset_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class FixedWindowRateLimiter:
    """Allow ``limit`` requests per ``window_seconds`` for each bucket key."""

    def __init__(
        self,
        backend: CacheBackend,
        limit: int = 60,
        window_seconds: int = 60,
        namespace: str = "rl",
    ):
        self.backend = backend
        self.limit = max(1, int(limit))
        self.window_seconds = max(1, int(window_seconds))
        self.namespace = namespace

    def _window_key(self, bucket: str, now: float) -> str:
        return f"{self.namespace}:{bucket}:fw:{int(now) // self.window_seconds}"

    async def check(self, bucket: str, cost: int = 1) -> RateLimitResult:
        """Consume ``cost`` from the bucket's current window.

        Backend failures fail open: the request is allowed and the error logged.
        """
        now = time.time()
        window_key = self._window_key(bucket, now)
        reset_seconds = self.window_seconds - (int(now) % self.window_seconds)

        try:
            current = await self.backend.incr(window_key, cost)
            if current == cost:
                await self.backend.expire(window_key, self.window_seconds)
        except CacheError as e:
            logger.exception("Rate limiter backend failure; allowing request: %s", e.message)
            return RateLimitResult(allowed=True, remaining=self.limit, limit=self.limit)

        if current <= self.limit:
            return RateLimitResult(
                allowed=True,
                remaining=self.limit - current,
                limit=self.limit,
                reset_seconds=reset_seconds,
            )

        logger.debug(
            "Rate limit exceeded: key=%s, current=%d, limit=%d",
            window_key, current, self.limit
        )
        return RateLimitResult(
            allowed=False,
            retry_after_seconds=reset_seconds,
            remaining=0,
            limit=self.limit,
            reset_seconds=reset_seconds,
        )
