"""
Tests for the fixed-window task rate limiter.
"""

from unittest.mock import AsyncMock

import pytest

from docsagent.core.cache_backend import CacheConnectionError, InMemoryCacheBackend
from docsagent.core.rate_limiting import FixedWindowRateLimiter, RateLimitResult, get_client_ip


class TestGetClientIp:
    def test_prefers_forwarded_for(self):
        headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        assert get_client_ip(headers, "127.0.0.1") == "203.0.113.7"

    def test_falls_back_to_client_host(self):
        assert get_client_ip({}, "127.0.0.1") == "127.0.0.1"
        assert get_client_ip({}, None) == "unknown"


class TestFixedWindowRateLimiter:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit_then_blocks(self):
        limiter = FixedWindowRateLimiter(InMemoryCacheBackend(cleanup_interval_seconds=0), limit=3, window_seconds=60)

        results = [await limiter.check("tasks:1.2.3.4") for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert results[2].remaining == 0
        assert results[3].retry_after_seconds > 0
        assert "Retry-After" in results[3].to_headers()

    @pytest.mark.asyncio
    async def test_buckets_are_independent(self):
        limiter = FixedWindowRateLimiter(InMemoryCacheBackend(cleanup_interval_seconds=0), limit=1)

        assert (await limiter.check("a")).allowed
        assert (await limiter.check("b")).allowed
        assert not (await limiter.check("a")).allowed

    @pytest.mark.asyncio
    async def test_window_key_gets_expiry(self):
        backend = InMemoryCacheBackend(cleanup_interval_seconds=0)
        limiter = FixedWindowRateLimiter(backend, limit=5, window_seconds=30, namespace="rl:test")

        await limiter.check("client")

        (key,) = await backend.keys("rl:test:client:*")
        assert backend._data[key][1] is not None

    @pytest.mark.asyncio
    async def test_backend_failure_fails_open(self):
        backend = AsyncMock()
        backend.incr.side_effect = CacheConnectionError("down")
        limiter = FixedWindowRateLimiter(backend, limit=1)

        result = await limiter.check("client")

        assert result.allowed is True


def test_headers_for_allowed_result_omit_retry_after():
    headers = RateLimitResult(allowed=True, remaining=4, limit=5, reset_seconds=10).to_headers()
    assert headers == {"RateLimit-Limit": "5", "RateLimit-Remaining": "4", "RateLimit-Reset": "10"}
