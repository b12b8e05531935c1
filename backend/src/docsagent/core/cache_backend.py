"""
Key-value backend for credential persistence and rate-limit counters.

This module defines the CacheBackend protocol with two interchangeable
implementations:
- RedisCacheBackend: shared storage for multi-node deployments
- InMemoryCacheBackend: single-node/development deployments and tests

Backend selection is automatic based on the DOCSAGENT_REDIS_URL configuration.

Example usage:
    from docsagent.core.cache_backend import get_cache_backend

    backend = await get_cache_backend()
    await backend.set("token:123", payload)
    keys = await backend.keys("token:*")
"""

import fnmatch
import logging
import threading
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

import redis.asyncio as redis

logger = logging.getLogger(__name__)

# Global cache backend instance (singleton)
_cache_backend: Optional["CacheBackend"] = None

# Global Redis client instance (internal use only)
_redis_client: Optional[Any] = None


class CacheError(Exception):
    """Base exception for cache operations.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class CacheConnectionError(CacheError):
    """Raised when the cache backend is unreachable."""
    pass


class CacheKeyError(CacheError):
    """Raised when the provided key is invalid (e.g. empty)."""
    pass


class CacheTypeError(CacheError):
    """Raised when incr is attempted on a non-numeric value."""
    pass


@runtime_checkable
class CacheBackend(Protocol):
    """Protocol defining the key-value backend interface.

    Values are strings; callers serialize structured data (JSON) themselves.
    Keys should be namespaced, e.g. ``token:<user_id>`` or ``email:<address>``.
    Implementations must be safe for concurrent access.
    """

    async def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None if absent or expired."""
        ...

    async def set(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """Store a value. ``ttl_seconds`` None means no expiry; <= 0 deletes the key."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete a key. Returns False if it didn't exist; never raises for a missing key."""
        ...

    async def exists(self, key: str) -> bool:
        """True if the key exists and has not expired."""
        ...

    async def keys(self, pattern: str) -> List[str]:
        """Return live keys matching a glob pattern (``*`` matches any run of characters).

        Order is unspecified. Intended for administrative listings, not hot paths.
        """
        ...

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set or update the TTL of an existing key. ``ttl_seconds`` must be positive."""
        ...

    async def incr(self, key: str, amount: int = 1) -> int:
        """Increment a numeric value, treating a missing key as 0."""
        ...


class InMemoryCacheBackend:
    """In-memory backend with TTL support.

    Thread-safe implementation suitable for single-process deployments.
    Uses threading.RLock and supports TTL expiration with lazy cleanup on
    access plus periodic cleanup to prevent unbounded growth.

    Limitations:
        - Data is not shared across processes
        - Data is lost on process restart
    """

    def __init__(self, cleanup_interval_seconds: int = 60):
        """Initialize the in-memory store.

        Args:
            cleanup_interval_seconds: Interval for periodic cleanup of
                expired entries. Set to 0 to disable (lazy cleanup only).
        """
        # Storage: key -> (value, expiry_timestamp or None for no expiry)
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.RLock()
        self._cleanup_interval = cleanup_interval_seconds
        self._last_cleanup = time.time()

    def _is_expired(self, expiry: Optional[float]) -> bool:
        if expiry is None:
            return False
        return time.time() > expiry

    def _maybe_cleanup(self) -> None:
        """Drop expired entries if the cleanup interval has passed. Caller holds the lock."""
        if self._cleanup_interval <= 0:
            return

        current_time = time.time()
        if current_time - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = current_time
        expired_keys = [
            key for key, (_, expiry) in self._data.items()
            if self._is_expired(expiry)
        ]
        for key in expired_keys:
            del self._data[key]

    def _live_entry(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        """Return the entry for key, evicting it first if expired. Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        if self._is_expired(entry[1]):
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        with self._lock:
            self._maybe_cleanup()
            entry = self._live_entry(key)
            return entry[0] if entry is not None else None

    async def set(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        with self._lock:
            self._maybe_cleanup()

            # Non-positive TTL means delete immediately
            if ttl_seconds is not None and ttl_seconds <= 0:
                self._data.pop(key, None)
                return True

            expiry: Optional[float] = None
            if ttl_seconds is not None:
                expiry = time.time() + ttl_seconds

            self._data[key] = (value, expiry)
            return True

    async def delete(self, key: str) -> bool:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        with self._lock:
            self._maybe_cleanup()
            if self._live_entry(key) is None:
                return False
            del self._data[key]
            return True

    async def exists(self, key: str) -> bool:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        with self._lock:
            self._maybe_cleanup()
            return self._live_entry(key) is not None

    async def keys(self, pattern: str) -> List[str]:
        """Return live keys matching a glob pattern.

        Matching is case-sensitive and follows Redis glob semantics for
        ``*``, ``?`` and ``[...]``.
        """
        with self._lock:
            self._maybe_cleanup()
            matched = []
            for key in list(self._data.keys()):
                if not fnmatch.fnmatchcase(key, pattern):
                    continue
                if self._live_entry(key) is not None:
                    matched.append(key)
            return matched

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        with self._lock:
            self._maybe_cleanup()
            entry = self._live_entry(key)
            if entry is None:
                return False
            self._data[key] = (entry[0], time.time() + ttl_seconds)
            return True

    async def incr(self, key: str, amount: int = 1) -> int:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        with self._lock:
            self._maybe_cleanup()

            current_value = 0
            current_expiry: Optional[float] = None
            entry = self._live_entry(key)
            if entry is not None:
                value_str, current_expiry = entry
                try:
                    current_value = int(value_str)
                except ValueError as e:
                    raise CacheTypeError(
                        f"Value for key '{key}' is not a valid integer: {value_str!r}"
                    ) from e

            new_value = current_value + amount
            self._data[key] = (str(new_value), current_expiry)
            return new_value


class RedisCacheBackend:
    """Redis-backed implementation.

    Wraps an async Redis client (``decode_responses=True``) and translates
    client failures into CacheConnectionError. Use ``get_cache_backend()``
    rather than constructing this class directly.
    """

    def __init__(self, redis_client: Any):
        self._client = redis_client

    async def get(self, key: str) -> Optional[str]:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        try:
            return await self._client.get(key)
        except Exception as e:
            logger.error(f"Redis GET failed for key '{key}': {e}")
            raise CacheConnectionError(
                f"Failed to get key '{key}' from Redis",
                details={"key": key, "error": str(e)}
            ) from e

    async def set(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        try:
            if ttl_seconds is not None and ttl_seconds <= 0:
                await self._client.delete(key)
                return True

            if ttl_seconds is not None:
                await self._client.setex(key, ttl_seconds, value)
            else:
                await self._client.set(key, value)
            return True
        except Exception as e:
            logger.error(f"Redis SET failed for key '{key}': {e}")
            raise CacheConnectionError(
                f"Failed to set key '{key}' in Redis",
                details={"key": key, "error": str(e)}
            ) from e

    async def delete(self, key: str) -> bool:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        try:
            result = await self._client.delete(key)
            # Redis delete returns the number of keys deleted
            return result > 0
        except Exception as e:
            logger.error(f"Redis DELETE failed for key '{key}': {e}")
            raise CacheConnectionError(
                f"Failed to delete key '{key}' from Redis",
                details={"key": key, "error": str(e)}
            ) from e

    async def exists(self, key: str) -> bool:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        try:
            result = await self._client.exists(key)
            return result > 0
        except Exception as e:
            logger.error(f"Redis EXISTS failed for key '{key}': {e}")
            raise CacheConnectionError(
                f"Failed to check existence of key '{key}' in Redis",
                details={"key": key, "error": str(e)}
            ) from e

    async def keys(self, pattern: str) -> List[str]:
        # SCAN instead of KEYS so large keyspaces don't block the server
        try:
            return [key async for key in self._client.scan_iter(match=pattern)]
        except Exception as e:
            logger.error(f"Redis SCAN failed for pattern '{pattern}': {e}")
            raise CacheConnectionError(
                f"Failed to list keys matching '{pattern}' in Redis",
                details={"pattern": pattern, "error": str(e)}
            ) from e

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        try:
            result = await self._client.expire(key, ttl_seconds)
            return bool(result)
        except Exception as e:
            logger.error(f"Redis EXPIRE failed for key '{key}': {e}")
            raise CacheConnectionError(
                f"Failed to set expiration for key '{key}' in Redis",
                details={"key": key, "ttl_seconds": ttl_seconds, "error": str(e)}
            ) from e

    async def incr(self, key: str, amount: int = 1) -> int:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

        try:
            if amount == 1:
                result = await self._client.incr(key)
            else:
                result = await self._client.incrby(key, amount)
            return int(result)
        except Exception as e:
            error_str = str(e).lower()
            if "not an integer" in error_str or "wrongtype" in error_str:
                raise CacheTypeError(
                    f"Value for key '{key}' is not a valid integer",
                    details={"key": key, "error": str(e)}
                ) from e
            logger.error(f"Redis INCR failed for key '{key}': {e}")
            raise CacheConnectionError(
                f"Failed to increment key '{key}' in Redis",
                details={"key": key, "amount": amount, "error": str(e)}
            ) from e


# =============================================================================
# Redis Client Management (Internal)
# =============================================================================

async def _create_redis_client() -> Any:
    """Create a Redis client and verify it with PING.

    Raises:
        CacheConnectionError: If Redis connection fails.
    """
    from .config import get_settings_instance

    settings = get_settings_instance()

    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_connection_timeout
        )
        await client.ping()

        logger.info("Redis client initialized successfully", extra={
            "connection_timeout": settings.redis_connection_timeout,
            "socket_timeout": settings.redis_socket_timeout
        })
        return client

    except Exception as e:
        logger.warning(f"Redis connection failed: {e}")
        raise CacheConnectionError(
            f"Redis connection failed: {e}",
            details={"error": str(e)}
        ) from e


async def _get_redis_client() -> Any:
    global _redis_client

    if _redis_client is None:
        _redis_client = await _create_redis_client()
    return _redis_client


# =============================================================================
# Cache Backend Factory
# =============================================================================

async def get_cache_backend() -> CacheBackend:
    """Get the configured backend (singleton).

    Selection logic:
    1. DOCSAGENT_REDIS_URL set and Redis reachable -> RedisCacheBackend
    2. DOCSAGENT_REDIS_URL set, unreachable, fallback enabled -> InMemoryCacheBackend (with warning)
    3. DOCSAGENT_REDIS_URL not set -> InMemoryCacheBackend

    Raises:
        CacheConnectionError: If Redis is required (or fallback is disabled)
            and the connection fails.
    """
    global _cache_backend

    if _cache_backend is not None:
        return _cache_backend

    from .config import get_settings_instance

    settings = get_settings_instance()

    if not settings.redis_enabled:
        logger.info("DOCSAGENT_REDIS_URL not set, using InMemoryCacheBackend")
        _cache_backend = InMemoryCacheBackend()
        return _cache_backend

    try:
        redis_client = await _get_redis_client()
        _cache_backend = RedisCacheBackend(redis_client)
        logger.info("Using RedisCacheBackend")
        return _cache_backend

    except CacheConnectionError as e:
        if settings.redis_required:
            logger.error("Redis is required but connection failed", extra={"error": str(e)})
            raise CacheConnectionError(
                f"Redis is required but connection failed: {e}. "
                f"Please ensure Redis is running and accessible."
            ) from e

        if not settings.redis_fallback_enabled:
            logger.error("Redis fallback is disabled and Redis connection failed", extra={"error": str(e)})
            raise CacheConnectionError(
                f"Redis connection failed and fallback is disabled: {e}."
            ) from e

        logger.warning(
            "Redis connection failed, falling back to InMemoryCacheBackend",
            extra={"error": str(e)}
        )
        _cache_backend = InMemoryCacheBackend()
        return _cache_backend


async def close_cache_backend() -> None:
    """Close the Redis client, if one was opened (call during shutdown)."""
    global _cache_backend, _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
        except Exception as e:
            logger.warning(f"Error closing Redis client: {e}")
    _cache_backend = None
    _redis_client = None


def reset_cache_backend() -> None:
    """Reset the backend singleton (for testing only)."""
    global _cache_backend, _redis_client
    _cache_backend = None
    _redis_client = None
