"""
Cache store protocol with in-memory and Redis implementations.

The warming subsystem treats the cache as a stable wire contract with four
operations.  Any store implementing them is substitutable.

Manifesto:
    - **Protocol-based:** ``CacheStore`` defines the contract
    - **Typed failures:** Driver exceptions are translated into
      ``CacheTransientError`` / ``CachePermanentError`` at this boundary
    - **Bytes in, bytes out:** Values are opaque; serialization is the
      transformer's job

Architecture:
    ::

        CacheStore (Protocol)
        ├── InMemoryCacheStore : single process, tests and dry runs
        └── RedisCacheStore    : distributed, production

        API: set_with_expiry(key, value, ttl_seconds)
             get(key) → bytes | None
             key_count() → int
             memory_stats() → MemoryStats(used_bytes, fragmentation_ratio)
             ping() → bool

Guardrails:
    ❌ DON'T: Write without an expiry (unbounded growth)
    ✅ DO: Every write goes through ``set_with_expiry`` with ttl > 0

    ❌ DON'T: Let ``redis.exceptions`` escape to the warmers
    ✅ DO: Translate at this boundary so retry policy sees typed errors

Tags:
    cache, redis, in-memory, ttl, protocol, warmspine
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import redis

from warmspine.core.errors import CachePermanentError, CacheTransientError

# Redis hard limit for a string value
DEFAULT_MAX_VALUE_BYTES = 512 * 1024 * 1024


@dataclass(frozen=True)
class MemoryStats:
    """Result of the memory/fragmentation introspection call."""

    used_bytes: int
    fragmentation_ratio: float


@runtime_checkable
class CacheStore(Protocol):
    """Protocol for the key-value store the warming subsystem populates."""

    def set_with_expiry(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``.

        Raises:
            CacheTransientError: Connection reset, timeout.
            CachePermanentError: Malformed key, value too large, rejected command.
        """
        ...

    def get(self, key: str) -> bytes | None:
        """Return the stored value, or ``None`` on a miss."""
        ...

    def key_count(self) -> int:
        """Number of keys currently held by the store."""
        ...

    def memory_stats(self) -> MemoryStats:
        """Used bytes and fragmentation ratio."""
        ...

    def ping(self) -> bool:
        """``True`` when the store answers; never raises."""
        ...


def _check_write(key: str, value: bytes, ttl_seconds: int, max_value_bytes: int) -> None:
    if not key or any(ch.isspace() for ch in key):
        raise CachePermanentError(f"Malformed cache key: {key!r}").with_context(key=key)
    if ttl_seconds <= 0:
        raise CachePermanentError(f"Invalid ttl {ttl_seconds} for {key}").with_context(key=key)
    if len(value) > max_value_bytes:
        raise CachePermanentError(
            f"Value too large for {key}: {len(value)} > {max_value_bytes} bytes"
        ).with_context(key=key)


# ------------------------------------------------------------------ #
# In-Memory Store
# ------------------------------------------------------------------ #


class InMemoryCacheStore:
    """Thread-safe in-memory store with lazy TTL expiry.

    Example:
        store = InMemoryCacheStore()
        store.set_with_expiry("catalog:1", b'{"id": 1}', 3600)
        store.get("catalog:1")
    """

    def __init__(
        self,
        *,
        max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store: dict[str, tuple[bytes, float]] = {}
        self._lock = threading.Lock()
        self._max_value_bytes = max_value_bytes
        self._clock = clock

    def set_with_expiry(self, key: str, value: bytes, ttl_seconds: int) -> None:
        _check_write(key, value, ttl_seconds, self._max_value_bytes)
        with self._lock:
            self._store[key] = (bytes(value), self._clock() + ttl_seconds)

    def get(self, key: str) -> bytes | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._store[key]
                return None
            return value

    def ttl(self, key: str) -> float | None:
        """Remaining seconds to live for ``key``, or ``None`` on a miss."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            remaining = entry[1] - self._clock()
            return remaining if remaining > 0 else None

    def keys(self) -> list[str]:
        """Live keys, sorted."""
        with self._lock:
            self._purge_expired()
            return sorted(self._store)

    def key_count(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._store)

    def memory_stats(self) -> MemoryStats:
        with self._lock:
            self._purge_expired()
            used = sum(len(k) + len(v) for k, (v, _) in self._store.items())
        return MemoryStats(used_bytes=used, fragmentation_ratio=1.0)

    def ping(self) -> bool:
        return True

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._store.items() if now >= expires_at]
        for key in expired:
            del self._store[key]


# ------------------------------------------------------------------ #
# Redis Store
# ------------------------------------------------------------------ #


class RedisCacheStore:
    """Redis-backed cache store.

    Translates ``redis.exceptions`` into the warming error taxonomy:
    connection and timeout errors are transient, everything the server
    rejects is permanent.

    Example:
        store = RedisCacheStore("redis://localhost:6379/0", socket_timeout=5.0)
        store.set_with_expiry("catalog:42", payload, 7200)
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        socket_timeout: float | None = 5.0,
        max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES,
        client: Any | None = None,
    ):
        self._url = url
        self._client = client or redis.from_url(
            url,
            decode_responses=False,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._max_value_bytes = max_value_bytes

    @property
    def url(self) -> str:
        return self._url

    def set_with_expiry(self, key: str, value: bytes, ttl_seconds: int) -> None:
        _check_write(key, value, ttl_seconds, self._max_value_bytes)
        self._call(lambda: self._client.setex(key, ttl_seconds, value), key=key)

    def get(self, key: str) -> bytes | None:
        return self._call(lambda: self._client.get(key), key=key)

    def ttl(self, key: str) -> int | None:
        remaining = self._call(lambda: self._client.ttl(key), key=key)
        return remaining if remaining and remaining > 0 else None

    def key_count(self) -> int:
        return int(self._call(self._client.dbsize))

    def memory_stats(self) -> MemoryStats:
        info = self._call(lambda: self._client.info("memory"))
        return MemoryStats(
            used_bytes=int(info.get("used_memory", 0)),
            fragmentation_ratio=float(info.get("mem_fragmentation_ratio", 1.0)),
        )

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.exceptions.RedisError:
            return False

    def _call(self, func: Callable[[], Any], *, key: str | None = None) -> Any:
        try:
            return func()
        except redis.exceptions.AuthenticationError as exc:
            raise CachePermanentError("Redis authentication failed", cause=exc).with_context(key=key)
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as exc:
            raise CacheTransientError(f"Redis unavailable: {exc}", cause=exc).with_context(key=key)
        except redis.exceptions.RedisError as exc:
            raise CachePermanentError(f"Redis rejected command: {exc}", cause=exc).with_context(key=key)


__all__ = [
    "MemoryStats",
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "DEFAULT_MAX_VALUE_BYTES",
]
