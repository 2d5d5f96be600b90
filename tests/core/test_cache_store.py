"""
Tests for warmspine.core.cache.

Covers:
- InMemoryCacheStore: set/get, TTL expiry, key counting, write validation
- RedisCacheStore: command mapping and error translation (mocked client)
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import redis

from warmspine.core.cache import CacheStore, InMemoryCacheStore, MemoryStats, RedisCacheStore
from warmspine.core.errors import CachePermanentError, CacheTransientError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryCacheStore:
    def test_protocol_compliance(self):
        assert isinstance(InMemoryCacheStore(), CacheStore)

    def test_set_get(self, memory_store):
        memory_store.set_with_expiry("catalog:1", b'{"id":"1"}', 60)
        assert memory_store.get("catalog:1") == b'{"id":"1"}'
        assert memory_store.get("catalog:2") is None

    def test_overwrite_is_idempotent(self, memory_store):
        memory_store.set_with_expiry("catalog:1", b"a", 60)
        memory_store.set_with_expiry("catalog:1", b"a", 60)
        assert memory_store.key_count() == 1

    def test_expiry(self):
        clock = FakeClock()
        store = InMemoryCacheStore(clock=clock)
        store.set_with_expiry("k:1", b"v", 10)
        assert store.ttl("k:1") == pytest.approx(10)
        clock.now += 10
        assert store.get("k:1") is None
        assert store.key_count() == 0
        assert store.ttl("k:1") is None

    def test_keys_sorted_and_live(self):
        clock = FakeClock()
        store = InMemoryCacheStore(clock=clock)
        store.set_with_expiry("b:1", b"v", 100)
        store.set_with_expiry("a:1", b"v", 5)
        assert store.keys() == ["a:1", "b:1"]
        clock.now += 6
        assert store.keys() == ["b:1"]

    @pytest.mark.parametrize("key", ["", "has space", "tab\there"])
    def test_malformed_key_is_permanent(self, memory_store, key):
        with pytest.raises(CachePermanentError):
            memory_store.set_with_expiry(key, b"v", 60)

    def test_non_positive_ttl_is_permanent(self, memory_store):
        with pytest.raises(CachePermanentError):
            memory_store.set_with_expiry("k:1", b"v", 0)

    def test_value_too_large(self):
        store = InMemoryCacheStore(max_value_bytes=4)
        with pytest.raises(CachePermanentError, match="too large"):
            store.set_with_expiry("k:1", b"12345", 60)

    def test_memory_stats(self, memory_store):
        memory_store.set_with_expiry("k:1", b"abc", 60)
        stats = memory_store.memory_stats()
        assert stats == MemoryStats(used_bytes=len("k:1") + 3, fragmentation_ratio=1.0)
        assert memory_store.ping() is True


class TestRedisCacheStore:
    def _store(self) -> tuple[RedisCacheStore, MagicMock]:
        client = MagicMock()
        return RedisCacheStore("redis://example:6379/0", client=client), client

    def test_set_with_expiry_uses_setex(self):
        store, client = self._store()
        store.set_with_expiry("catalog:1", b"v", 120)
        client.setex.assert_called_once_with("catalog:1", 120, b"v")

    def test_get_and_counts(self):
        store, client = self._store()
        client.get.return_value = b"v"
        client.dbsize.return_value = 42
        client.info.return_value = {"used_memory": 2048, "mem_fragmentation_ratio": 1.3}
        assert store.get("catalog:1") == b"v"
        assert store.key_count() == 42
        assert store.memory_stats() == MemoryStats(used_bytes=2048, fragmentation_ratio=1.3)
        client.info.assert_called_once_with("memory")

    def test_ttl(self):
        store, client = self._store()
        client.ttl.return_value = -2
        assert store.ttl("missing") is None
        client.ttl.return_value = 30
        assert store.ttl("k:1") == 30

    def test_connection_error_is_transient(self):
        store, client = self._store()
        client.setex.side_effect = redis.exceptions.ConnectionError("reset")
        with pytest.raises(CacheTransientError) as exc_info:
            store.set_with_expiry("catalog:1", b"v", 60)
        assert exc_info.value.context.key == "catalog:1"

    def test_timeout_is_transient(self):
        store, client = self._store()
        client.get.side_effect = redis.exceptions.TimeoutError("slow")
        with pytest.raises(CacheTransientError):
            store.get("k:1")

    def test_response_error_is_permanent(self):
        store, client = self._store()
        client.setex.side_effect = redis.exceptions.ResponseError("OOM command not allowed")
        with pytest.raises(CachePermanentError, match="rejected"):
            store.set_with_expiry("k:1", b"v", 60)

    def test_authentication_error_is_permanent(self):
        store, client = self._store()
        client.setex.side_effect = redis.exceptions.AuthenticationError("bad password")
        with pytest.raises(CachePermanentError, match="authentication"):
            store.set_with_expiry("k:1", b"v", 60)

    def test_ping_never_raises(self):
        store, client = self._store()
        client.ping.side_effect = redis.exceptions.ConnectionError("refused")
        assert store.ping() is False
        client.ping.side_effect = None
        client.ping.return_value = True
        assert store.ping() is True

    def test_validation_happens_before_network(self):
        store, client = self._store()
        with pytest.raises(CachePermanentError):
            store.set_with_expiry("bad key", b"v", 60)
        client.setex.assert_not_called()
