"""Tests for warmspine.warming.writer."""

from __future__ import annotations

import pytest

from tests._support.fakes import FlakyCacheStore
from warmspine.core.errors import CachePermanentError, CacheStoreUnavailableError, CacheTransientError
from warmspine.core.models import CacheRecord, Category
from warmspine.warming.writer import CacheWriter


def record(key: str = "catalog:1") -> CacheRecord:
    return CacheRecord(key=key, value=b'{"id":"1"}', category=Category.CATALOG, ttl_seconds=60)


class TestCacheWriter:
    def test_first_try(self, sleeps):
        store = FlakyCacheStore()
        outcome = CacheWriter(store, sleep=sleeps.append).write(record())
        assert outcome.ok and outcome.attempts == 1 and not outcome.retried
        assert store.get("catalog:1") == b'{"id":"1"}'
        assert sleeps == []

    def test_transient_then_success(self, sleeps):
        store = FlakyCacheStore(transient={"catalog:1": 2})
        outcome = CacheWriter(store, sleep=sleeps.append).write(record())
        assert outcome.ok
        assert outcome.attempts == 3
        assert sleeps == pytest.approx([0.2, 0.4])

    def test_permanent_not_retried(self, sleeps):
        store = FlakyCacheStore(permanent={"catalog:1"})
        outcome = CacheWriter(store, sleep=sleeps.append).write(record())
        assert not outcome.ok
        assert isinstance(outcome.error, CachePermanentError)
        assert store.write_attempts["catalog:1"] == 1
        assert sleeps == []

    def test_exhausted_but_store_alive(self, sleeps):
        store = FlakyCacheStore(transient={"catalog:1": 10})
        outcome = CacheWriter(store, max_retries=3, sleep=sleeps.append).write(record())
        assert not outcome.ok
        assert isinstance(outcome.error, CacheTransientError)
        assert outcome.attempts == 4
        assert sleeps == pytest.approx([0.2, 0.4, 0.8])

    def test_store_unavailable_is_fatal(self, sleeps):
        store = FlakyCacheStore()
        store.down = True
        with pytest.raises(CacheStoreUnavailableError) as exc_info:
            CacheWriter(store, max_retries=1, sleep=sleeps.append).write(record())
        assert exc_info.value.context.key == "catalog:1"
        assert store.write_attempts["catalog:1"] == 2
