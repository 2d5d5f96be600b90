"""Tests for warmspine.validation.gate."""

from __future__ import annotations

import random
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from warmspine.core.cache import InMemoryCacheStore
from warmspine.core.errors import CacheTransientError
from warmspine.core.models import (
    CacheTelemetry,
    Category,
    CategoryStats,
    CategoryStatus,
    JobStatus,
    WarmingReport,
    utcnow,
)
from warmspine.validation.gate import CacheLiveSampler, ValidationGate, ValidationThresholds


def make_report(
    *,
    status: JobStatus = JobStatus.COMPLETED,
    total_keys: int | None = 300,
    fragmentation: float = 1.1,
    stats: tuple[CategoryStats, ...] | None = None,
) -> WarmingReport:
    now = utcnow()
    telemetry = (
        CacheTelemetry(total_keys=total_keys, memory_used_bytes=4096, fragmentation_ratio=fragmentation)
        if total_keys is not None
        else None
    )
    return WarmingReport(
        job_id="job-1",
        status=status,
        started_at=now - timedelta(seconds=1),
        completed_at=now,
        batch_size=50,
        max_retries=3,
        categories=stats
        if stats is not None
        else (
            CategoryStats(category=Category.CATALOG, attempted=120, succeeded=120, sample_keys=("catalog:1",)),
            CategoryStats(category=Category.REFERENCE, attempted=40, succeeded=40, sample_keys=("reference:salt",)),
        ),
        telemetry=telemetry,
    )


class TestThresholdChecks:
    def test_passes(self):
        decision = ValidationGate(ValidationThresholds()).validate(make_report())
        assert decision.passed
        assert decision.reasons == ()
        assert decision.job_id == "job-1"

    def test_total_keys(self):
        decision = ValidationGate().validate(make_report(total_keys=150))
        assert decision.reasons == ("total_keys 150 below min_total_keys 200",)

    def test_missing_telemetry_fails(self):
        decision = ValidationGate().validate(make_report(total_keys=None))
        assert "cache telemetry unavailable; cannot verify min_total_keys" in decision.reasons

    def test_per_category_minimum(self):
        thresholds = ValidationThresholds(min_total_keys=0, min_per_category={Category.CATALOG: 200})
        decision = ValidationGate(thresholds).validate(make_report())
        assert decision.reasons == ("catalog: succeeded 120 below min_per_category[catalog] 200",)

    def test_absent_category_counts_as_zero(self):
        thresholds = ValidationThresholds(min_total_keys=0, min_per_category={Category.USER_STATE: 1})
        decision = ValidationGate(thresholds).validate(make_report())
        assert decision.reasons == ("user_state: succeeded 0 below min_per_category[user_state] 1",)

    def test_required_categories(self):
        thresholds = ValidationThresholds(
            min_total_keys=0, min_per_category={}, required_categories=(Category.QUERY_RESULTS,)
        )
        assert not ValidationGate(thresholds).validate(make_report()).passed

    def test_fragmentation(self):
        thresholds = ValidationThresholds(max_fragmentation_ratio=1.5)
        decision = ValidationGate(thresholds).validate(make_report(fragmentation=2.0))
        assert decision.reasons == ("fragmentation_ratio 2.00 above max_fragmentation_ratio 1.50",)

    @pytest.mark.parametrize("status", [JobStatus.ABORTED, JobStatus.FAILED])
    def test_non_completed_job_fails(self, status):
        decision = ValidationGate().validate(make_report(status=status))
        assert decision.reasons[0] == f"job status is {status.value}, expected Completed"

    def test_collects_every_reason(self):
        stats = (CategoryStats(category=Category.CATALOG, attempted=10, succeeded=10, status=CategoryStatus.ABORTED),)
        decision = ValidationGate().validate(make_report(status=JobStatus.ABORTED, total_keys=10, stats=stats))
        assert len(decision.reasons) == 3

    def test_threshold_override_per_call(self):
        gate = ValidationGate(ValidationThresholds())
        assert not gate.validate(make_report(total_keys=150)).passed
        assert gate.validate(make_report(total_keys=150), ValidationThresholds(min_total_keys=100)).passed


class TestLiveSample:
    def test_sampler_reasons_added(self):
        sampler = MagicMock()
        sampler.sample.side_effect = [None, "live sample for reference: reference:salt missing from cache"]
        decision = ValidationGate(sampler=sampler).validate(make_report())
        assert decision.reasons == ("live sample for reference: reference:salt missing from cache",)
        assert sampler.sample.call_count == 2

    def test_cache_sampler_present(self):
        store = InMemoryCacheStore()
        store.set_with_expiry("catalog:1", b'{"id":"1"}', 60)
        stats = CategoryStats(category=Category.CATALOG, attempted=1, succeeded=1, sample_keys=("catalog:1",))
        assert CacheLiveSampler(store, rng=random.Random(0)).sample(stats) is None

    def test_cache_sampler_missing(self):
        stats = CategoryStats(category=Category.CATALOG, attempted=1, succeeded=1, sample_keys=("catalog:1",))
        reason = CacheLiveSampler(InMemoryCacheStore()).sample(stats)
        assert reason == "live sample for catalog: catalog:1 missing from cache"

    def test_cache_sampler_not_json(self):
        store = InMemoryCacheStore()
        store.set_with_expiry("catalog:1", b"\xff\xfe", 60)
        stats = CategoryStats(category=Category.CATALOG, attempted=1, succeeded=1, sample_keys=("catalog:1",))
        assert "does not deserialize" in CacheLiveSampler(store).sample(stats)

    def test_cache_sampler_lookup_error(self):
        store = MagicMock()
        store.get.side_effect = CacheTransientError("reset")
        stats = CategoryStats(category=Category.CATALOG, attempted=1, succeeded=1, sample_keys=("catalog:1",))
        assert "lookup of catalog:1 failed" in CacheLiveSampler(store).sample(stats)

    def test_nothing_written_nothing_sampled(self):
        store = MagicMock()
        assert CacheLiveSampler(store).sample(CategoryStats(category=Category.CATALOG)) is None
        store.get.assert_not_called()
