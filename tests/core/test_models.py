"""Tests for warmspine.core.models."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from warmspine.core.errors import InvalidConfigError, ValidationFailedError
from warmspine.core.models import (
    CacheRecord,
    CacheTelemetry,
    Category,
    CategoryStats,
    CategoryStatus,
    CutoverDecision,
    JobStatus,
    ReportOutcome,
    WarmingJob,
    WarmingReport,
    utcnow,
)


def make_report(status=JobStatus.COMPLETED, categories=(), telemetry=None, **kwargs) -> WarmingReport:
    now = utcnow()
    return WarmingReport(
        job_id=kwargs.pop("job_id", "job-1"),
        status=status,
        started_at=now - timedelta(seconds=3),
        completed_at=now,
        batch_size=50,
        max_retries=3,
        categories=tuple(categories),
        telemetry=telemetry,
        **kwargs,
    )


class TestCategory:
    def test_parse(self):
        assert Category.parse(" Catalog ") is Category.CATALOG
        assert Category.parse(Category.REFERENCE) is Category.REFERENCE

    def test_parse_unknown(self):
        with pytest.raises(InvalidConfigError):
            Category.parse("bogus")

    def test_key_prefix(self):
        assert Category.QUERY_RESULTS.key_prefix == "query_results"


class TestCacheRecord:
    def test_namespace_enforced(self):
        with pytest.raises(ValueError, match="namespaced"):
            CacheRecord(key="reference:1", value=b"{}", category=Category.CATALOG, ttl_seconds=60)

    def test_ttl_positive(self):
        with pytest.raises(ValueError):
            CacheRecord(key="catalog:1", value=b"{}", category=Category.CATALOG, ttl_seconds=0)


class TestWarmingJob:
    def test_defaults(self):
        job = WarmingJob(categories=["catalog", "reference"])
        assert job.categories == [Category.CATALOG, Category.REFERENCE]
        assert job.status is JobStatus.RUNNING
        assert job.completed_at is None
        assert job.job_id

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"categories": []},
            {"categories": ["catalog", "catalog"]},
            {"categories": ["catalog"], "batch_size": 0},
            {"categories": ["catalog"], "max_retries": -1},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidConfigError):
            WarmingJob(**kwargs)

    def test_finish_once(self):
        job = WarmingJob(categories=[Category.CATALOG])
        job.finish(JobStatus.COMPLETED)
        assert job.is_terminal
        assert job.completed_at is not None
        with pytest.raises(ValueError, match="already"):
            job.finish(JobStatus.FAILED)

    def test_finish_requires_terminal(self):
        with pytest.raises(ValueError):
            WarmingJob(categories=[Category.CATALOG]).finish(JobStatus.RUNNING)


class TestCategoryStats:
    def test_conservation(self):
        with pytest.raises(ValidationError, match="attempted"):
            CategoryStats(category=Category.CATALOG, attempted=10, succeeded=5, failed=4)

    def test_frozen(self):
        stats = CategoryStats(category=Category.CATALOG, attempted=1, succeeded=1)
        with pytest.raises(ValidationError):
            stats.succeeded = 2


class TestWarmingReport:
    def test_totals_and_lookup(self):
        report = make_report(
            categories=[
                CategoryStats(category=Category.CATALOG, attempted=10, succeeded=9, failed=1),
                CategoryStats(category=Category.REFERENCE, attempted=5, succeeded=5),
            ],
            telemetry=CacheTelemetry(total_keys=14, memory_used_bytes=100, fragmentation_ratio=1.1),
        )
        assert report.total_attempted == 15
        assert report.total_succeeded == 14
        assert report.total_failed == 1
        assert report.total_keys == 14
        assert report.stats_for("catalog").succeeded == 9
        assert report.stats_for(Category.USER_STATE) is None
        assert report.duration_seconds == pytest.approx(3, abs=0.1)

    def test_without_telemetry(self):
        report = make_report()
        assert report.total_keys == 0
        assert report.fragmentation_ratio is None

    @pytest.mark.parametrize(
        "status, category_status, expected",
        [
            (JobStatus.COMPLETED, CategoryStatus.DONE, ReportOutcome.SUCCESS),
            (JobStatus.COMPLETED, CategoryStatus.ABORTED, ReportOutcome.PARTIAL),
            (JobStatus.ABORTED, CategoryStatus.DONE, ReportOutcome.PARTIAL),
            (JobStatus.FAILED, CategoryStatus.ABORTED, ReportOutcome.FAILURE),
        ],
    )
    def test_outcome(self, status, category_status, expected):
        stats = CategoryStats(category=Category.CATALOG, status=category_status)
        assert make_report(status=status, categories=[stats]).outcome is expected

    def test_json_round_trip_keeps_outcome_out_of_fields(self):
        report = make_report(categories=[CategoryStats(category=Category.CATALOG, attempted=1, succeeded=1)])
        data = report.model_dump(mode="json")
        assert data["outcome"] == "success"
        assert WarmingReport.model_validate(data) == report


class TestCutoverDecision:
    def test_passing_has_no_reasons(self):
        with pytest.raises(ValidationError):
            CutoverDecision(job_id="j", passed=True, reasons=("x",))

    def test_failing_needs_reason(self):
        with pytest.raises(ValidationError):
            CutoverDecision(job_id="j", passed=False)

    def test_raise_for_failure_carries_reasons(self):
        decision = CutoverDecision(job_id="j", passed=False, reasons=("total_keys 1 below min_total_keys 200", "catalog: 0 keys"))
        with pytest.raises(ValidationFailedError, match="Cutover validation failed for job j") as exc_info:
            decision.raise_for_failure()
        assert exc_info.value.reasons == ["total_keys 1 below min_total_keys 200", "catalog: 0 keys"]
        assert exc_info.value.to_dict()["reasons"] == exc_info.value.reasons

    def test_raise_for_failure_passes_quietly(self):
        CutoverDecision(job_id="j", passed=True).raise_for_failure()
