"""
Validation Gate: pass/fail verdict on a warming report.

Manifesto:
    The gate decides whether warmed-cache health is good enough to take
    traffic.  It never stops at the first problem: every failing check
    adds a reason so the operator sees the whole picture in one decision.

    Everything except the live sample is a pure function of the report
    and the thresholds.  The live sample goes through the ``LiveSampler``
    protocol so tests can run the gate without a cache.

Checks (in order):
    0. job status is ``Completed`` (aborted or failed jobs never pass)
    1. ``total_keys >= min_total_keys`` (fails when telemetry is missing)
    2. per-category ``succeeded >= min_per_category[category]``; required
       categories without an explicit minimum need at least one success
    3. optional ``fragmentation_ratio <= max_fragmentation_ratio``
    4. live sample: one random recently-written key per category must be
       present and deserialize

Guardrails:
    ❌ DON'T: re-evaluate a persisted decision
    ✅ DO: run a new warming job and gate its report

Tags:
    validation, gate, thresholds, cutover, live-sample
"""

from __future__ import annotations

import json
import random
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from warmspine.core.cache import CacheStore
from warmspine.core.errors import CacheError
from warmspine.core.logging import get_logger
from warmspine.core.models import Category, CategoryStats, CutoverDecision, JobStatus, WarmingReport

logger = get_logger(__name__)


class ValidationThresholds(BaseModel):
    """Thresholds a warming report must meet before cutover."""

    model_config = ConfigDict(frozen=True)

    min_total_keys: int = Field(default=200, ge=0)
    min_per_category: dict[Category, int] = Field(default_factory=lambda: {Category.CATALOG: 50})
    required_categories: tuple[Category, ...] = ()
    max_fragmentation_ratio: float | None = Field(default=None, gt=0)

    def category_minimums(self) -> dict[Category, int]:
        """Every required category with its minimum success count."""
        minimums = {category: 1 for category in self.required_categories}
        minimums.update(self.min_per_category)
        return minimums


class LiveSampler(Protocol):
    def sample(self, stats: CategoryStats) -> str | None:
        """Check one recently written key; return a failure reason or ``None``."""
        ...


class CacheLiveSampler:
    """Looks up a random recently-written key and checks it deserializes."""

    def __init__(self, store: CacheStore, *, rng: random.Random | None = None):
        self._store = store
        self._rng = rng or random.Random()

    def sample(self, stats: CategoryStats) -> str | None:
        if not stats.sample_keys:
            return None
        key = self._rng.choice(stats.sample_keys)
        try:
            value = self._store.get(key)
        except CacheError as exc:
            return f"live sample for {stats.category.value}: lookup of {key} failed: {exc.message}"
        if value is None:
            return f"live sample for {stats.category.value}: {key} missing from cache"
        try:
            json.loads(value)
        except (UnicodeDecodeError, json.JSONDecodeError):
            return f"live sample for {stats.category.value}: {key} does not deserialize"
        return None


class ValidationGate:
    """Turns a ``WarmingReport`` into a ``CutoverDecision``.

    Example:
        gate = ValidationGate(ValidationThresholds(min_total_keys=200), sampler=CacheLiveSampler(store))
        decision = gate.validate(report)
        if not decision.passed:
            print("\\n".join(decision.reasons))
    """

    def __init__(
        self,
        thresholds: ValidationThresholds | None = None,
        *,
        sampler: LiveSampler | None = None,
    ):
        self._thresholds = thresholds or ValidationThresholds()
        self._sampler = sampler

    @property
    def thresholds(self) -> ValidationThresholds:
        return self._thresholds

    def validate(
        self,
        report: WarmingReport,
        thresholds: ValidationThresholds | None = None,
    ) -> CutoverDecision:
        limits = thresholds or self._thresholds
        reasons: list[str] = []

        if report.status is not JobStatus.COMPLETED:
            reasons.append(f"job status is {report.status.value}, expected {JobStatus.COMPLETED.value}")

        if report.telemetry is None:
            reasons.append("cache telemetry unavailable; cannot verify min_total_keys")
        elif report.total_keys < limits.min_total_keys:
            reasons.append(f"total_keys {report.total_keys} below min_total_keys {limits.min_total_keys}")

        for category, minimum in limits.category_minimums().items():
            stats = report.stats_for(category)
            succeeded = stats.succeeded if stats else 0
            if succeeded < minimum:
                reasons.append(
                    f"{category.value}: succeeded {succeeded} below min_per_category[{category.value}] {minimum}"
                )

        ratio = report.fragmentation_ratio
        if limits.max_fragmentation_ratio is not None and ratio is not None and ratio > limits.max_fragmentation_ratio:
            reasons.append(
                f"fragmentation_ratio {ratio:.2f} above max_fragmentation_ratio {limits.max_fragmentation_ratio:.2f}"
            )

        if self._sampler is not None:
            for stats in report.categories:
                reason = self._sampler.sample(stats)
                if reason:
                    reasons.append(reason)

        decision = CutoverDecision(job_id=report.job_id, passed=not reasons, reasons=tuple(reasons))
        log = logger.info if decision.passed else logger.warning
        log("validation.decided", job_id=report.job_id, passed=decision.passed, reasons=list(decision.reasons))
        return decision


__all__ = ["ValidationThresholds", "ValidationGate", "LiveSampler", "CacheLiveSampler"]
