"""Domain models for cache warming and cutover.

Pydantic v2 models for everything that is reported or persisted
(``CategoryStats``, ``WarmingReport``, ``CutoverDecision``) and plain
dataclasses for the values that only live inside a run (``CacheRecord``,
``WarmingJob``).

Key Concepts:
    Category: A logical partition of cacheable data with its own key
        prefix, row model and TTL policy.
    CacheRecord: One derived cache entry.  The key is deterministic from
        category + source identity so re-warming is idempotent.
    WarmingJob: One invocation of the orchestrator.  Mutated only by the
        orchestrator; terminal once every warmer finishes or the job is
        aborted.
    CategoryStats: Frozen per-category counters.  ``attempted ==
        succeeded + failed`` is enforced at construction.
    WarmingReport: Immutable aggregate of all CategoryStats plus cache
        telemetry sampled once after warming.
    CutoverDecision: Immutable pass/fail verdict on exactly one report.

Architecture Decisions:
    - ``frozen=True`` on reported models: reports and decisions are
      never edited after creation; a re-run produces a new job.
    - ``model_dump_json()`` is the persisted form; ``model_validate_json``
      restores it for the CLI and API.

Tags:
    models, pydantic, dataclasses, reports, warmspine
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from warmspine.core.errors import InvalidConfigError, ValidationFailedError


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Category(str, Enum):
    """Data categories the warming subsystem knows how to populate."""

    CATALOG = "catalog"              # Catalog items (recipes, products)
    USER_STATE = "user_state"        # Per-user profile and session summary
    AGGREGATES = "aggregates"        # Derived per-user aggregates (plans)
    QUERY_RESULTS = "query_results"  # Cached results of hot search terms
    REFERENCE = "reference"          # Reference lookup data (nutrition)

    @property
    def key_prefix(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | Category) -> Category:
        """Parse a category name, raising ``InvalidConfigError`` on unknown names."""
        if isinstance(value, Category):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise InvalidConfigError("category", value) from exc


class JobStatus(str, Enum):
    """Lifecycle of a warming job."""

    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    ABORTED = "Aborted"


class CategoryStatus(str, Enum):
    """Terminal status of one category warmer."""

    DONE = "Done"
    ABORTED = "Aborted"


class ReportOutcome(str, Enum):
    """Operator-facing outcome of a warming job."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


# ---------------------------------------------------------------------------
# In-flight values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CacheRecord:
    """A canonical cache entry derived from one source row.

    ``value`` is an opaque serialized payload; nothing downstream of the
    transformer interprets it.
    """

    key: str
    value: bytes
    category: Category
    ttl_seconds: int
    popularity_score: float = 0.0

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("CacheRecord key must not be empty")
        if not self.key.startswith(f"{self.category.key_prefix}:"):
            raise ValueError(
                f"CacheRecord key {self.key!r} is not namespaced under {self.category.key_prefix!r}"
            )
        if self.ttl_seconds <= 0:
            raise ValueError(f"CacheRecord ttl_seconds must be > 0, got {self.ttl_seconds}")


@dataclass
class WarmingJob:
    """One end-to-end execution of populating the cache.

    Attributes:
        categories: Categories to warm, in launch order
        batch_size: Rows per source page
        max_retries: Retry budget for source reads and cache writes
        job_id: Unique identifier, also the persistence key
        started_at: Creation time
        status: ``Running`` until the orchestrator finishes the job
        completed_at: Set when the job reaches a terminal status
    """

    categories: list[Category]
    batch_size: int = 50
    max_retries: int = 3
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=utcnow)
    status: JobStatus = JobStatus.RUNNING
    completed_at: datetime | None = None

    def __post_init__(self) -> None:
        self.categories = [Category.parse(c) for c in self.categories]
        if not self.categories:
            raise InvalidConfigError("categories", self.categories, "A warming job needs at least one category")
        if len(set(self.categories)) != len(self.categories):
            raise InvalidConfigError("categories", [c.value for c in self.categories], "Duplicate categories in job")
        if self.batch_size < 1:
            raise InvalidConfigError("batch_size", self.batch_size)
        if self.max_retries < 0:
            raise InvalidConfigError("max_retries", self.max_retries)

    @property
    def is_terminal(self) -> bool:
        return self.status is not JobStatus.RUNNING

    def finish(self, status: JobStatus) -> None:
        """Move the job to a terminal status exactly once."""
        if self.is_terminal:
            raise ValueError(f"Job {self.job_id} is already {self.status.value}")
        if status is JobStatus.RUNNING:
            raise ValueError("finish() requires a terminal status")
        self.status = status
        self.completed_at = utcnow()


# ---------------------------------------------------------------------------
# Reported models
# ---------------------------------------------------------------------------


class CategoryStats(BaseModel):
    """Counters for one category warmer in one job."""

    model_config = ConfigDict(frozen=True)

    category: Category
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_ms: int = 0
    status: CategoryStatus = CategoryStatus.DONE
    abort_reason: str | None = None
    batches: int = 0
    sample_keys: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_conservation(self) -> CategoryStats:
        if self.attempted != self.succeeded + self.failed:
            raise ValueError(
                f"{self.category.value}: attempted ({self.attempted}) != "
                f"succeeded ({self.succeeded}) + failed ({self.failed})"
            )
        return self


class CacheTelemetry(BaseModel):
    """Cache-wide telemetry sampled once after warming completes."""

    model_config = ConfigDict(frozen=True)

    total_keys: int
    memory_used_bytes: int
    fragmentation_ratio: float
    sampled_at: datetime = Field(default_factory=utcnow)


class WarmingReport(BaseModel):
    """Aggregate of a warming job. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    started_at: datetime
    completed_at: datetime
    batch_size: int
    max_retries: int
    categories: tuple[CategoryStats, ...] = ()
    telemetry: CacheTelemetry | None = None
    fatal_error: str | None = None

    @property
    def total_keys(self) -> int:
        return self.telemetry.total_keys if self.telemetry else 0

    @property
    def memory_used_bytes(self) -> int:
        return self.telemetry.memory_used_bytes if self.telemetry else 0

    @property
    def fragmentation_ratio(self) -> float | None:
        return self.telemetry.fragmentation_ratio if self.telemetry else None

    @property
    def total_attempted(self) -> int:
        return sum(s.attempted for s in self.categories)

    @property
    def total_succeeded(self) -> int:
        return sum(s.succeeded for s in self.categories)

    @property
    def total_failed(self) -> int:
        return sum(s.failed for s in self.categories)

    @property
    def aborted_categories(self) -> list[Category]:
        return [s.category for s in self.categories if s.status is CategoryStatus.ABORTED]

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    @computed_field
    @property
    def outcome(self) -> ReportOutcome:
        if self.status is JobStatus.FAILED:
            return ReportOutcome.FAILURE
        if self.status is JobStatus.ABORTED or self.aborted_categories:
            return ReportOutcome.PARTIAL
        return ReportOutcome.SUCCESS

    def stats_for(self, category: Category | str) -> CategoryStats | None:
        """Return the stats of ``category``, or ``None`` if it was not part of the job."""
        wanted = Category.parse(category)
        for stats in self.categories:
            if stats.category is wanted:
                return stats
        return None


class CutoverDecision(BaseModel):
    """Pass/fail verdict on one warming report. Persisted for audit."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    passed: bool
    reasons: tuple[str, ...] = ()
    decided_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_reasons(self) -> CutoverDecision:
        if self.passed and self.reasons:
            raise ValueError("A passing decision cannot carry failure reasons")
        if not self.passed and not self.reasons:
            raise ValueError("A failing decision must carry at least one reason")
        return self

    def raise_for_failure(self) -> None:
        """Raise ``ValidationFailedError`` carrying the reasons unless the decision passed."""
        if not self.passed:
            raise ValidationFailedError(
                f"Cutover validation failed for job {self.job_id}: {'; '.join(self.reasons)}",
                reasons=list(self.reasons),
            )


__all__ = [
    "utcnow",
    "Category",
    "JobStatus",
    "CategoryStatus",
    "ReportOutcome",
    "CacheRecord",
    "WarmingJob",
    "CategoryStats",
    "CacheTelemetry",
    "WarmingReport",
    "CutoverDecision",
]
