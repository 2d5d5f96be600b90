"""Core primitives: errors, logging, models, cache stores and persistence.

Architecture::

    errors.py       WarmspineError hierarchy + retry classification
    logging.py      structlog configuration + LogContext
    models.py       Category, CacheRecord, WarmingJob, WarmingReport, CutoverDecision
    cache.py        CacheStore protocol, InMemoryCacheStore, RedisCacheStore
    orm/            SQLAlchemy tables for reports, decisions and locks
    repository.py   ReportRepository (insert-only)
    config/         WarmSettings + component factories
"""

from warmspine.core.cache import CacheStore, InMemoryCacheStore, MemoryStats, RedisCacheStore
from warmspine.core.errors import ErrorCategory, WarmspineError, is_retryable
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
)

__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "MemoryStats",
    "ErrorCategory",
    "WarmspineError",
    "is_retryable",
    "Category",
    "CacheRecord",
    "WarmingJob",
    "CategoryStats",
    "CategoryStatus",
    "CacheTelemetry",
    "WarmingReport",
    "CutoverDecision",
    "JobStatus",
    "ReportOutcome",
]
