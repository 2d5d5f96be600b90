"""Execution utilities: retry with backoff and category locks."""

from warmspine.execution.concurrency import (
    CategoryLockGuard,
    DatabaseCategoryLockGuard,
    InMemoryCategoryLockGuard,
)
from warmspine.execution.retry import ExponentialBackoff, NoRetry, RetryContext, RetryStrategy

__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
    "CategoryLockGuard",
    "InMemoryCategoryLockGuard",
    "DatabaseCategoryLockGuard",
]
