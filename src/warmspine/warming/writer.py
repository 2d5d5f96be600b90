"""Cache Writer: set-with-expiry with bounded retry.

Transient store errors are retried with exponential backoff (0.2s, 0.4s,
0.8s by default).  Permanent errors and exhausted retries come back as a
failed ``WriteOutcome`` so the batch keeps going.  When retries are
exhausted the writer pings the store; if the store does not answer at all
it raises ``CacheStoreUnavailableError``, the only error fatal to a job.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from warmspine.core.cache import CacheStore
from warmspine.core.errors import (
    CacheError,
    CachePermanentError,
    CacheStoreUnavailableError,
    CacheTransientError,
)
from warmspine.core.logging import get_logger
from warmspine.core.models import CacheRecord
from warmspine.execution.retry import ExponentialBackoff, RetryContext, RetryStrategy

logger = get_logger(__name__)


@dataclass(frozen=True)
class WriteOutcome:
    """Ack or failure for one record."""

    key: str
    ok: bool
    attempts: int = 1
    error: CacheError | None = None

    @property
    def retried(self) -> bool:
        return self.attempts > 1


class CacheWriter:
    """Applies ``CacheRecord`` values to a ``CacheStore``.

    Example:
        writer = CacheWriter(store, max_retries=3)
        outcome = writer.write(record)
        if not outcome.ok:
            stats.failed += 1
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        max_retries: int = 3,
        base_delay: float = 0.2,
        max_delay: float = 5.0,
        jitter: bool = False,
        strategy: RetryStrategy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._strategy = strategy or ExponentialBackoff(
            max_retries=max_retries,
            base_delay=base_delay,
            max_delay=max_delay,
            jitter=jitter,
            classifier=lambda exc: isinstance(exc, CacheTransientError),
        )
        self._sleep = sleep

    @property
    def store(self) -> CacheStore:
        return self._store

    def write(self, record: CacheRecord) -> WriteOutcome:
        """Write one record.  Never raises for row-level failures.

        Raises:
            CacheStoreUnavailableError: Retries exhausted and the store
                no longer answers a ping.
        """
        ctx = RetryContext(self._strategy, on_retry=self._log_retry, sleep=self._sleep)
        try:
            ctx.run(self._store.set_with_expiry, record.key, record.value, record.ttl_seconds)
        except CachePermanentError as exc:
            logger.warning("cache_writer.permanent_failure", key=record.key, error=exc.message)
            return WriteOutcome(key=record.key, ok=False, attempts=ctx.attempts, error=exc)
        except CacheTransientError as exc:
            if not self._store.ping():
                raise CacheStoreUnavailableError(
                    f"Cache store unreachable after {ctx.attempts} attempts",
                    cause=exc,
                ).with_context(key=record.key, category=record.category.value)
            logger.warning(
                "cache_writer.retries_exhausted",
                key=record.key,
                attempts=ctx.attempts,
                error=exc.message,
            )
            return WriteOutcome(key=record.key, ok=False, attempts=ctx.attempts, error=exc)
        return WriteOutcome(key=record.key, ok=True, attempts=ctx.attempts)

    @staticmethod
    def _log_retry(attempt: int, error: Exception, delay: float) -> None:
        logger.debug("cache_writer.retry", attempt=attempt, delay=delay, error=str(error))


__all__ = ["CacheWriter", "WriteOutcome"]
