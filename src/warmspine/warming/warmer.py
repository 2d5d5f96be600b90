"""
Category Warmer: Source Reader → Transformer → Cache Writer for one category.

Manifesto:
    One warmer owns one category for one job.  Its counters live in a
    private accumulator that nothing else touches while it runs, and are
    frozen into ``CategoryStats`` at the end.  Every row that is read is
    counted as either ``succeeded`` or ``failed``; nothing is dropped
    silently.

State machine:
    ::

        IDLE ─► PAGING ─► TRANSFORMING ─► WRITING ─┐
                  ▲                                │
                  └────────────────────────────────┘
                  │
                  ├─ empty batch ─────────────────► DONE
                  └─ source error (after retries)
                     cancel / category deadline
                     cache store unreachable ─────► ABORTED

Failure handling:
    - ``MalformedRowError``: row counted failed, batch continues
    - failed ``WriteOutcome``: row counted failed, batch continues
    - ``SourceError`` after retries: category ABORTED, job continues
    - ``CacheStoreUnavailableError``: category ABORTED and the error is
      kept on ``fatal_error`` for the orchestrator

    Cancellation and the category deadline are checked between batches
    only, so in-flight writes of the current batch always finish.

Tags:
    warming, category-warmer, state-machine, batching, accounting
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from enum import Enum

from warmspine.core.errors import (
    CacheStoreUnavailableError,
    MalformedRowError,
    SourceError,
    is_retryable,
)
from warmspine.core.logging import LogContext, get_logger
from warmspine.core.models import CacheRecord, Category, CategoryStats, CategoryStatus
from warmspine.execution.retry import ExponentialBackoff, RetryContext
from warmspine.warming.source import RowBatch, SourceReader
from warmspine.warming.transform import RecordTransformer
from warmspine.warming.writer import CacheWriter

logger = get_logger(__name__)


class WarmerState(str, Enum):
    IDLE = "idle"
    PAGING = "paging"
    TRANSFORMING = "transforming"
    WRITING = "writing"
    DONE = "done"
    ABORTED = "aborted"


class _Accumulator:
    """Mutable counters owned by exactly one warmer."""

    def __init__(self, sample_size: int):
        self.attempted = 0
        self.succeeded = 0
        self.failed = 0
        self.batches = 0
        self.recent_keys: deque[str] = deque(maxlen=sample_size)


class CategoryWarmer:
    """Warms one category in sequential batches.

    Example:
        warmer = CategoryWarmer(Category.CATALOG, reader, transformer, writer, batch_size=50)
        stats = warmer.run()
        assert stats.attempted == stats.succeeded + stats.failed
    """

    def __init__(
        self,
        category: Category,
        reader: SourceReader,
        transformer: RecordTransformer,
        writer: CacheWriter,
        *,
        batch_size: int = 50,
        max_retries: int = 3,
        retry_base_delay: float = 0.2,
        retry_max_delay: float = 5.0,
        retry_jitter: bool = False,
        timeout_seconds: float | None = None,
        cancel_event: threading.Event | None = None,
        job_id: str | None = None,
        sample_size: int = 5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.category = category
        self._reader = reader
        self._transformer = transformer
        self._writer = writer
        self._batch_size = batch_size
        self._read_strategy = ExponentialBackoff(
            max_retries=max_retries,
            base_delay=retry_base_delay,
            max_delay=retry_max_delay,
            jitter=retry_jitter,
            classifier=is_retryable,
        )
        self._timeout = timeout_seconds
        self._cancel = cancel_event or threading.Event()
        self._job_id = job_id
        self._sleep = sleep
        self._clock = clock

        self._acc = _Accumulator(sample_size)
        self.state = WarmerState.IDLE
        self.fatal_error: CacheStoreUnavailableError | None = None

    def run(self) -> CategoryStats:
        """Warm the category until the source is exhausted or the warmer aborts."""
        if self.state is not WarmerState.IDLE:
            raise RuntimeError(f"{self.category.value} warmer already ran")

        started = self._clock()
        deadline = started + self._timeout if self._timeout else None
        offset = 0
        abort_reason: str | None = None

        with LogContext(job_id=self._job_id, category=self.category.value):
            logger.info("warming.category.started", batch_size=self._batch_size)
            while True:
                if self._cancel.is_set():
                    abort_reason = "cancelled before next batch"
                    break
                if deadline is not None and self._clock() >= deadline:
                    abort_reason = f"timed out after {self._timeout}s"
                    break

                self.state = WarmerState.PAGING
                try:
                    batch = self._read(offset)
                except SourceError as exc:
                    abort_reason = f"{type(exc).__name__}: {exc.message}"
                    break

                if batch.is_empty:
                    break

                try:
                    self._process(batch)
                except CacheStoreUnavailableError as exc:
                    self.fatal_error = exc
                    abort_reason = f"cache store unavailable: {exc.message}"
                    break
                offset = batch.next_offset

            duration_ms = int((self._clock() - started) * 1000)
            self.state = WarmerState.ABORTED if abort_reason else WarmerState.DONE
            stats = self.snapshot(duration_ms=duration_ms, abort_reason=abort_reason)
            log = logger.warning if abort_reason else logger.info
            log(
                "warming.category.finished",
                status=stats.status.value,
                attempted=stats.attempted,
                succeeded=stats.succeeded,
                failed=stats.failed,
                batches=stats.batches,
                duration_ms=duration_ms,
                abort_reason=abort_reason,
            )
        return stats

    def snapshot(self, *, duration_ms: int = 0, abort_reason: str | None = None) -> CategoryStats:
        """Freeze the accumulator into ``CategoryStats``."""
        acc = self._acc
        return CategoryStats(
            category=self.category,
            attempted=acc.attempted,
            succeeded=acc.succeeded,
            # rows interrupted before an outcome count as failed
            failed=acc.attempted - acc.succeeded,
            duration_ms=duration_ms,
            status=CategoryStatus.ABORTED if abort_reason else CategoryStatus.DONE,
            abort_reason=abort_reason,
            batches=acc.batches,
            sample_keys=tuple(acc.recent_keys),
        )

    def _read(self, offset: int) -> RowBatch:
        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning("warming.source.retry", offset=offset, attempt=attempt, delay=delay, error=str(error))

        ctx = RetryContext(self._read_strategy, on_retry=on_retry, sleep=self._sleep)
        return ctx.run(self._reader.read, self.category, offset, self._batch_size)

    def _process(self, batch: RowBatch) -> None:
        acc = self._acc
        self.state = WarmerState.TRANSFORMING
        records: list[CacheRecord] = []
        for row in batch.rows:
            acc.attempted += 1
            try:
                records.append(self._transformer.transform(row, self.category))
            except MalformedRowError as exc:
                acc.failed += 1
                logger.warning("warming.row.malformed", offset=batch.offset, field=exc.field, error=exc.message)

        self.state = WarmerState.WRITING
        for index, record in enumerate(records):
            try:
                outcome = self._writer.write(record)
            except CacheStoreUnavailableError:
                # Current record plus the unwritten rest of the batch
                acc.failed += len(records) - index
                raise
            if outcome.ok:
                acc.succeeded += 1
                acc.recent_keys.append(record.key)
            else:
                acc.failed += 1

        acc.batches += 1
        logger.debug(
            "warming.batch.written",
            offset=batch.offset,
            rows=len(batch),
            succeeded=acc.succeeded,
            failed=acc.failed,
        )


__all__ = ["CategoryWarmer", "WarmerState"]
