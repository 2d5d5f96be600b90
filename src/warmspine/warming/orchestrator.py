"""
Warming Orchestrator: one job, many categories, one report.

Manifesto:
    Categories are independent, so they warm concurrently in a bounded
    thread pool (each warmer holds its own source connection while it
    pages).  Row and category failures are recovered locally and counted.
    Only a store-wide cache outage is fatal to the job, and even then the
    operator gets a report.

Architecture:
    ::

        run(job)
          ├── preflight: store.ping(), reader.ping()   ─ ConnectivityError
          ├── lock_guard.acquire(categories)           ─ JobConflictError
          ├── ThreadPoolExecutor(max_parallelism)
          │     └── CategoryWarmer.run() per category  ─ CategoryStats
          ├── telemetry sampled once                   ─ CacheTelemetry
          ├── job status
          │     operator cancel           → Aborted
          │     cache store unavailable   → Failed
          │     zero successes everywhere → Failed
          │     otherwise                 → Completed
          ├── repository.save_report(report)           (optional)
          └── lock_guard.release(categories)           (finally)

    ``cancel()`` sets a shared event.  Warmers stop before their next
    batch, finish the writes already in flight and report partial stats.

Tags:
    warming, orchestrator, thread-pool, concurrency, report
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from warmspine.core.cache import CacheStore
from warmspine.core.errors import CacheError, ConnectivityError, WarmspineError
from warmspine.core.logging import LogContext, get_logger
from warmspine.core.models import (
    CacheTelemetry,
    CategoryStats,
    JobStatus,
    WarmingJob,
    WarmingReport,
)
from warmspine.core.repository import ReportRepository
from warmspine.execution.concurrency import CategoryLockGuard, InMemoryCategoryLockGuard
from warmspine.warming.source import SourceReader
from warmspine.warming.transform import RecordTransformer
from warmspine.warming.warmer import CategoryWarmer
from warmspine.warming.writer import CacheWriter

logger = get_logger(__name__)


class WarmingOrchestrator:
    """Runs Category Warmers for a ``WarmingJob`` and assembles the report.

    Example:
        orchestrator = WarmingOrchestrator(store, reader, max_parallelism=3)
        report = orchestrator.run(WarmingJob(categories=[Category.CATALOG]))
        print(report.outcome)
    """

    def __init__(
        self,
        store: CacheStore,
        reader: SourceReader,
        *,
        transformer: RecordTransformer | None = None,
        lock_guard: CategoryLockGuard | None = None,
        repository: ReportRepository | None = None,
        max_parallelism: int = 3,
        retry_base_delay: float = 0.2,
        retry_max_delay: float = 5.0,
        retry_jitter: bool = False,
        category_timeout_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_parallelism < 1:
            raise ValueError(f"max_parallelism must be >= 1, got {max_parallelism}")
        self._store = store
        self._reader = reader
        self._transformer = transformer or RecordTransformer()
        self._lock_guard = lock_guard or InMemoryCategoryLockGuard()
        self._repository = repository
        self._max_parallelism = max_parallelism
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._retry_jitter = retry_jitter
        self._category_timeout = category_timeout_seconds
        self._sleep = sleep

        self._cancel_event = threading.Event()
        self._operator_cancelled = False
        self._current_job: WarmingJob | None = None

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def current_job(self) -> WarmingJob | None:
        return self._current_job

    def cancel(self) -> None:
        """Cooperative abort of the running job.  No-op when idle.

        Safe to call from a signal handler or another thread.
        """
        job = self._current_job
        if job is None:
            logger.info("warming.job.cancel_ignored", reason="no job running")
            return
        self._operator_cancelled = True
        self._cancel_event.set()
        logger.warning("warming.job.cancel_requested", job_id=job.job_id)

    def preflight(self) -> None:
        """Ping the cache store and the source store.

        Raises:
            ConnectivityError: Either store does not answer.
        """
        unreachable = []
        if not self._store.ping():
            unreachable.append("cache store")
        if not self._reader.ping():
            unreachable.append("source store")
        if unreachable:
            raise ConnectivityError(f"Preflight failed: {' and '.join(unreachable)} unreachable")

    def run(self, job: WarmingJob) -> WarmingReport:
        """Run ``job`` to a terminal status and return its report.

        Raises:
            ConnectivityError: Preflight failed; no warmer was started.
            JobConflictError: A running job holds one of the categories.
        """
        with LogContext(job_id=job.job_id):
            self._current_job = job
            try:
                try:
                    self.preflight()
                    self._lock_guard.acquire(job.categories, job.job_id)
                except WarmspineError as exc:
                    job.finish(JobStatus.FAILED)
                    logger.error("warming.job.rejected", error=exc.message, error_type=type(exc).__name__)
                    raise
                try:
                    report = self._execute(job)
                finally:
                    self._lock_guard.release(job.categories, job.job_id)
            finally:
                self._current_job = None
                self._cancel_event.clear()
                self._operator_cancelled = False

            if self._repository is not None:
                self._repository.save_report(report)
            return report

    def _execute(self, job: WarmingJob) -> WarmingReport:
        logger.info(
            "warming.job.started",
            categories=[c.value for c in job.categories],
            batch_size=job.batch_size,
            max_retries=job.max_retries,
            max_parallelism=self._max_parallelism,
        )
        writer = CacheWriter(
            self._store,
            max_retries=job.max_retries,
            base_delay=self._retry_base_delay,
            max_delay=self._retry_max_delay,
            jitter=self._retry_jitter,
            sleep=self._sleep,
        )
        warmers = [
            CategoryWarmer(
                category,
                self._reader,
                self._transformer,
                writer,
                batch_size=job.batch_size,
                max_retries=job.max_retries,
                retry_base_delay=self._retry_base_delay,
                retry_max_delay=self._retry_max_delay,
                retry_jitter=self._retry_jitter,
                timeout_seconds=self._category_timeout,
                cancel_event=self._cancel_event,
                job_id=job.job_id,
                sleep=self._sleep,
            )
            for category in job.categories
        ]

        workers = min(self._max_parallelism, len(warmers))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="warmer") as pool:
            futures: list[tuple[CategoryWarmer, Future[CategoryStats]]] = []
            for warmer in warmers:
                future = pool.submit(warmer.run)
                future.add_done_callback(lambda f, w=warmer: self._on_warmer_done(w))
                futures.append((warmer, future))
            results = [self._collect(warmer, future) for warmer, future in futures]

        fatal = next((w.fatal_error for w in warmers if w.fatal_error is not None), None)
        telemetry = None if fatal is not None else self._sample_telemetry()

        if self._operator_cancelled:
            status = JobStatus.ABORTED
        elif fatal is not None:
            status = JobStatus.FAILED
        elif all(stats.succeeded == 0 for stats in results):
            status = JobStatus.FAILED
        else:
            status = JobStatus.COMPLETED
        job.finish(status)

        report = WarmingReport(
            job_id=job.job_id,
            status=job.status,
            started_at=job.started_at,
            completed_at=job.completed_at,
            batch_size=job.batch_size,
            max_retries=job.max_retries,
            categories=tuple(results),
            telemetry=telemetry,
            fatal_error=fatal.message if fatal is not None else None,
        )
        logger.info(
            "warming.job.finished",
            status=report.status.value,
            outcome=report.outcome.value,
            attempted=report.total_attempted,
            succeeded=report.total_succeeded,
            failed=report.total_failed,
            total_keys=report.total_keys,
            aborted=[c.value for c in report.aborted_categories],
        )
        return report

    def _on_warmer_done(self, warmer: CategoryWarmer) -> None:
        if warmer.fatal_error is not None and not self._cancel_event.is_set():
            # Store is gone for everyone; stop the other warmers
            logger.error("warming.job.store_unavailable", category=warmer.category.value)
            self._cancel_event.set()

    def _collect(self, warmer: CategoryWarmer, future: Future[CategoryStats]) -> CategoryStats:
        try:
            return future.result()
        except Exception as exc:
            logger.exception("warming.category.crashed", category=warmer.category.value)
            return warmer.snapshot(abort_reason=f"internal error: {type(exc).__name__}: {exc}")

    def _sample_telemetry(self) -> CacheTelemetry | None:
        try:
            memory = self._store.memory_stats()
            return CacheTelemetry(
                total_keys=self._store.key_count(),
                memory_used_bytes=memory.used_bytes,
                fragmentation_ratio=memory.fragmentation_ratio,
            )
        except CacheError as exc:
            logger.warning("warming.telemetry.unavailable", error=exc.message)
            return None


__all__ = ["WarmingOrchestrator"]
