"""Category Lock Guard: reject overlapping warming jobs.

WHY
───
If an operator re-triggers warming while a job is still running, two
warmers would page the same source tables and race on the same keys.
Rather than guess at merge semantics, a new job whose category set
overlaps a running job is rejected until that job completes.

ARCHITECTURE
────────────
::

    CategoryLockGuard (Protocol)
      ├── InMemoryCategoryLockGuard  ─ one process (default)
      └── DatabaseCategoryLockGuard  ─ shared state DB, expiring locks

      .acquire(categories, job_id)   ─ all-or-nothing, JobConflictError
      .release(categories, job_id)   ─ only the owner's locks
      .holders()                     ─ {category: job_id}

    Lock key convention: "warm:<category>"

BEST PRACTICES
──────────────
- Always release in a ``finally`` (the orchestrator does this).
- Set ``lock_timeout_seconds`` longer than the longest expected job so a
  crashed process self-heals without cutting a live job short.

Example::

    guard = DatabaseCategoryLockGuard(engine)
    guard.acquire([Category.CATALOG], job_id="job-1")
    try:
        run_job()
    finally:
        guard.release([Category.CATALOG], job_id="job-1")
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from warmspine.core.errors import JobConflictError
from warmspine.core.logging import get_logger
from warmspine.core.models import Category
from warmspine.core.orm.session import init_schema, session_factory
from warmspine.core.orm.tables import CategoryLockTable

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def lock_key(category: Category) -> str:
    return f"warm:{category.value}"


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on read-back
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class CategoryLockGuard(Protocol):
    def acquire(self, categories: Iterable[Category], job_id: str) -> None: ...

    def release(self, categories: Iterable[Category], job_id: str) -> None: ...

    def holders(self) -> dict[Category, str]: ...


class InMemoryCategoryLockGuard:
    """Process-local guard. Enough for a single CLI or API process."""

    def __init__(self) -> None:
        self._held: dict[Category, str] = {}
        self._lock = threading.Lock()

    def acquire(self, categories: Iterable[Category], job_id: str) -> None:
        wanted = list(categories)
        with self._lock:
            busy = [c for c in wanted if c in self._held and self._held[c] != job_id]
            if busy:
                raise JobConflictError([c.value for c in busy], held_by=self._held[busy[0]])
            for category in wanted:
                self._held[category] = job_id

    def release(self, categories: Iterable[Category], job_id: str) -> None:
        with self._lock:
            for category in categories:
                if self._held.get(category) == job_id:
                    del self._held[category]

    def holders(self) -> dict[Category, str]:
        with self._lock:
            return dict(self._held)


class DatabaseCategoryLockGuard:
    """Guards categories across processes using the state database.

    Uses insert-or-fail on a primary key with automatic expiry. If a
    process crashes, its locks expire after ``lock_timeout_seconds``.
    """

    def __init__(self, engine: Engine, *, lock_timeout_seconds: int = 3600, create_schema: bool = True):
        if create_schema:
            init_schema(engine)
        self._sessions = session_factory(engine)
        self._timeout = timedelta(seconds=lock_timeout_seconds)

    def acquire(self, categories: Iterable[Category], job_id: str) -> None:
        wanted = list(categories)
        now = utcnow()
        acquired: list[Category] = []
        try:
            for category in wanted:
                self._acquire_one(category, job_id, now)
                acquired.append(category)
        except JobConflictError:
            self.release(acquired, job_id)
            raise
        logger.debug("lock.acquired", job_id=job_id, categories=[c.value for c in wanted])

    def _acquire_one(self, category: Category, job_id: str, now: datetime) -> None:
        key = lock_key(category)
        with self._sessions() as session:
            existing = session.get(CategoryLockTable, key)
            if existing is not None:
                if existing.job_id == job_id:
                    return
                if _as_utc(existing.expires_at) > now:
                    raise JobConflictError([category.value], held_by=existing.job_id)
                # Expired lock from a crashed process
                logger.warning("lock.expired_reaped", lock_key=key, job_id=existing.job_id)
                session.delete(existing)
                session.flush()
            session.add(
                CategoryLockTable(
                    lock_key=key,
                    job_id=job_id,
                    acquired_at=now,
                    expires_at=now + self._timeout,
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise JobConflictError([category.value]) from exc

    def release(self, categories: Iterable[Category], job_id: str) -> None:
        keys = [lock_key(c) for c in categories]
        if not keys:
            return
        with self._sessions() as session:
            session.execute(
                delete(CategoryLockTable).where(
                    CategoryLockTable.lock_key.in_(keys),
                    CategoryLockTable.job_id == job_id,
                )
            )
            session.commit()

    def holders(self) -> dict[Category, str]:
        now = utcnow()
        with self._sessions() as session:
            rows = session.scalars(select(CategoryLockTable)).all()
            return {
                Category(row.lock_key.split(":", 1)[1]): row.job_id
                for row in rows
                if _as_utc(row.expires_at) > now
            }


__all__ = [
    "CategoryLockGuard",
    "InMemoryCategoryLockGuard",
    "DatabaseCategoryLockGuard",
    "lock_key",
]
