"""
Source Reader: bounded, ordered pages of rows per category.

Manifesto:
    The relational store is read-only to warmspine.  Every category query
    has a stable ``ORDER BY`` ending in a unique tie-breaker, so restarting
    a job after a partial failure never skips or duplicates rows across
    batch boundaries.  An empty batch signals end-of-category; it is never
    an error.

    The reader does not retry.  Driver failures are translated into
    ``SourceUnavailableError`` / ``QueryTimeoutError`` and the Category
    Warmer decides what to do with them.

Architecture:
    ::

        SourceReader (Protocol)
          .read(category, offset, limit) → RowBatch
          .ping() → bool

        SqlSourceReader(engine)
          ├── catalog / user_state / aggregates / reference
          │       text(query) with :limit / :offset
          └── query_results
                  pages over the configured search terms and runs one
                  search per term; terms without hits yield no row

        RowBatch(category, offset, rows, next_offset)

Guardrails:
    ❌ DON'T: ``ORDER BY popularity`` alone (ties reorder between pages)
    ✅ DO: end every ORDER BY with the primary key

    ❌ DON'T: retry inside the reader
    ✅ DO: raise typed errors and let the warmer's RetryContext decide

Tags:
    warming, source, sqlalchemy, pagination, read-only
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from warmspine.core.errors import QueryTimeoutError, SourceError, SourceUnavailableError
from warmspine.core.logging import get_logger
from warmspine.core.models import Category

logger = get_logger(__name__)


DEFAULT_QUERIES: dict[Category, str] = {
    Category.CATALOG: """
        SELECT id, name, description, ingredients, instructions, tags,
               view_count, rating
        FROM catalog_items
        WHERE is_active = TRUE
        ORDER BY view_count DESC, rating DESC, id ASC
        LIMIT :limit OFFSET :offset
    """,
    Category.USER_STATE: """
        SELECT id AS user_id, preferences, session, activity_score, last_active_at
        FROM users
        WHERE is_active = TRUE
        ORDER BY activity_score DESC, id ASC
        LIMIT :limit OFFSET :offset
    """,
    Category.AGGREGATES: """
        SELECT user_id, id AS plan_id, name, items
        FROM user_plans
        WHERE is_active = TRUE
        ORDER BY created_at DESC, id ASC
        LIMIT :limit OFFSET :offset
    """,
    Category.REFERENCE: """
        SELECT *
        FROM reference_items
        ORDER BY usage_frequency DESC, name ASC
        LIMIT :limit OFFSET :offset
    """,
}

DEFAULT_SEARCH_QUERY = """
    SELECT id, name, rating, view_count
    FROM catalog_items
    WHERE is_active = TRUE AND LOWER(name) LIKE :pattern
    ORDER BY rating DESC, view_count DESC, id ASC
    LIMIT :result_limit
"""

DEFAULT_SEARCH_TERMS: tuple[str, ...] = (
    "chicken breast", "vegetarian", "low carb", "high protein", "gluten free",
    "quick meals", "breakfast", "dinner", "lunch", "weight loss",
    "muscle gain", "keto", "mediterranean", "salad", "soup",
    "pasta", "beef", "fish", "vegan", "dairy free",
    "low calorie", "high fiber", "diabetic friendly", "heart healthy", "paleo",
)

# Driver messages that mean "the statement ran too long"
_TIMEOUT_MARKERS = ("timeout", "timed out", "canceling statement", "statement_timeout")


@dataclass(frozen=True)
class RowBatch:
    """One page of source rows.

    ``next_offset`` is where the following read starts.  For SQL categories
    it is ``offset + len(rows)``; for ``query_results`` it counts search
    terms consumed, which may exceed the number of rows returned.
    """

    category: Category
    offset: int
    rows: tuple[Mapping[str, Any], ...] = field(default_factory=tuple)
    next_offset: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def __len__(self) -> int:
        return len(self.rows)


@runtime_checkable
class SourceReader(Protocol):
    def read(self, category: Category, offset: int, limit: int) -> RowBatch:
        """Return up to ``limit`` rows starting at ``offset``.

        Raises:
            SourceUnavailableError: Store unreachable.
            QueryTimeoutError: The query exceeded its timeout.
        """
        ...

    def ping(self) -> bool: ...


def translate_source_error(exc: SQLAlchemyError, category: Category, offset: int) -> SourceError:
    """Map a SQLAlchemy failure onto the warming error taxonomy."""
    message = str(getattr(exc, "orig", None) or exc)
    lowered = message.lower()
    if isinstance(exc, PoolTimeoutError):
        error: SourceError = SourceUnavailableError(f"Source pool exhausted: {message}", cause=exc)
    elif isinstance(exc, OperationalError) and any(m in lowered for m in _TIMEOUT_MARKERS):
        error = QueryTimeoutError(f"Source query timed out: {message}", cause=exc)
    elif isinstance(exc, OperationalError) or (isinstance(exc, DBAPIError) and exc.connection_invalidated):
        error = SourceUnavailableError(f"Source unavailable: {message}", cause=exc)
    else:
        error = SourceError(f"Source query failed: {message}", cause=exc)
    error.with_context(category=category.value, offset=offset)
    return error


class SqlSourceReader:
    """Reads category pages from a relational store through SQLAlchemy.

    Example:
        reader = SqlSourceReader(create_engine("postgresql://..."))
        batch = reader.read(Category.CATALOG, offset=0, limit=50)
    """

    def __init__(
        self,
        engine: Engine,
        *,
        queries: Mapping[Category | str, str] | None = None,
        search_query: str = DEFAULT_SEARCH_QUERY,
        search_terms: Sequence[str] = DEFAULT_SEARCH_TERMS,
        search_result_limit: int = 20,
    ):
        self._engine = engine
        self._queries = dict(DEFAULT_QUERIES)
        for name, sql in (queries or {}).items():
            self._queries[Category.parse(name)] = sql
        self._search_query = search_query
        self._search_terms = tuple(search_terms)
        self._search_result_limit = search_result_limit

    @property
    def engine(self) -> Engine:
        return self._engine

    def ping(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.warning("source.ping_failed", error=str(exc))
            return False

    def read(self, category: Category, offset: int, limit: int) -> RowBatch:
        if offset < 0 or limit < 1:
            raise ValueError(f"invalid page offset={offset} limit={limit}")
        try:
            if category is Category.QUERY_RESULTS:
                return self._read_search_terms(offset, limit)
            return self._read_table(category, offset, limit)
        except SQLAlchemyError as exc:
            raise translate_source_error(exc, category, offset) from exc

    def _read_table(self, category: Category, offset: int, limit: int) -> RowBatch:
        sql = self._queries[category]
        with self._engine.connect() as conn:
            result = conn.execute(text(sql), {"limit": limit, "offset": offset})
            rows = tuple(dict(row) for row in result.mappings())
        return RowBatch(category=category, offset=offset, rows=rows, next_offset=offset + len(rows))

    def _read_search_terms(self, offset: int, limit: int) -> RowBatch:
        rows: list[dict[str, Any]] = []
        position = offset
        with self._engine.connect() as conn:
            while position < len(self._search_terms) and len(rows) < limit:
                term = self._search_terms[position]
                position += 1
                result = conn.execute(
                    text(self._search_query),
                    {"pattern": f"%{term.lower()}%", "result_limit": self._search_result_limit},
                )
                results = [dict(row) for row in result.mappings()]
                if results:
                    rows.append({"term": term, "results": results, "result_count": len(results)})
        return RowBatch(
            category=Category.QUERY_RESULTS,
            offset=offset,
            rows=tuple(rows),
            next_offset=position,
        )


__all__ = [
    "SourceReader",
    "SqlSourceReader",
    "RowBatch",
    "DEFAULT_QUERIES",
    "DEFAULT_SEARCH_QUERY",
    "DEFAULT_SEARCH_TERMS",
    "translate_source_error",
]
