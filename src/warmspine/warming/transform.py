"""
Record Transformer: source row → canonical ``CacheRecord``.

Manifesto:
    Rows arrive from the source as loosely typed mappings.  Each category
    has a pydantic row model that validates them at this boundary, so
    everything downstream handles typed data only.  A row that fails
    validation becomes a ``MalformedRowError``, which the Category Warmer
    counts as ``failed`` without aborting the batch.

    ``transform`` is pure: the same row always yields the same key, the
    same bytes and the same TTL.  Values never embed wall-clock time.

Architecture:
    ::

        row (Mapping) ──► CategoryRow model ──► cache_key()
                                           ├──► popularity()
                                           └──► payload() ─► canonical JSON bytes
                                                        │
                           TTLPolicyCalculator ◄────────┘
                                   │
                                   ▼
                              CacheRecord

Key formats:
    catalog:<id>
    user_state:<user_id>
    aggregates:<user_id>:<plan_id>
    query_results:<md5(term)>
    reference:<normalized name>

Tags:
    warming, transformer, pydantic, serialization, idempotent
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from warmspine.core.errors import MalformedRowError
from warmspine.core.models import CacheRecord, Category
from warmspine.warming.ttl import TTLPolicyCalculator

CACHE_SOURCE_MARKER = "warming"


def _parse_nested(value: Any) -> Any:
    # Drivers without native JSON types hand nested columns back as text
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"unparsable nested structure: {exc.msg}") from exc
    return value


NestedList = Annotated[list[Any], BeforeValidator(_parse_nested)]
NestedDict = Annotated[dict[str, Any], BeforeValidator(_parse_nested)]


def _identity(value: Any) -> str:
    if value is None or isinstance(value, bool):
        raise ValueError("identifier is missing")
    text = str(value).strip()
    if not text or any(ch.isspace() for ch in text) or ":" in text:
        raise ValueError(f"invalid identifier {value!r}")
    return text


Identifier = Annotated[str, BeforeValidator(_identity)]


def normalize_name(name: str) -> str:
    """Lower-case, every character outside ``[a-z0-9]`` replaced by ``_``."""
    return re.sub(r"[^a-z0-9]", "_", name.strip().lower())


def term_digest(term: str) -> str:
    return hashlib.md5(term.encode("utf-8")).hexdigest()


def canonical_json(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode("utf-8")


# =============================================================================
# ROW MODELS
# =============================================================================


class CategoryRow(BaseModel):
    """Base row model.  Extra source columns are kept in the payload."""

    model_config = ConfigDict(extra="allow", frozen=True)

    row_category: ClassVar[Category]

    def cache_key(self) -> str:
        raise NotImplementedError

    def popularity(self) -> float:
        return 0.0

    def payload(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["cacheSource"] = CACHE_SOURCE_MARKER
        return data


class CatalogRow(CategoryRow):
    row_category: ClassVar[Category] = Category.CATALOG

    id: Identifier
    name: str = Field(min_length=1)
    description: str | None = None
    ingredients: NestedList = Field(default_factory=list)
    instructions: NestedList = Field(default_factory=list)
    tags: NestedList = Field(default_factory=list)
    view_count: int = Field(default=0, ge=0)
    rating: float | None = None

    def cache_key(self) -> str:
        return f"catalog:{self.id}"

    def popularity(self) -> float:
        return self.view_count / 10


class UserStateRow(CategoryRow):
    row_category: ClassVar[Category] = Category.USER_STATE

    user_id: Identifier
    preferences: NestedDict = Field(default_factory=dict)
    session: NestedDict = Field(default_factory=dict)
    activity_score: float = 0.0
    last_active_at: datetime | None = None

    def cache_key(self) -> str:
        return f"user_state:{self.user_id}"

    def popularity(self) -> float:
        return self.activity_score


class AggregateRow(CategoryRow):
    row_category: ClassVar[Category] = Category.AGGREGATES

    user_id: Identifier
    plan_id: Identifier
    name: str | None = None
    items: NestedList = Field(default_factory=list)

    def cache_key(self) -> str:
        return f"aggregates:{self.user_id}:{self.plan_id}"


class QueryResultRow(CategoryRow):
    row_category: ClassVar[Category] = Category.QUERY_RESULTS

    term: str = Field(min_length=1)
    results: NestedList = Field(default_factory=list)
    result_count: int | None = Field(default=None, ge=0)

    def cache_key(self) -> str:
        return f"query_results:{term_digest(self.term)}"

    def popularity(self) -> float:
        return float(self.result_count if self.result_count is not None else len(self.results))


class ReferenceRow(CategoryRow):
    row_category: ClassVar[Category] = Category.REFERENCE

    name: str = Field(min_length=1)
    usage_frequency: float = 0.0

    @field_validator("name")
    @classmethod
    def _name_has_identity(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value

    def cache_key(self) -> str:
        return f"reference:{normalize_name(self.name)}"

    def popularity(self) -> float:
        return self.usage_frequency


ROW_MODELS: dict[Category, type[CategoryRow]] = {
    model.row_category: model
    for model in (CatalogRow, UserStateRow, AggregateRow, QueryResultRow, ReferenceRow)
}


# =============================================================================
# TRANSFORMER
# =============================================================================


class RecordTransformer:
    """Turns validated rows into ``CacheRecord`` values with computed TTL."""

    def __init__(self, ttl_calculator: TTLPolicyCalculator | None = None):
        self._ttl = ttl_calculator or TTLPolicyCalculator()

    @property
    def ttl_calculator(self) -> TTLPolicyCalculator:
        return self._ttl

    def parse(self, row: Mapping[str, Any], category: Category) -> CategoryRow:
        model = ROW_MODELS[category]
        try:
            return model.model_validate(dict(row))
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or None
            raise MalformedRowError(
                f"{category.value} row rejected: {field or 'row'}: {first['msg']}",
                field=field,
            ).with_context(category=category.value) from exc

    def transform(self, row: Mapping[str, Any], category: Category) -> CacheRecord:
        """Build the cache record for ``row``.

        Raises:
            MalformedRowError: Missing required fields, unparsable
                nested structures, or values with no JSON form.
        """
        parsed = self.parse(row, category)
        try:
            value = canonical_json(parsed.payload())
        except (TypeError, ValueError) as exc:
            # PydanticSerializationError and UnicodeDecodeError are ValueErrors
            raise MalformedRowError(
                f"{category.value} row rejected: value has no JSON form: {exc}",
            ).with_context(category=category.value) from exc
        popularity = parsed.popularity()
        return CacheRecord(
            key=parsed.cache_key(),
            value=value,
            category=category,
            ttl_seconds=self._ttl.compute_ttl(category, popularity),
            popularity_score=popularity,
        )


__all__ = [
    "RecordTransformer",
    "CategoryRow",
    "CatalogRow",
    "UserStateRow",
    "AggregateRow",
    "QueryResultRow",
    "ReferenceRow",
    "ROW_MODELS",
    "canonical_json",
    "normalize_name",
    "term_digest",
]
