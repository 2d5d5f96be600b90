"""Popularity-weighted expiry policy.

``ttl = base_ttl + popularity_bonus_unit * signal`` clamped to
``[base_ttl, max_ttl]``.  Hot records (high view count, many results,
frequent use) stay warm longer; cold ones expire sooner to bound memory.

Each category carries its own ``TTLPolicy`` triple.  The defaults below
are configuration, overridable per category through ``WarmSettings``.

Example:
    >>> calc = TTLPolicyCalculator()
    >>> calc.compute_ttl(Category.CATALOG, 120.0)
    10800
    >>> calc.compute_ttl(Category.CATALOG, 10_000.0)
    86400
"""

from __future__ import annotations

import math
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

from warmspine.core.errors import InvalidConfigError
from warmspine.core.models import Category


class TTLPolicy(BaseModel):
    """``(base_ttl, popularity_bonus_unit, max_ttl)`` for one category."""

    model_config = ConfigDict(frozen=True)

    base_ttl: int = Field(gt=0, description="Seconds for a record with no popularity signal")
    popularity_bonus_unit: float = Field(default=0.0, ge=0, description="Extra seconds per unit of signal")
    max_ttl: int = Field(gt=0, description="Upper bound in seconds")

    @model_validator(mode="after")
    def _check_bounds(self) -> TTLPolicy:
        if self.max_ttl < self.base_ttl:
            raise ValueError(f"max_ttl ({self.max_ttl}) must be >= base_ttl ({self.base_ttl})")
        return self


DEFAULT_TTL_POLICIES: dict[Category, TTLPolicy] = {
    Category.CATALOG: TTLPolicy(base_ttl=3600, popularity_bonus_unit=60, max_ttl=86400),
    Category.USER_STATE: TTLPolicy(base_ttl=86400, popularity_bonus_unit=3600, max_ttl=604800),
    Category.AGGREGATES: TTLPolicy(base_ttl=86400, popularity_bonus_unit=0, max_ttl=86400),
    Category.QUERY_RESULTS: TTLPolicy(base_ttl=1800, popularity_bonus_unit=60, max_ttl=7200),
    Category.REFERENCE: TTLPolicy(base_ttl=86400, popularity_bonus_unit=1, max_ttl=172800),
}


class TTLPolicyCalculator:
    """Derives an expiry duration from category and popularity signal."""

    def __init__(self, policies: Mapping[Category, TTLPolicy] | None = None):
        merged = dict(DEFAULT_TTL_POLICIES)
        if policies:
            merged.update({Category.parse(k): v for k, v in policies.items()})
        self._policies = merged

    def policy_for(self, category: Category) -> TTLPolicy:
        try:
            return self._policies[category]
        except KeyError as exc:
            raise InvalidConfigError("ttl_policies", category.value, f"No TTL policy for {category.value}") from exc

    def compute_ttl(self, category: Category, popularity_signal: float) -> int:
        """Seconds to live, always within ``[base_ttl, max_ttl]``.

        Negative and NaN signals count as zero; ``+inf`` reaches ``max_ttl``.
        """
        policy = self.policy_for(category)
        if math.isnan(popularity_signal) or popularity_signal <= 0:
            return policy.base_ttl
        if math.isinf(popularity_signal):
            return policy.max_ttl if policy.popularity_bonus_unit > 0 else policy.base_ttl
        raw = policy.base_ttl + policy.popularity_bonus_unit * popularity_signal
        return int(min(max(raw, policy.base_ttl), policy.max_ttl))


__all__ = ["TTLPolicy", "TTLPolicyCalculator", "DEFAULT_TTL_POLICIES"]
