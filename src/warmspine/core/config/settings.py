"""
Centralized settings for warmspine.

Manifesto:
    One validated, cached settings object feeds the CLI, the API and the
    cutover controller.  Every knob is a ``WARMSPINE_*`` environment
    variable; a YAML file can carry the structured ones (TTL policies,
    thresholds, queries) that are awkward to express as env vars.

Resolution order (highest first):
    1. keyword overrides passed to ``get_settings`` / ``load_settings``
    2. YAML file (``config_file`` argument or ``WARMSPINE_CONFIG_FILE``)
    3. ``WARMSPINE_*`` environment variables and ``.env``
    4. defaults below

Example YAML::

    categories: [catalog, reference]
    batch_size: 100
    ttl_policies:
      catalog: {base_ttl: 1800, popularity_bonus_unit: 30, max_ttl: 43200}
    thresholds:
      min_total_keys: 500
      min_per_category: {catalog: 100}

Tags:
    warmspine, configuration, settings, pydantic, yaml, caching
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from warmspine.core.errors import InvalidConfigError
from warmspine.core.models import Category
from warmspine.validation.gate import ValidationThresholds
from warmspine.warming.source import DEFAULT_SEARCH_TERMS
from warmspine.warming.ttl import DEFAULT_TTL_POLICIES, TTLPolicy

CONFIG_FILE_ENV = "WARMSPINE_CONFIG_FILE"


class WarmSettings(BaseSettings):
    """warmspine configuration.

    All fields can be set via ``WARMSPINE_*`` environment variables, e.g.
    ``WARMSPINE_BATCH_SIZE=100`` or
    ``WARMSPINE_TTL_POLICIES__CATALOG__MAX_TTL=43200``.
    """

    model_config = SettingsConfigDict(
        env_prefix="WARMSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ── Connections ──────────────────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0")
    source_database_url: str = Field(default="sqlite:///data/source.db")
    state_database_url: str = Field(default="sqlite:///data/warmspine.db")

    # ── Job ──────────────────────────────────────────────────────
    categories: list[Category] = Field(default_factory=lambda: list(Category))
    batch_size: int = Field(default=50, ge=1)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=0.2, ge=0)
    retry_max_delay: float = Field(default=5.0, ge=0)
    retry_jitter: bool = Field(default=False)
    max_parallelism: int = Field(default=3, ge=1)
    lock_timeout_seconds: int = Field(default=3600, ge=1)

    # ── Timeouts ─────────────────────────────────────────────────
    source_timeout_seconds: float = Field(default=30.0, gt=0)
    cache_timeout_seconds: float = Field(default=5.0, gt=0)
    category_timeout_seconds: float | None = Field(default=1800.0, gt=0)

    # ── Policy ───────────────────────────────────────────────────
    ttl_policies: dict[Category, TTLPolicy] = Field(default_factory=lambda: dict(DEFAULT_TTL_POLICIES))
    queries: dict[Category, str] = Field(default_factory=dict, description="Per-category SQL overrides")
    search_terms: list[str] = Field(default_factory=lambda: list(DEFAULT_SEARCH_TERMS))
    search_result_limit: int = Field(default=20, ge=1)

    # ── Validation gate ──────────────────────────────────────────
    thresholds: ValidationThresholds = Field(default_factory=ValidationThresholds)
    live_sample_enabled: bool = Field(default=True)

    # ── Cutover ──────────────────────────────────────────────────
    provisioning_url: str | None = Field(default=None)
    routing_url: str | None = Field(default=None)
    environment_id: str = Field(default="local", description="Id used when no provisioning API is configured")
    grace_period_seconds: float = Field(default=300.0, ge=0)
    allow_manual_override: bool = Field(default=False)
    http_timeout_seconds: float = Field(default=30.0, gt=0)

    # ── API ──────────────────────────────────────────────────────
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8080)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="auto | json | console")

    @field_validator("categories", mode="before")
    @classmethod
    def _split_categories(cls, value: Any) -> Any:
        # "catalog, reference" from YAML or overrides; env vars take a JSON list
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("auto", "json", "console"):
            raise ValueError(f"log_format must be auto, json or console, got {value!r}")
        return value

    @model_validator(mode="after")
    def _fill_policies(self) -> WarmSettings:
        if not self.categories:
            raise ValueError("categories must not be empty")
        if len(set(self.categories)) != len(self.categories):
            raise ValueError("categories must not repeat")
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        merged = dict(DEFAULT_TTL_POLICIES)
        merged.update(self.ttl_policies)
        self.ttl_policies = merged
        return self

    @property
    def json_logs(self) -> bool | None:
        return {"auto": None, "json": True, "console": False}[self.log_format]


# ── Loading ──────────────────────────────────────────────────────────────


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Parse a YAML config file into a mapping of settings fields."""
    file = Path(path)
    try:
        data = yaml.safe_load(file.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise InvalidConfigError("config_file", str(file), f"Config file not found: {file}") from exc
    except yaml.YAMLError as exc:
        raise InvalidConfigError("config_file", str(file), f"Config file is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigError("config_file", str(file), "Config file must contain a mapping")
    return data


def load_settings(config_file: str | Path | None = None, **overrides: Any) -> WarmSettings:
    """Build settings from env, optional YAML file and overrides (uncached).

    Raises:
        InvalidConfigError: The file or a value fails validation.
    """
    path = config_file or os.environ.get(CONFIG_FILE_ENV)
    values = read_config_file(path) if path else {}
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return WarmSettings(**values)
    except ValidationError as exc:
        first = exc.errors()[0]
        key = ".".join(str(part) for part in first["loc"]) or "settings"
        raise InvalidConfigError(key, first.get("input"), f"Invalid configuration for {key}: {first['msg']}") from exc


_settings_cache: dict[str, WarmSettings] = {}


def get_settings(config_file: str | Path | None = None, *, _force_reload: bool = False) -> WarmSettings:
    """Load, validate and cache a ``WarmSettings`` instance."""
    cache_key = str(config_file or os.environ.get(CONFIG_FILE_ENV) or "")
    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]
    settings = load_settings(config_file)
    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "WarmSettings",
    "get_settings",
    "load_settings",
    "read_config_file",
    "clear_settings_cache",
    "CONFIG_FILE_ENV",
]
