"""
Factory functions that build warmspine components from settings.

Manifesto:
    Application code never calls ``create_engine`` or ``redis.from_url``
    directly.  The CLI, the API and the cutover controller all wire their
    components through these functions so that timeouts, retry settings
    and thresholds come from one validated ``WarmSettings``.

Features:
    - ``create_cache_store()``: Redis store with socket timeouts
    - ``create_source_engine()`` / ``create_source_reader()``: read-only source
    - ``create_repository()`` / ``create_lock_guard()``: state database
    - ``create_orchestrator()``: fully wired Warming Orchestrator
    - ``create_gate()``: Validation Gate with live sampler
    - ``create_cutover_controller()``: controller with HTTP or static collaborators

Tags:
    warmspine, configuration, factory-pattern, sqlalchemy, redis, httpx
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

from warmspine.core.cache import CacheStore, RedisCacheStore
from warmspine.core.config.settings import WarmSettings
from warmspine.core.models import WarmingJob
from warmspine.core.orm.session import create_state_engine
from warmspine.core.repository import ReportRepository
from warmspine.cutover.collaborators import (
    Environment,
    EnvironmentProvisioner,
    HttpEnvironmentProvisioner,
    HttpTrafficRouter,
    StaticEnvironmentProvisioner,
    StaticTrafficRouter,
    TrafficRouter,
)
from warmspine.cutover.controller import CutoverController
from warmspine.execution.concurrency import DatabaseCategoryLockGuard
from warmspine.validation.gate import CacheLiveSampler, ValidationGate
from warmspine.warming.orchestrator import WarmingOrchestrator
from warmspine.warming.source import SqlSourceReader
from warmspine.warming.transform import RecordTransformer
from warmspine.warming.ttl import TTLPolicyCalculator


def create_cache_store(settings: WarmSettings, url: str | None = None) -> CacheStore:
    return RedisCacheStore(url or settings.redis_url, socket_timeout=settings.cache_timeout_seconds)


def create_source_engine(settings: WarmSettings) -> Engine:
    """Create the source engine with a per-statement timeout where the driver allows one.

    PostgreSQL gets ``statement_timeout``; SQLite gets its busy timeout.
    """
    url = make_url(settings.source_database_url)
    timeout = settings.source_timeout_seconds
    connect_args: dict[str, Any] = {}
    if url.get_backend_name() == "postgresql":
        connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"
    elif url.get_backend_name() == "sqlite":
        connect_args["timeout"] = timeout
    kwargs: dict[str, Any] = {"connect_args": connect_args}
    if url.get_backend_name() != "sqlite":
        kwargs.update(pool_pre_ping=True, pool_size=settings.max_parallelism, max_overflow=0)
    return create_engine(url, **kwargs)


def create_source_reader(settings: WarmSettings, engine: Engine | None = None) -> SqlSourceReader:
    return SqlSourceReader(
        engine or create_source_engine(settings),
        queries=settings.queries,
        search_terms=settings.search_terms,
        search_result_limit=settings.search_result_limit,
    )


def create_repository(settings: WarmSettings, engine: Engine | None = None) -> ReportRepository:
    return ReportRepository(engine or create_state_engine(settings.state_database_url))


def create_lock_guard(settings: WarmSettings, engine: Engine) -> DatabaseCategoryLockGuard:
    return DatabaseCategoryLockGuard(engine, lock_timeout_seconds=settings.lock_timeout_seconds)


def create_job(settings: WarmSettings, **overrides: Any) -> WarmingJob:
    values: dict[str, Any] = {
        "categories": list(settings.categories),
        "batch_size": settings.batch_size,
        "max_retries": settings.max_retries,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return WarmingJob(**values)


def create_orchestrator(
    settings: WarmSettings,
    *,
    store: CacheStore | None = None,
    reader: SqlSourceReader | None = None,
    repository: ReportRepository | None = None,
    max_parallelism: int | None = None,
) -> WarmingOrchestrator:
    """Wire an orchestrator.  Locks live in the repository's state database when one is given."""
    lock_guard = create_lock_guard(settings, repository.engine) if repository is not None else None
    return WarmingOrchestrator(
        store or create_cache_store(settings),
        reader or create_source_reader(settings),
        transformer=RecordTransformer(TTLPolicyCalculator(settings.ttl_policies)),
        lock_guard=lock_guard,
        repository=repository,
        max_parallelism=max_parallelism or settings.max_parallelism,
        retry_base_delay=settings.retry_base_delay,
        retry_max_delay=settings.retry_max_delay,
        retry_jitter=settings.retry_jitter,
        category_timeout_seconds=settings.category_timeout_seconds,
    )


def create_gate(settings: WarmSettings, store: CacheStore | None = None) -> ValidationGate:
    sampler = None
    if settings.live_sample_enabled:
        sampler = CacheLiveSampler(store or create_cache_store(settings))
    return ValidationGate(settings.thresholds, sampler=sampler)


def create_provisioner(settings: WarmSettings) -> EnvironmentProvisioner:
    if settings.provisioning_url:
        return HttpEnvironmentProvisioner(settings.provisioning_url, timeout=settings.http_timeout_seconds)
    return StaticEnvironmentProvisioner(settings.redis_url, environment_id=settings.environment_id)


def create_router(settings: WarmSettings) -> TrafficRouter:
    if settings.routing_url:
        return HttpTrafficRouter(settings.routing_url, timeout=settings.http_timeout_seconds)
    return StaticTrafficRouter()


def create_cutover_controller(
    settings: WarmSettings,
    repository: ReportRepository,
    *,
    reader: SqlSourceReader | None = None,
) -> CutoverController:
    """Controller whose warming and gate target the newly deployed environment's cache."""
    source = reader or create_source_reader(settings)
    stores: dict[str, CacheStore] = {}

    def store_for(environment: Environment) -> CacheStore:
        if environment.id not in stores:
            stores[environment.id] = create_cache_store(settings, environment.cache_url)
        return stores[environment.id]

    def orchestrator_for(environment: Environment) -> WarmingOrchestrator:
        # The controller persists the report itself
        return WarmingOrchestrator(
            store_for(environment),
            source,
            transformer=RecordTransformer(TTLPolicyCalculator(settings.ttl_policies)),
            lock_guard=create_lock_guard(settings, repository.engine),
            max_parallelism=settings.max_parallelism,
            retry_base_delay=settings.retry_base_delay,
            retry_max_delay=settings.retry_max_delay,
            retry_jitter=settings.retry_jitter,
            category_timeout_seconds=settings.category_timeout_seconds,
        )

    return CutoverController(
        create_provisioner(settings),
        create_router(settings),
        orchestrator_factory=orchestrator_for,
        gate_factory=lambda environment: create_gate(settings, store_for(environment)),
        job_factory=lambda: create_job(settings),
        repository=repository,
        grace_period_seconds=settings.grace_period_seconds,
        allow_manual_override=settings.allow_manual_override,
    )


__all__ = [
    "create_cache_store",
    "create_source_engine",
    "create_source_reader",
    "create_repository",
    "create_lock_guard",
    "create_job",
    "create_orchestrator",
    "create_gate",
    "create_provisioner",
    "create_router",
    "create_cutover_controller",
]
