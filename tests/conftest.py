"""
Shared pytest fixtures for warmspine tests.

This module provides:
- Environment isolation (no stray ``WARMSPINE_*`` variables, fresh settings cache)
- Structlog reset between tests
- In-memory cache stores and SQLite state / source databases
- A recording ``sleep`` so retry tests never wait
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import structlog
from sqlalchemy import create_engine

from tests._support.fakes import seed_source
from warmspine.core.cache import InMemoryCacheStore
from warmspine.core.config.settings import clear_settings_cache
from warmspine.core.orm.session import create_state_engine
from warmspine.core.repository import ReportRepository


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Run every test in its own directory with no ``WARMSPINE_*`` variables."""
    for name in list(os.environ):
        if name.startswith("WARMSPINE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    structlog.reset_defaults()
    yield
    clear_settings_cache()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Stores and databases
# =============================================================================


@pytest.fixture
def memory_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def state_engine():
    engine = create_state_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def repository(state_engine) -> ReportRepository:
    return ReportRepository(state_engine)


@pytest.fixture
def source_path(tmp_path: Path) -> Path:
    path = tmp_path / "source.db"
    engine = create_engine(f"sqlite:///{path}")
    seed_source(engine)
    engine.dispose()
    return path


@pytest.fixture
def source_engine(source_path: Path):
    engine = create_engine(f"sqlite:///{source_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def sleeps() -> list[float]:
    """Recording replacement for ``time.sleep``; pass ``sleeps.append``."""
    return []
