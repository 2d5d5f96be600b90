"""
FastAPI dependency injection: settings and repository singletons.

Usage in routers::

    from warmspine.api.deps import Repository

    @router.get("/reports/latest")
    def latest(repo: Repository):
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from warmspine.core.config.settings import WarmSettings
from warmspine.core.repository import ReportRepository


def get_settings(request: Request) -> WarmSettings:
    return request.app.state.settings


def get_repository(request: Request) -> ReportRepository:
    return request.app.state.repository


Settings = Annotated[WarmSettings, Depends(get_settings)]
Repository = Annotated[ReportRepository, Depends(get_repository)]


__all__ = ["get_settings", "get_repository", "Settings", "Repository"]
