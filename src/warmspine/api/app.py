"""
FastAPI application factory for the read-only reports API.

Usage::

    uvicorn warmspine.api:create_app --factory
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from warmspine import __version__
from warmspine.api.deps import Settings
from warmspine.api.schemas import ProblemDetail
from warmspine.core.config.settings import WarmSettings, get_settings
from warmspine.core.errors import RecordNotFoundError
from warmspine.core.logging import get_logger
from warmspine.core.orm.session import create_state_engine
from warmspine.core.repository import ReportRepository

logger = get_logger(__name__)


async def not_found_handler(request: Request, exc: RecordNotFoundError) -> JSONResponse:
    problem = ProblemDetail(
        title=f"{exc.kind.capitalize()} not found",
        status=404,
        detail=exc.message,
        instance=str(request.url.path),
    )
    return JSONResponse(status_code=404, content=problem.model_dump(), media_type="application/problem+json")


def create_app(
    *,
    settings: WarmSettings | None = None,
    repository: ReportRepository | None = None,
) -> FastAPI:
    """Build the API.  ``settings`` and ``repository`` override the defaults (useful for testing)."""
    settings = settings or get_settings()
    repository = repository or ReportRepository(create_state_engine(settings.state_database_url))

    app = FastAPI(title="warmspine", version=__version__)
    app.state.settings = settings
    app.state.repository = repository

    app.add_exception_handler(RecordNotFoundError, not_found_handler)

    from warmspine.api.routers import reports

    app.include_router(reports.router)

    @app.get("/health")
    def health(settings: Settings) -> dict[str, str]:
        return {"status": "ok", "environment_id": settings.environment_id}

    logger.info("api.created", state_database=repository.engine.url.render_as_string(hide_password=True))
    return app


__all__ = ["create_app", "not_found_handler"]
