"""
CLI ``warmspine serve``: start the read-only reports API.
"""

from __future__ import annotations

import os

import typer
import uvicorn

from warmspine.cli.utils import console, settings_from
from warmspine.core.config.settings import CONFIG_FILE_ENV


def serve(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the warmspine reports API."""
    settings = settings_from(ctx)
    config = (ctx.obj or {}).get("config")
    if config is not None:
        # The app factory runs in uvicorn and reads settings from the environment
        os.environ[CONFIG_FILE_ENV] = str(config)
    bind_host = host or settings.api_host
    bind_port = port or settings.api_port
    console.print(f"[bold green]Starting warmspine API[/bold green] on {bind_host}:{bind_port}")
    uvicorn.run(
        "warmspine.api:create_app",
        factory=True,
        host=bind_host,
        port=bind_port,
        log_level=log_level,
    )
