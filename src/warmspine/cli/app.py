"""
Root Typer application for the warmspine CLI.
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from warmspine import __version__

app = Typer(
    name="warmspine",
    help="warmspine: cache warming and cutover validation.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"warmspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        "--config",
        envvar="WARMSPINE_CONFIG_FILE",
        help="YAML settings file.",
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override WARMSPINE_LOG_LEVEL."),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """warmspine CLI: warm caches, gate cutovers, inspect reports."""
    ctx.obj = {"config": config, "log_level": log_level}


# ── Sub-command registration ─────────────────────────────────────────────

from warmspine.cli.cutover import app as cutover_app  # noqa: E402
from warmspine.cli.reports import app as reports_app  # noqa: E402
from warmspine.cli.serve import serve  # noqa: E402
from warmspine.cli.warm import app as warm_app  # noqa: E402

app.add_typer(warm_app, name="warm", help="Run warming jobs and validate reports.")
app.add_typer(cutover_app, name="cutover", help="Deploy, warm, validate and switch traffic.")
app.add_typer(reports_app, name="reports", help="Persisted reports and decisions.")
app.command("serve", help="Start the read-only reports API.")(serve)
