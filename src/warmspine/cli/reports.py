"""
CLI ``warmspine reports``: query persisted reports and decisions.
"""

from __future__ import annotations

import typer

from warmspine.cli.utils import fail, print_decision, print_report, print_report_list, settings_from
from warmspine.core.config import factory
from warmspine.core.errors import RecordNotFoundError

app = typer.Typer(no_args_is_help=True)


@app.command("latest")
def latest(ctx: typer.Context, json_out: bool = typer.Option(False, "--json")) -> None:
    """Show the most recent warming report."""
    repository = factory.create_repository(settings_from(ctx))
    try:
        report = repository.latest_report()
    except RecordNotFoundError as exc:
        fail(exc.message)
    print_report(report, as_json=json_out)


@app.command("show")
def show(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job ID"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one warming report."""
    repository = factory.create_repository(settings_from(ctx))
    try:
        report = repository.get_report(job_id)
    except RecordNotFoundError as exc:
        fail(exc.message)
    print_report(report, as_json=json_out)


@app.command("list")
def list_reports(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", min=1),
    offset: int = typer.Option(0, "--offset", min=0),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List warming reports, newest first."""
    repository = factory.create_repository(settings_from(ctx))
    print_report_list(repository.list_reports(limit=limit, offset=offset), as_json=json_out)


@app.command("decision")
def decision(
    ctx: typer.Context,
    job_id: str | None = typer.Argument(None, help="Job ID (default: latest decision)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a cutover decision."""
    repository = factory.create_repository(settings_from(ctx))
    try:
        found = repository.get_decision(job_id) if job_id else repository.latest_decision()
    except RecordNotFoundError as exc:
        fail(exc.message)
    print_decision(found, as_json=json_out)
