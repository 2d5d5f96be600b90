"""
CLI ``warmspine warm``: run warming jobs and gate their reports.
"""

from __future__ import annotations

import typer

from warmspine.cli.utils import (
    OUTCOME_EXIT_CODES,
    ExitCode,
    cancel_on_signals,
    fail,
    print_decision,
    print_report,
    settings_from,
)
from warmspine.core.config import factory
from warmspine.core.errors import (
    ConnectivityError,
    InvalidConfigError,
    JobConflictError,
    RecordNotFoundError,
    ValidationFailedError,
)

app = typer.Typer(no_args_is_help=True)


@app.command("run")
def run(
    ctx: typer.Context,
    categories: list[str] | None = typer.Option(None, "--category", "-c", help="Category to warm (repeatable)"),
    batch_size: int | None = typer.Option(None, "--batch-size", "-b", min=1),
    max_retries: int | None = typer.Option(None, "--max-retries", min=0),
    max_parallelism: int | None = typer.Option(None, "--max-parallelism", "-p", min=1),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one warming job.  Exit code 0 success, 2 partial, 1 failure."""
    settings = settings_from(ctx)
    repository = factory.create_repository(settings)
    store = factory.create_cache_store(settings)
    orchestrator = factory.create_orchestrator(
        settings,
        store=store,
        repository=repository,
        max_parallelism=max_parallelism,
    )
    try:
        job = factory.create_job(
            settings,
            categories=categories or None,
            batch_size=batch_size,
            max_retries=max_retries,
        )
    except InvalidConfigError as exc:
        fail(exc.message)

    try:
        with cancel_on_signals(orchestrator.cancel):
            report = orchestrator.run(job)
    except (ConnectivityError, JobConflictError) as exc:
        fail(exc.message)

    print_report(report, as_json=json_out)
    raise typer.Exit(code=int(OUTCOME_EXIT_CODES[report.outcome]))


@app.command("validate")
def validate(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job ID of a persisted warming report"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Gate a persisted report once and record the decision."""
    settings = settings_from(ctx)
    repository = factory.create_repository(settings)
    try:
        report = repository.get_report(job_id)
    except RecordNotFoundError as exc:
        fail(exc.message)
    if repository.has_decision(job_id):
        fail(f"Job {job_id} already has a cutover decision; run a new warming job to re-validate")

    gate = factory.create_gate(settings, store=factory.create_cache_store(settings))
    decision = gate.validate(report)
    repository.save_decision(decision)
    print_decision(decision, as_json=json_out)
    try:
        decision.raise_for_failure()
    except ValidationFailedError as exc:
        fail(exc.message)
    raise typer.Exit(code=int(ExitCode.SUCCESS))
