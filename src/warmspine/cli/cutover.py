"""
CLI ``warmspine cutover``: deploy, warm, validate, switch or roll back.
"""

from __future__ import annotations

import typer
from rich.markup import escape

from warmspine.cli.utils import ExitCode, cancel_on_signals, console, fail, print_json, settings_from
from warmspine.core.config import factory
from warmspine.core.errors import AuthorizationError, IllegalTransitionError
from warmspine.cutover.controller import CutoverState, ManualOverride

app = typer.Typer(no_args_is_help=True)


@app.command("run")
def run(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Cut over even if validation fails (needs authorization)"),
    authorized_by: str | None = typer.Option(None, "--authorized-by", help="Operator authorizing --force"),
    reason: str | None = typer.Option(None, "--reason", help="Why --force is needed"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one cutover attempt.  Exit code 0 when active, 1 when retired."""
    settings = settings_from(ctx)
    override = None
    if force:
        if not authorized_by or not reason:
            fail("--force requires --authorized-by and --reason")
        override = ManualOverride(authorized_by=authorized_by, reason=reason)

    repository = factory.create_repository(settings)
    controller = factory.create_cutover_controller(settings, repository)
    try:
        with cancel_on_signals(controller.cancel):
            result = controller.run(override)
    except (AuthorizationError, IllegalTransitionError) as exc:
        fail(exc.message)

    if json_out:
        print_json(result.to_dict())
    else:
        colour = "green" if result.succeeded else "red"
        console.print(f"[bold]Cutover[/bold]: [{colour}]{result.state.value}[/{colour}]")
        console.print(f"  [cyan]path[/cyan]: {' → '.join(s.value for s in result.history)}")
        console.print(f"  [cyan]environment[/cyan]: {result.environment_id}")
        console.print(f"  [cyan]prior_environment[/cyan]: {result.prior_environment_id}")
        if result.report is not None:
            console.print(f"  [cyan]job_id[/cyan]: {result.report.job_id}")
        if result.override is not None:
            console.print(f"  [yellow]manual override by {escape(result.override.authorized_by)}[/yellow]")
        for line in result.reasons:
            console.print(f"  [red]✗[/red] {escape(line)}")

    code = ExitCode.SUCCESS if result.state is CutoverState.ACTIVE else ExitCode.FAILURE
    raise typer.Exit(code=int(code))
