"""
CLI utility helpers: settings, exit codes and output formatting.
"""

from __future__ import annotations

import json
import signal
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import IntEnum
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from warmspine.core.config import WarmSettings, load_settings
from warmspine.core.errors import WarmspineError
from warmspine.core.logging import configure_logging
from warmspine.core.models import CutoverDecision, ReportOutcome, WarmingReport

console = Console()
err_console = Console(stderr=True)


class ExitCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    PARTIAL = 2


OUTCOME_EXIT_CODES = {
    ReportOutcome.SUCCESS: ExitCode.SUCCESS,
    ReportOutcome.PARTIAL: ExitCode.PARTIAL,
    ReportOutcome.FAILURE: ExitCode.FAILURE,
}


# ── Settings ─────────────────────────────────────────────────────────────


def settings_from(ctx: typer.Context, **overrides: Any) -> WarmSettings:
    """Load settings using the root ``--config`` option, then configure logging."""
    state = ctx.obj or {}
    config: Path | None = state.get("config")
    try:
        settings = load_settings(config, **overrides)
    except WarmspineError as exc:
        fail(exc.message)
    configure_logging(level=state.get("log_level") or settings.log_level, json_format=settings.json_logs)
    return settings


def fail(message: str, code: ExitCode = ExitCode.FAILURE) -> NoReturn:
    err_console.print(f"[bold red]Error[/bold red]: {escape(message)}", soft_wrap=True)
    raise typer.Exit(code=int(code))


@contextmanager
def cancel_on_signals(cancel: Callable[[], None]) -> Iterator[None]:
    """Route SIGINT / SIGTERM to ``cancel`` for the duration of the block."""

    def handler(signum: int, frame: Any) -> None:
        err_console.print(f"[yellow]Received {signal.Signals(signum).name}; finishing in-flight batches...[/yellow]")
        cancel()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_report(report: WarmingReport, *, as_json: bool = False) -> None:
    """Render a warming report: per-category counters plus telemetry."""
    if as_json:
        print_json(report.model_dump(mode="json"))
        return

    table = Table(title=f"Warming job {report.job_id}", show_lines=False, pad_edge=False)
    for col in ("category", "status", "attempted", "succeeded", "failed", "batches", "duration_ms", "abort_reason"):
        table.add_column(col, overflow="fold")
    for stats in report.categories:
        table.add_row(
            stats.category.value,
            stats.status.value,
            str(stats.attempted),
            str(stats.succeeded),
            str(stats.failed),
            str(stats.batches),
            str(stats.duration_ms),
            escape(stats.abort_reason or ""),
        )
    console.print(table)

    colour = {"success": "green", "partial": "yellow", "failure": "red"}[report.outcome.value]
    console.print(f"  [cyan]job_id[/cyan]: {report.job_id}")
    console.print(f"  [cyan]status[/cyan]: {report.status.value}")
    console.print(f"  [cyan]outcome[/cyan]: [{colour}]{report.outcome.value}[/{colour}]")
    if report.telemetry is not None:
        console.print(f"  [cyan]total_keys[/cyan]: {report.total_keys}")
        console.print(f"  [cyan]memory_used_bytes[/cyan]: {report.memory_used_bytes}")
        console.print(f"  [cyan]fragmentation_ratio[/cyan]: {report.fragmentation_ratio}")
    else:
        console.print("  [cyan]telemetry[/cyan]: [dim]unavailable[/dim]")
    if report.fatal_error:
        console.print(f"  [cyan]fatal_error[/cyan]: [red]{escape(report.fatal_error)}[/red]")
    console.print(f"  [cyan]duration_seconds[/cyan]: {report.duration_seconds:.2f}")


def print_decision(decision: CutoverDecision, *, as_json: bool = False) -> None:
    if as_json:
        print_json(decision.model_dump(mode="json"))
        return
    verdict = "[green]PASSED[/green]" if decision.passed else "[red]FAILED[/red]"
    console.print(f"[bold]Cutover decision for {decision.job_id}[/bold]: {verdict}")
    console.print(f"  [cyan]decided_at[/cyan]: {decision.decided_at.isoformat()}")
    for reason in decision.reasons:
        console.print(f"  [red]✗[/red] {escape(reason)}")


def print_report_list(reports: list[WarmingReport], *, as_json: bool = False) -> None:
    if as_json:
        print_json([r.model_dump(mode="json") for r in reports])
        return
    if not reports:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title="Warming reports", show_lines=False, pad_edge=False)
    for col in ("job_id", "status", "outcome", "completed_at", "succeeded", "failed", "total_keys"):
        table.add_column(col, overflow="fold")
    for r in reports:
        table.add_row(
            r.job_id,
            r.status.value,
            r.outcome.value,
            r.completed_at.isoformat(),
            str(r.total_succeeded),
            str(r.total_failed),
            str(r.total_keys),
        )
    console.print(table)
