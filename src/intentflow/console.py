"""Rich console utilities for intentflow."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from intentflow.domain.models import PipelineResult, QueueItemResult, Run, Trigger

# Shared console instances
console = Console()
error_console = Console(stderr=True)

_STATUS_STYLES = {
    "completed": "green",
    "archived-ok": "green",
    "failed": "red",
    "archived-error": "red",
    "aborted": "bold red",
    "skipped": "yellow",
    "pending": "dim",
    "completed_with_failures": "yellow",
}


def _styled(status: str) -> Text:
    return Text(status, style=_STATUS_STYLES.get(status, ""))


def print_header(title: str, subtitle: str | None = None) -> None:
    """Print a styled header panel."""
    content = Text(title, style="bold blue")
    if subtitle:
        content.append(f"\n{subtitle}", style="dim")
    console.print(Panel(content, expand=False))


def print_error(message: str, hint: str | None = None) -> None:
    """Print formatted error message to stderr."""
    content = Text(f"ERROR: {message}", style="bold red")
    if hint:
        content.append(f"\n\nHint: {hint}", style="yellow")
    error_console.print(Panel(content, title="Error", border_style="red"))


def print_success(message: str) -> None:
    """Print success message."""
    console.print(Panel(message, title="Success", border_style="green"))


def print_info(rows: dict[str, Any]) -> None:
    """Print a key/value info table."""
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in rows.items():
        table.add_row(key, str(value))
    console.print(table)


def print_run(run: Run) -> None:
    """Print the steps of a sealed run."""
    print_info(
        {
            "Run": run.run_id,
            "Intent": f"{run.intent_name} ({run.mode.value})",
            "Steps": len(run.steps),
            "Branches tried": run.metrics.branches_tried,
            "Tokens": run.metrics.tokens,
            "Decision": run.summary.decision[:80],
        }
    )
    table = Table(show_header=True, box=None)
    table.add_column("Id", style="cyan", width=4)
    table.add_column("Label", style="magenta")
    table.add_column("Tool", style="yellow")
    table.add_column("Score", justify="right")
    table.add_column("Selected")
    for step in run.steps:
        table.add_row(
            str(step.step_id),
            step.label,
            step.tool,
            "" if step.score is None else f"{step.score:.2f}",
            "*" if step.selected else "",
        )
    console.print(table)


def print_queue_results(results: Sequence[QueueItemResult]) -> None:
    """Print one row per processed queue item."""
    if not results:
        console.print("[dim]Queue empty[/dim]")
        return
    table = Table(show_header=True, box=None)
    table.add_column("Intent", style="cyan")
    table.add_column("Status")
    table.add_column("Exit", justify="right")
    table.add_column("Error (summary)", style="red")
    for r in results:
        table.add_row(
            r.name,
            _styled(r.status.value),
            "-" if r.exit_code is None else str(r.exit_code),
            (r.error or "").split("\n")[0][:80],
        )
    console.print(table)


def print_pipeline(result: PipelineResult) -> None:
    """Print per-phase outcomes of an orchestration cycle."""
    table = Table(show_header=True, box=None)
    table.add_column("Phase", style="cyan")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Contingency", style="magenta")
    table.add_column("Error (summary)", style="red")
    for phase in result.phases.values():
        table.add_row(
            phase.phase,
            _styled(phase.status.value),
            str(phase.attempts),
            phase.contingency or "",
            (phase.error or "")[:80],
        )
    console.print(table)
    console.print(
        f"Pipeline [bold]{result.workflow_id}[/bold]: ",
        _styled(result.status.value),
        f" ({result.success_rate:.0%} success, {result.duration_ms}ms)",
        sep="",
    )


def print_triggers(triggers: Sequence[Trigger]) -> None:
    """Print evolution triggers with their final status."""
    if not triggers:
        console.print("[dim]No triggers fired[/dim]")
        return
    table = Table(show_header=True, box=None)
    table.add_column("Type", style="cyan")
    table.add_column("Priority", style="magenta")
    table.add_column("Status")
    table.add_column("Condition")
    for t in triggers:
        table.add_row(t.trigger_type, t.priority.value, _styled(t.status.value), t.condition)
    console.print(table)
