"""
Command line interface for intentflow.

Exit codes for ``intentflow run``: 0 success, 1 runtime failure (tool server,
budget or envelope validation; the partial envelope is still written),
2 configuration error.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import shlex
import threading
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from rich.markup import escape

from intentflow import __version__
from intentflow.application.evolution import EvolutionTriggerEvaluator
from intentflow.application.executor import ExecutorLimits, TopologyExecutor
from intentflow.application.intent_generator import IntentGenerator
from intentflow.application.phase_event_emitter import utc_now
from intentflow.application.pipeline import (
    EvolutionPipeline,
    IntentRequest,
    gather_system_state,
)
from intentflow.application.queue_runner import QueueLayout, QueueRunner
from intentflow.application.tool_export import ToolExporter
from intentflow.config import Settings, load_settings
from intentflow.console import (
    console,
    print_error,
    print_header,
    print_info,
    print_pipeline,
    print_queue_results,
    print_run,
    print_success,
    print_triggers,
)
from intentflow.domain.exceptions import (
    BudgetExceeded,
    ConfigError,
    IntentflowError,
    ServerUnavailable,
    ValidationFailure,
)
from intentflow.domain.envelope import run_from_dict, run_to_dict
from intentflow.domain.intent import parse_intent
from intentflow.domain.models import Intent, PipelineStatus, ServerSpec
from intentflow.domain.system_state import SystemState
from intentflow.files import atomic_write_json
from intentflow.infrastructure.actions import DocumentActions
from intentflow.infrastructure.gateway import EchoToolGateway, ProcessToolGateway
from intentflow.infrastructure.launcher import SubprocessIntentLauncher
from intentflow.infrastructure.persistence import JsonlTriggerHistory
from intentflow.logging_setup import setup_logging
from intentflow.schemas import validate_intent, validate_run_envelope

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_CONFIG = 2


def settings_options[F: Callable[..., Any]](func: F) -> F:
    """
    Decorator adding workspace options to a click group.

    Options added:
        --settings: Path to a settings JSON file
        --root: Workspace root directory
        --log-file: Path to log file
        -v/--verbose: Enable verbose logging
    """

    @click.option(
        "--settings",
        "settings_path",
        default=None,
        type=click.Path(dir_okay=False, path_type=Path),
        help="Path to settings JSON (default: <root>/intentflow.json if present)",
    )
    @click.option(
        "--root",
        default=None,
        type=click.Path(file_okay=False, path_type=Path),
        help="Workspace root (default: INTENTFLOW_ROOT or the current directory)",
    )
    @click.option(
        "--log-file",
        default=None,
        type=click.Path(dir_okay=False, path_type=Path),
        help="Path to a detailed log file",
    )
    @click.option(
        "-v",
        "--verbose",
        is_flag=True,
        help="Enable verbose (DEBUG) logging to console",
    )
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _settings(ctx: click.Context) -> Settings:
    settings: Settings = ctx.obj["settings"]
    return settings


@click.group()
@settings_options
@click.version_option(__version__, prog_name="intentflow")
@click.pass_context
def cli(
    ctx: click.Context,
    settings_path: Path | None,
    root: Path | None,
    log_file: Path | None,
    verbose: bool,
) -> None:
    """Run bounded, auditable tool workflows and evolve the workspace around them."""
    try:
        settings = load_settings(settings_path, root=root, log_file=log_file)
    except ConfigError as e:
        print_error(str(e), hint="Check intentflow.json and INTENTFLOW_* variables")
        ctx.exit(EXIT_CONFIG)
    setup_logging(verbose=verbose, log_file=settings.log_file)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


# =============================================================================
# run
# =============================================================================


def _with_server(intent: Intent, server: ServerSpec) -> Intent:
    return dataclasses.replace(
        intent,
        server=server,
        children=tuple(_with_server(child, server) for child in intent.children),
    )


def _load_run_intent(config_path: Path, root: Path) -> Intent:
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Intent file not found: {config_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
    validate_intent(data)
    return parse_intent(data, default_name=config_path.name.split(".")[0], cwd=root)


@cli.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Intent JSON file",
)
@click.option(
    "--out",
    "out_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where to write the run envelope (default: intent 'out' or out/<name>.result.json)",
)
@click.option("--server", default=None, help="Override the tool server command")
@click.option("--serverArgs", "server_args", default=None, help="Override the tool server arguments")
@click.option("--timeout", type=float, default=None, help="Seconds before a tool call is killed")
@click.option("--dry-run", is_flag=True, help="Answer tool calls with the echo gateway")
@click.pass_context
def run(
    ctx: click.Context,
    config_path: Path,
    out_path: Path | None,
    server: str | None,
    server_args: str | None,
    timeout: float | None,
    dry_run: bool,
) -> None:
    """Execute one intent and write its run envelope."""
    settings = _settings(ctx)
    try:
        intent = _load_run_intent(config_path, settings.root)
    except ConfigError as e:
        print_error(str(e))
        ctx.exit(EXIT_CONFIG)

    if server is not None or server_args is not None:
        intent = _with_server(
            intent,
            dataclasses.replace(
                intent.server,
                command=server if server is not None else intent.server.command,
                args=tuple(shlex.split(server_args)) if server_args is not None else intent.server.args,
            ),
        )
    if out_path is None:
        out_path = Path(intent.out) if intent.out else settings.out_dir / f"{intent.name}.result.json"
    if not out_path.is_absolute():
        out_path = settings.root / out_path

    gateway = (
        EchoToolGateway()
        if dry_run
        else ProcessToolGateway(timeout=timeout or settings.gateway_timeout, cwd=settings.root)
    )
    executor = TopologyExecutor(
        gateway,
        limits=ExecutorLimits(
            max_steps=settings.max_steps_ceiling,
            branch_factor=settings.branch_factor_ceiling,
            depth=settings.depth_ceiling,
            max_iterations=settings.max_iterations_ceiling,
        ),
    )

    logger.info("Running %s (%s) -> %s", intent.name, intent.topology.value, out_path)
    try:
        result = executor.execute(intent)
    except ConfigError as e:
        print_error(str(e))
        ctx.exit(EXIT_CONFIG)
    except (ServerUnavailable, BudgetExceeded, ValidationFailure) as e:
        if e.partial_run is not None:
            atomic_write_json(out_path, run_to_dict(e.partial_run))
            logger.info("Partial envelope written to %s", out_path)
        print_error(f"{type(e).__name__}: {e}")
        ctx.exit(EXIT_FAILURE)

    atomic_write_json(out_path, run_to_dict(result))
    print_run(result)
    console.print(f"Envelope written to {out_path}")


# =============================================================================
# queue
# =============================================================================


@cli.group()
def queue() -> None:
    """Process intent files dropped into the queue directory."""


def _queue_runner(settings: Settings, dry_run: bool) -> QueueRunner:
    launcher = SubprocessIntentLauncher(
        command=settings.launcher_command or None,
        extra_args=("--dry-run",) if dry_run else (),
        timeout=settings.launcher_timeout,
        cwd=settings.root,
    )
    return QueueRunner(
        QueueLayout(settings.queue_dir, settings.out_dir),
        launcher,
        debounce_delay=settings.debounce_seconds,
    )


@queue.command("once")
@click.option("--dry-run", is_flag=True, help="Launch each intent with --dry-run")
@click.pass_context
def queue_once(ctx: click.Context, dry_run: bool) -> None:
    """Process every queued intent, then exit."""
    settings = _settings(ctx)
    results = _queue_runner(settings, dry_run).run_once()
    print_queue_results(results)


@queue.command("watch")
@click.option("--dry-run", is_flag=True, help="Launch each intent with --dry-run")
@click.pass_context
def queue_watch(ctx: click.Context, dry_run: bool) -> None:
    """Process the queue now and whenever it changes (Ctrl+C to stop)."""
    settings = _settings(ctx)
    runner = _queue_runner(settings, dry_run)
    stop = threading.Event()
    print_header("intentflow queue", subtitle=str(settings.queue_dir))
    try:
        runner.watch(stop_event=stop, poll_interval=settings.poll_interval, on_results=print_queue_results)
    except KeyboardInterrupt:
        stop.set()
        console.print("Stopped watching")


# =============================================================================
# orchestrate / evolve
# =============================================================================


@cli.command()
@click.option(
    "--intent-description",
    envvar="INTENT_DESCRIPTION",
    default=None,
    help="Queue a generated intent for this description first",
)
@click.option("--intent-name", envvar="INTENT_NAME", default="generated", show_default=True)
@click.option("--intent-steps", envvar="INTENT_STEPS", type=int, default=8, show_default=True)
@click.option("--process-queue", is_flag=True, help="Drain the intent queue before assessing")
@click.option("--dry-run", is_flag=True, help="With --process-queue, launch intents with --dry-run")
@click.option("--workflow-id", default=None, help="Identifier for this cycle (default: generated)")
@click.pass_context
def orchestrate(
    ctx: click.Context,
    intent_description: str | None,
    intent_name: str,
    intent_steps: int,
    process_queue: bool,
    dry_run: bool,
    workflow_id: str | None,
) -> None:
    """Run one evolution cycle (validate, assess, evolve, report, metrics)."""
    settings = _settings(ctx)
    launcher = SubprocessIntentLauncher(
        command=settings.launcher_command or None,
        extra_args=("--dry-run",) if dry_run else (),
        timeout=settings.launcher_timeout,
        cwd=settings.root,
    )
    intent = (
        IntentRequest(intent_description, intent_name, intent_steps) if intent_description else None
    )
    print_header("intentflow orchestrate", subtitle=str(settings.root))
    try:
        result = EvolutionPipeline(settings, launcher).run(intent, process_queue, workflow_id)
    except ConfigError as e:
        print_error(str(e))
        ctx.exit(EXIT_CONFIG)

    print_pipeline(result)
    if result.status == PipelineStatus.ABORTED:
        ctx.exit(EXIT_FAILURE)


@cli.command()
@click.option(
    "--state",
    "state_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="System-state snapshot JSON (default: gathered from the workspace)",
)
@click.option("--evaluate-only", is_flag=True, help="Record pending triggers without implementing them")
@click.option("--stats", is_flag=True, help="Print trigger history statistics")
@click.pass_context
def evolve(ctx: click.Context, state_path: Path | None, evaluate_only: bool, stats: bool) -> None:
    """Evaluate evolution triggers against the current system state."""
    settings = _settings(ctx)
    try:
        if state_path is not None:
            state = SystemState.model_validate_json(state_path.read_text(encoding="utf-8"))
        else:
            state = gather_system_state(settings, utc_now())
    except (ValidationError, json.JSONDecodeError) as e:
        print_error(f"Invalid system state: {e}")
        ctx.exit(EXIT_CONFIG)

    generator = IntentGenerator(settings.queue_dir)
    actions = DocumentActions(
        settings.docs_dir,
        settings.state_dir,
        utc_now,
        max_files=settings.max_action_files,
        on_experiment=lambda: generator.enqueue_daily("innovation", "interactive documentation formats"),
    )
    evaluator = EvolutionTriggerEvaluator(JsonlTriggerHistory(settings.trigger_history_file), actions.handlers())
    triggers = evaluator.evaluate(state) if evaluate_only else evaluator.run(state)
    print_triggers(triggers)
    if stats:
        statistics = evaluator.statistics()
        by_type = statistics.pop("byType")
        print_info({**statistics, **{f"  {k}": v for k, v in sorted(by_type.items())}})


# =============================================================================
# generate-intent / validate
# =============================================================================


@cli.command("generate-intent")
@click.argument("description")
@click.argument("name")
@click.argument("steps", type=int, default=8)
@click.pass_context
def generate_intent(ctx: click.Context, description: str, name: str, steps: int) -> None:
    """Expand DESCRIPTION into a chain intent queued as intent.NAME.json."""
    settings = _settings(ctx)
    try:
        path = IntentGenerator(settings.queue_dir).generate(description, name, steps)
    except ConfigError as e:
        print_error(str(e))
        ctx.exit(EXIT_CONFIG)
    print_success(f"Intent saved to {path}")


# =============================================================================
# tools
# =============================================================================


@cli.group()
def tools() -> None:
    """Discover the tools that intent servers offer."""


@tools.command("export")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Export the server of one intent file",
)
@click.option(
    "--all-intents",
    "intents_dir",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Export the servers of every *.json intent in this directory",
)
@click.option(
    "--out-dir",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Manifest root (default: <out>/tools)",
)
@click.option("--timeout", type=float, default=None, help="Seconds before tools/list is killed")
@click.option("--dry-run", is_flag=True, help="Answer tools/list with the echo gateway")
@click.pass_context
def tools_export(
    ctx: click.Context,
    config_path: Path | None,
    intents_dir: Path | None,
    out_dir: Path | None,
    timeout: float | None,
    dry_run: bool,
) -> None:
    """Write <out-dir>/<server>/tools.json from each server's tools/list."""
    settings = _settings(ctx)
    if (config_path is None) == (intents_dir is None):
        print_error("Pass exactly one of --config or --all-intents")
        ctx.exit(EXIT_CONFIG)

    gateway = (
        EchoToolGateway()
        if dry_run
        else ProcessToolGateway(timeout=timeout or settings.gateway_timeout, cwd=settings.root)
    )
    exporter = ToolExporter(gateway, out_dir or settings.out_dir / "tools", cwd=settings.root)

    if config_path is not None:
        try:
            path = exporter.export_intent(config_path)
        except ConfigError as e:
            print_error(str(e))
            ctx.exit(EXIT_CONFIG)
        except ServerUnavailable as e:
            print_error(f"{type(e).__name__}: {e}")
            ctx.exit(EXIT_FAILURE)
        print_success(f"Tools exported to {path}")
        return

    if not intents_dir.is_dir():
        print_error(f"Intents folder not found: {intents_dir}")
        ctx.exit(EXIT_CONFIG)
    written, failures = exporter.export_intents(intents_dir.glob("*.json"))
    for path in written:
        print_success(f"Tools exported to {path}")
    for name, error in failures.items():
        console.print(f"[red]✗[/red] {escape(name)}: {escape(error)}")
    if failures:
        ctx.exit(EXIT_FAILURE)


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def validate(ctx: click.Context, paths: tuple[Path, ...]) -> None:
    """Validate intent files and run envelopes (detected by their runId)."""
    settings = _settings(ctx)
    failed = 0
    for path in paths:
        try:
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON: {e}") from e
            if isinstance(data, dict) and "runId" in data:
                validate_run_envelope(data)
                run_from_dict(data)
                kind = "run envelope"
            else:
                _load_run_intent(path, settings.root)
                kind = "intent"
        except IntentflowError as e:
            failed += 1
            console.print(f"[red]✗[/red] {escape(str(path))}: {escape(str(e))}")
            continue
        console.print(f"[green]✓[/green] {escape(str(path))} ({kind})")

    if failed:
        ctx.exit(EXIT_FAILURE)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
