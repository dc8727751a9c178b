"""
CLI module - Command line interface for ergo

Entry point for the `ergo` command using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.status import Status
from rich.table import Table

from . import __version__
from .config import AppConfig, LoggingConfig, load_config, validate_config
from .errors import ConfigurationError, SpecificationLoadError
from .runners import (
    ItemResult,
    ItemStatus,
    RunnerCallbacks,
    RunOutcome,
    SequentialRunner,
    StateChange,
    TaskReport,
    WorkflowStatus,
)
from .workflow import Operator, TaskState, Workflow, load_workflow

console = Console()
app = typer.Typer(
    name="ergo",
    help="ergo - Declarative task runner with fallbacks and map/reduce.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

STATE_ICONS = {
    TaskState.READY: ("⏳", "dim"),
    TaskState.RUNNING: ("🏃", "yellow"),
    TaskState.SUCCEEDED: ("✅", "green"),
    TaskState.FAILED: ("❌", "red"),
    TaskState.RECOVERING: ("♻️", "yellow"),
}

ITEM_MARKERS = {
    ItemStatus.SUCCEEDED: "[green]✓[/green]",
    ItemStatus.RECOVERED: "[yellow]♻[/yellow]",
    ItemStatus.FAILED: "[red]✗[/red]",
}


def version_callback(value: bool):
    if value:
        console.print(f"ergo version {__version__}")
        raise typer.Exit()


# Type aliases for common options
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config file", exists=True, dir_okay=False),
]
WorkflowArgument = Annotated[Path, typer.Argument(help="Workflow file (YAML) to load", dir_okay=False)]


@app.callback()
def main(
    version: Annotated[
        bool, typer.Option("--version", "-v", callback=version_callback, is_eager=True, help="Show version")
    ] = False,
):
    """ergo - Declarative task runner with fallbacks and map/reduce."""
    pass


def setup_logging(config: LoggingConfig) -> None:
    """Attach Rich (and optionally file) handlers to the package logger."""
    logger = logging.getLogger("ergo")
    logger.handlers.clear()
    logger.setLevel(config.level.upper())

    if config.console_logging:
        logger.addHandler(RichHandler(console=console, show_path=False, markup=False))

    if config.file:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(file_handler)


def get_config(
    config_path: Path | None = None,
    max_workers: int | None = None,
    timeout: float | None = None,
    strict_map: bool = False,
    log_level: str | None = None,
) -> AppConfig:
    """Load configuration, apply command-line overrides, exit on invalid values."""
    try:
        cfg = load_config(config_path).with_overrides(
            max_workers=max_workers,
            timeout=timeout,
            fail_on_partial=True if strict_map else None,
        )
    except ConfigurationError as e:
        _print_config_errors(e.errors)
        raise typer.Exit(1) from e

    if log_level:
        cfg.logging.level = log_level

    errors = validate_config(cfg)
    if errors:
        _print_config_errors(errors)
        raise typer.Exit(1)
    return cfg


def _print_config_errors(errors: list[str]) -> None:
    console.print("[red]Invalid configuration:[/red]")
    for err in errors:
        console.print(f"  {escape(err)}")


def _load_or_exit(workflow_file: Path) -> Workflow:
    try:
        return load_workflow(workflow_file)
    except SpecificationLoadError as e:
        console.print(f"[red]Error loading workflow:[/red] {escape(e.message)}")
        raise typer.Exit(1) from e


def state_label(state: TaskState) -> str:
    """Colored state name with icon."""
    icon, style = STATE_ICONS[state]
    return f"[{style}]{state.value}[/{style}] {icon}"


def render_state_table(rows: list[list]) -> Table:
    """Table of every task's current state and runtime."""
    table = Table(title="Current Task States")
    table.add_column("Task", style="cyan")
    table.add_column("State")
    table.add_column("Runtime", justify="right")

    for name, state, duration in rows:
        table.add_row(escape(name), state_label(state), f"{duration:.2f}s")

    return table


@app.command()
def run(
    workflow_file: WorkflowArgument,
    config: ConfigOption = None,
    max_workers: Annotated[
        int | None, typer.Option("--max-workers", "-j", help="Max map items in flight at once", min=1)
    ] = None,
    timeout: Annotated[
        float | None, typer.Option("--timeout", help="Kill any command running longer than this (seconds)")
    ] = None,
    strict_map: Annotated[
        bool, typer.Option("--strict-map", help="Fail a map task when any item fails without recovery")
    ] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Hide command output")] = False,
    log_level: Annotated[str | None, typer.Option("--log-level", help="Logging level (e.g. INFO, DEBUG)")] = None,
):
    """
    Run a workflow file.

    Tasks run in order. A failing task runs its catch command if it has
    one; the first task that cannot be recovered stops the workflow.

    [bold]Examples:[/bold]

        ergo run workflow.yaml

        ergo run workflow.yaml -j 4 --timeout 300

        ergo run workflow.yaml --strict-map --log-level INFO
    """
    cfg = get_config(config, max_workers, timeout, strict_map, log_level)
    setup_logging(cfg.logging)

    workflow = _load_or_exit(workflow_file)

    rows = [[task.name, TaskState.READY, 0.0] for task in workflow.tasks]
    position = -1
    spinner: Status | None = None

    def stop_spinner():
        nonlocal spinner
        if spinner is not None:
            spinner.stop()
            spinner = None

    def on_workflow_start(name: str, total: int):
        console.print(f"\n[bold]🚀 Starting workflow:[/bold] {escape(name)} ({total} tasks)")

    def on_task_start(name: str, operator: Operator):
        nonlocal position, spinner
        position += 1
        console.print(
            f"\n[cyan]\\[WORKFLOW][/cyan] Task {escape(name)}: [yellow]Starting...[/yellow] [dim]({operator.value})[/dim]"
        )
        spinner = console.status(f"Task {escape(name)}: running", spinner="line")
        spinner.start()

    def on_state_change(change: StateChange):
        rows[position][1] = change.to_state
        console.print(f"  Task {escape(change.task_name)} transitioned to state: {state_label(change.to_state)}")

    def on_command_start(name: str, command: str):
        console.print(f"  [dim]$ {escape(command)}[/dim]")

    def on_output(name: str, line: str):
        console.print(line, markup=False, highlight=False)

    def on_command_failed(name: str, command: str, error):
        console.print(f"  [red]Error:[/red] {escape(error.detail)}")

    def on_item_complete(name: str, result: ItemResult):
        console.print(f"  {ITEM_MARKERS[result.status]} item {escape(result.item)} ({result.status.value})")

    def on_task_complete(report: TaskReport):
        stop_spinner()
        rows[position][2] = report.duration
        name = escape(report.name)

        if report.outcome is RunOutcome.SUCCESS:
            console.print(f"[green]\\[SUCCESS][/green] Task {name} completed successfully!")
        elif report.outcome is RunOutcome.RECOVERED:
            console.print(f"[green]\\[SUCCESS][/green] Task {name} recovered successfully!")
        else:
            reason = " Fallback command also failed!" if report.recovery_attempted else " No fallback found."
            console.print(f"[red]\\[FAILED] Task {name} failed!{reason}[/red]")

        if report.operator is Operator.MAP:
            console.print(f"  Results: {escape(','.join(report.results)) or '[dim](none)[/dim]'}")
            if report.excluded:
                console.print(f"  [yellow]Excluded:[/yellow] {escape(', '.join(report.excluded))}")
            if report.reduce_succeeded is False:
                console.print("  [yellow]Reduce command failed[/yellow]")

        console.print(render_state_table(rows))

    callbacks = RunnerCallbacks(
        on_workflow_start=on_workflow_start,
        on_task_start=on_task_start,
        on_state_change=on_state_change,
        on_command_start=on_command_start,
        on_output=None if quiet else on_output,
        on_command_failed=on_command_failed,
        on_item_complete=on_item_complete,
        on_task_complete=on_task_complete,
    )

    runner = SequentialRunner(cfg)
    try:
        report = runner.run(workflow, callbacks)
    finally:
        stop_spinner()

    console.print()
    if report.status is WorkflowStatus.HALTED:
        console.print(
            f"[red]❌ Workflow execution halted due to unrecovered failure in task {escape(report.halted_by)}.[/red]"
        )
        if report.pending:
            console.print(f"[dim]Not run: {escape(', '.join(report.pending))}[/dim]")
        raise typer.Exit(1)

    if report.status is WorkflowStatus.RECOVERED:
        console.print(
            f"[yellow]✅ Workflow completed; {report.tasks_recovered} task(s) recovered via fallback.[/yellow]"
        )
    else:
        console.print("[green]✅ Workflow execution completed successfully! 🎉[/green]")
    console.print(f"[dim]{report.tasks_completed} tasks in {report.total_duration:.2f}s[/dim]")


@app.command()
def validate(
    workflow_file: WorkflowArgument,
):
    """Parse a workflow file and show its tasks without running anything."""
    workflow = _load_or_exit(workflow_file)

    table = Table(title=f"Workflow: {escape(workflow.name)}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Task", style="cyan")
    table.add_column("Operator")
    table.add_column("Command")
    table.add_column("Catch", style="yellow")
    table.add_column("Reduce", style="magenta")

    for idx, task in enumerate(workflow.tasks, start=1):
        command = escape(task.command)
        if task.is_map:
            command += f" [dim]x{len(task.input)}[/dim]"
        table.add_row(
            str(idx),
            escape(task.name),
            task.operator.value,
            command,
            escape(task.catch.command) if task.catch else "-",
            escape(task.reduce.command) if task.reduce else "-",
        )

    console.print(table)
    console.print(f"[green]✓[/green] {len(workflow.tasks)} tasks")


def main_cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main_cli()
