"""
modtree run - Evaluate every module instance of a project.
"""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from modtree.cli.common import EXIT_EVALUATION_FAILED, EXIT_INVALID_PROJECT, error_console, load_project
from modtree.core.scheduler import EvaluationReport, Scheduler
from modtree.core.types import InstanceId
from modtree.exceptions import ConfigurationError, InternalError
from modtree.utils.logging import get_logger

logger = get_logger("modtree.cli.run")

app = typer.Typer(name="run", help="Evaluate module instances", invoke_without_command=True)

console = Console()


def _format_value(value: object) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, sort_keys=True)


def _print_report(report: EvaluationReport) -> None:
    """Print outputs and failures as rich tables."""
    outputs_table = Table(title="Outputs", show_header=True)
    outputs_table.add_column("Instance", style="cyan")
    outputs_table.add_column("Attribute", style="green")
    outputs_table.add_column("Value")
    for instance_id in sorted(report.outputs, key=InstanceId.sort_key):
        outputs = report.outputs[instance_id]
        if not outputs:
            outputs_table.add_row(Text(str(instance_id)), "-", "-")
        for name, value in sorted(outputs.items()):
            outputs_table.add_row(Text(str(instance_id)), Text(name), Text(_format_value(value)))
    console.print(outputs_table)

    if report.failures:
        failures_table = Table(title="Failures", show_header=True)
        failures_table.add_column("Instance", style="red")
        failures_table.add_column("Error")
        for instance_id in sorted(report.failures, key=InstanceId.sort_key):
            failures_table.add_row(Text(str(instance_id)), Text(str(report.failures[instance_id])))
        console.print(failures_table)

    summary = report.run.get_summary() if report.run else None
    if summary:
        style = "green" if report.success else "red"
        console.print(
            f"[{style}]{summary['done']} done, {summary['failed']} failed "
            f"({summary['skipped']} skipped) in {summary['duration']:.2f}s[/{style}]"
        )


@app.callback()
def run(
    ctx: typer.Context,
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Declarations file (default: modules.yaml)"),
    var: list[str] | None = typer.Option(None, "--var", help="Set a variable: name=value (repeatable)"),
    var_file: list[Path] | None = typer.Option(None, "--var-file", help="YAML/JSON file of variable values"),
    parallelism: int | None = typer.Option(None, "--parallelism", "-p", help="Maximum instances in flight"),
    timeout: float | None = typer.Option(None, "--timeout", help="Per-instance timeout in seconds"),
    env: str | None = typer.Option(None, help="Environment (selects modtree.<env>.yaml)"),
    output_format: str = typer.Option("table", "--format", help="Output format: table or json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Expand, resolve and evaluate all module instances.

    Exits with 1 if any instance failed and 2 if the project is invalid.
    """
    if ctx.invoked_subcommand is not None:
        return
    if output_format not in ("table", "json"):
        error_console.print(f"Error: unknown format '{output_format}', expected table or json", markup=False)
        raise typer.Exit(EXIT_INVALID_PROJECT)

    project = load_project(
        project_dir, env=env, declarations_file=file, var_files=var_file, assignments=var, verbose=verbose
    )
    if not project.registry:
        typer.echo("No modules declared")
        raise typer.Exit(0)

    try:
        scheduler = Scheduler(
            project.executor,
            parallelism=parallelism if parallelism is not None else project.config.parallelism,
            timeout=timeout if timeout is not None else project.config.timeout,
        )
        report = asyncio.run(scheduler.evaluate(project.graph))
    except (ConfigurationError, InternalError) as e:
        error_console.print(f"Error: {e}", markup=False)
        raise typer.Exit(EXIT_INVALID_PROJECT) from e

    if output_format == "json":
        typer.echo(json.dumps(report.to_dict(), default=str, indent=2))
    else:
        _print_report(report)

    if not report.success:
        raise typer.Exit(EXIT_EVALUATION_FAILED)
