"""
modtree tree - Display the module tree of a project.
"""

from pathlib import Path

import typer
from rich.console import Console

from modtree.cli.common import load_project
from modtree.core.tree import build_tree

app = typer.Typer(name="tree", help="Display the module tree", invoke_without_command=True)

console = Console()


@app.callback()
def tree(
    ctx: typer.Context,
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Declarations file (default: modules.yaml)"),
    var: list[str] | None = typer.Option(None, "--var", help="Set a variable: name=value (repeatable)"),
    var_file: list[Path] | None = typer.Option(None, "--var-file", help="YAML/JSON file of variable values"),
    instances: bool = typer.Option(False, "--instances", "-i", help="List instances under expanded modules"),
    env: str | None = typer.Option(None, help="Environment (selects modtree.<env>.yaml)"),
) -> None:
    """
    Print one line per module with its multiplicity and source.
    """
    if ctx.invoked_subcommand is None:
        project = load_project(project_dir, env=env, declarations_file=file, var_files=var_file, assignments=var)
        console.print(build_tree(project.registry, base_dir=project.project_dir, show_instances=instances))
