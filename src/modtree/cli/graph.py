"""
modtree graph - Display the instance dependency graph.
"""

from pathlib import Path

import typer

from modtree.cli.common import load_project

app = typer.Typer(name="graph", help="Display the instance dependency graph", invoke_without_command=True)


@app.callback()
def graph(
    ctx: typer.Context,
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Declarations file (default: modules.yaml)"),
    var: list[str] | None = typer.Option(None, "--var", help="Set a variable: name=value (repeatable)"),
    var_file: list[Path] | None = typer.Option(None, "--var-file", help="YAML/JSON file of variable values"),
    layers: bool = typer.Option(False, "--layers", "-l", help="Group instances by execution layer"),
    env: str | None = typer.Option(None, help="Environment (selects modtree.<env>.yaml)"),
) -> None:
    """
    Print the dependency graph as a tree of dependents, or as layers.
    """
    if ctx.invoked_subcommand is None:
        project = load_project(project_dir, env=env, declarations_file=file, var_files=var_file, assignments=var)
        if not project.graph:
            typer.echo("No modules declared")
            return
        typer.echo(project.graph.visualize_layers() if layers else project.graph.visualize_tree())
