"""
Main CLI entry point.
"""

import typer

from modtree import __version__
from modtree.cli import graph, run, tree


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"modtree version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="modtree",
    help="Modtree - declarative module graph resolution and evaluation",
    add_completion=True,
)

# Register subcommands
app.add_typer(run.app, name="run")
app.add_typer(tree.app, name="tree")
app.add_typer(graph.app, name="graph")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        help="Show version and exit.",
    ),
):
    """
    Modtree - declarative module graph resolution and evaluation.

    Run 'modtree <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        if not version:
            typer.echo(ctx.get_help())
            raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
