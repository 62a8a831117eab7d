"""
Shared helpers for CLI commands.
"""

from pathlib import Path

import typer
from rich.console import Console

from modtree.core.initialization import Project, ProjectInitializer
from modtree.exceptions import ModtreeError
from modtree.utils.logging import get_logger, setup_logging

logger = get_logger("modtree.cli")

# Exit codes
EXIT_EVALUATION_FAILED = 1
EXIT_INVALID_PROJECT = 2

error_console = Console(stderr=True)


def load_project(
    project_dir: Path,
    env: str | None = None,
    declarations_file: Path | None = None,
    var_files: list[Path] | None = None,
    assignments: list[str] | None = None,
    verbose: bool = False,
) -> Project:
    """
    Initialize a project, exiting with code 2 if it is invalid.

    Any structural problem (config, declarations, expansion, references,
    cycles) is reported before anything is evaluated.
    """
    try:
        project = ProjectInitializer(
            project_dir,
            env=env,
            declarations_file=declarations_file,
            var_files=var_files,
            assignments=assignments,
        ).initialize()
    except ModtreeError as e:
        logger.debug("Initialization failed", exc_info=True)
        error_console.print(f"Error: {e}", markup=False, highlight=False)
        raise typer.Exit(EXIT_INVALID_PROJECT) from e

    if verbose:
        setup_logging(level="DEBUG", use_rich=project.config.get("logging.console_type", "rich") == "rich")
    return project
