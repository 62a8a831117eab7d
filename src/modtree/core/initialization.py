"""
Project initialization.

Orchestrates loading of a project directory in the correct order:
1. Config (with validation)
2. Logging
3. Declarations and input variables
4. Module executors (config paths and discovered Python files)
5. Expansion and reference resolution (cycle detection included)
"""

import importlib.util
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from modtree.config.loader import Config, collect_variables, load_config, load_declarations
from modtree.core.dependencies import DependencyGraph
from modtree.core.executors import SourceRegistry, default_registry, registry_from_config
from modtree.core.expander import expand
from modtree.core.resolver import resolve
from modtree.core.types import InstanceRegistry, ModuleDeclaration
from modtree.exceptions import ConfigurationError
from modtree.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("modtree.initialization")


@dataclass
class Project:
    """Everything needed to evaluate a project."""

    project_dir: Path
    config: Config
    declarations: list[ModuleDeclaration]
    variables: dict[str, Any]
    registry: InstanceRegistry
    graph: DependencyGraph
    executor: SourceRegistry


def discover_executors(executors_dir: Path) -> list[str]:
    """
    Import every Python file in a directory so ``@module_source``
    decorators register their functions.

    Returns:
        Sources registered by the imported files
    """
    before = set(default_registry.sources)
    for py_file in sorted(executors_dir.glob("**/*.py")):
        if py_file.name.startswith(("test_", "_")):
            continue
        spec = importlib.util.spec_from_file_location(f"modtree_executors.{py_file.stem}", py_file)
        if spec is None or spec.loader is None:
            continue
        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise ConfigurationError(f"Failed to import executor file {py_file}: {e}") from e
        logger.debug(f"Imported executor file {py_file}")
    return sorted(set(default_registry.sources) - before)


class ProjectInitializer:
    """Handles complete initialization of a modtree project."""

    def __init__(
        self,
        project_dir: Path,
        env: str | None = None,
        declarations_file: Path | None = None,
        var_files: list[Path] | None = None,
        assignments: list[str] | None = None,
        configure_logging: bool = True,
    ):
        self.project_dir = Path(project_dir)
        self.env = env or os.environ.get("MODTREE_ENV")
        self.declarations_file = declarations_file
        self.var_files = var_files or []
        self.assignments = assignments or []
        self.configure_logging = configure_logging

    def load_declarations(self) -> tuple[Config, list[ModuleDeclaration], dict[str, Any]]:
        """Steps 1-3: config, logging, declarations and variables."""
        config = load_config(self.project_dir, env=self.env)
        if self.configure_logging:
            setup_logging_from_config(config.data, project_dir=self.project_dir)

        path = self.declarations_file or config.declarations_file
        if not path.is_absolute() and not path.exists():
            path = self.project_dir / path
        declarations, defaults = load_declarations(path)
        variables = collect_variables(defaults, config, self.var_files, self.assignments)
        return config, declarations, variables

    def load_executor(self, config: Config) -> SourceRegistry:
        """Step 4: executors from ``executors_dir`` and the ``executors`` mapping."""
        executors_dir = config.get("executors_dir")
        if executors_dir:
            directory = Path(executors_dir)
            if not directory.is_absolute():
                directory = self.project_dir / directory
            if not directory.is_dir():
                raise ConfigurationError(f"Executors directory not found: {directory}")
            discovered = discover_executors(directory)
            logger.debug(f"Discovered executors for sources: {discovered}")
        return registry_from_config(config.executors, base=default_registry)

    def initialize(self) -> Project:
        """
        Initialize all components in the correct order.

        Raises:
            ConfigurationError: config or declaration files are invalid
            DeclarationError, ExpansionError, ReferenceError_, CycleError:
                the declarations do not form a valid graph
        """
        config, declarations, variables = self.load_declarations()
        executor = self.load_executor(config)
        registry = expand(declarations, variables)
        graph = resolve(registry)
        return Project(
            project_dir=self.project_dir,
            config=config,
            declarations=declarations,
            variables=variables,
            registry=registry,
            graph=graph,
            executor=executor,
        )


def initialize(project_dir: Path, **kwargs: Any) -> Project:
    """Convenience wrapper around ProjectInitializer.initialize()."""
    return ProjectInitializer(project_dir, **kwargs).initialize()
