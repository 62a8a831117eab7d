"""
Configuration and declaration file loading.

A project directory holds an optional ``modtree.yaml`` (engine settings)
and a declarations file (``modules.yaml`` by default) listing module blocks.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from modtree.config.resolver import resolve_config
from modtree.core.parser import from_value
from modtree.core.types import ModuleDeclaration
from modtree.exceptions import ConfigurationError, DeclarationError, ModtreeError
from modtree.utils.logging import get_logger

logger = get_logger("modtree.config")

CONFIG_FILE = "modtree.yaml"
DEFAULT_DECLARATIONS_FILE = "modules.yaml"

# Keys of a module block that are not module arguments
_RESERVED_KEYS = {"type", "name", "source", "for_each", "count", "arguments"}


class Config:
    """Modtree configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any], project_dir: Path | None = None):
        self.data = data
        self.project_dir = project_dir

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value: Any = self.data
        for k in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(k)
            if value is None:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        if key in self.data:
            return self.data[key]
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    @property
    def parallelism(self) -> int | None:
        return self.get("parallelism")

    @property
    def timeout(self) -> float | None:
        return self.get("timeout")

    @property
    def declarations_file(self) -> Path:
        path = Path(self.get("declarations", DEFAULT_DECLARATIONS_FILE))
        if not path.is_absolute() and self.project_dir is not None:
            path = self.project_dir / path
        return path

    @property
    def variables(self) -> dict[str, Any]:
        return dict(self.get("variables", {}))

    @property
    def var_files(self) -> list[Path]:
        files = [Path(p) for p in self.get("var_files", [])]
        if self.project_dir is not None:
            files = [p if p.is_absolute() else self.project_dir / p for p in files]
        return files

    @property
    def executors(self) -> dict[str, str]:
        return dict(self.get("executors", {}))

    def validate(self) -> None:
        """Validate configuration structure and content."""
        errors = []

        parallelism = self.data.get("parallelism")
        if parallelism is not None and (
            isinstance(parallelism, bool) or not isinstance(parallelism, int) or parallelism < 1
        ):
            errors.append(f"'parallelism' must be a positive integer, got {parallelism!r}")

        timeout = self.data.get("timeout")
        if timeout is not None and (
            isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0
        ):
            errors.append(f"'timeout' must be a positive number of seconds, got {timeout!r}")

        for section in ("variables", "executors", "logging"):
            value = self.data.get(section)
            if value is not None and not isinstance(value, dict):
                errors.append(f"'{section}' must be a mapping, got {type(value).__name__}")

        var_files = self.data.get("var_files")
        if var_files is not None and not isinstance(var_files, list):
            errors.append(f"'var_files' must be a list, got {type(var_files).__name__}")

        if errors:
            raise ConfigurationError("Invalid configuration:\n  " + "\n  ".join(errors))


class DuplicateKeyError(yaml.constructor.ConstructorError):
    """A YAML mapping repeats a key."""

    def __init__(self, key: Any, first_mark: yaml.Mark, mark: yaml.Mark):
        super().__init__("while constructing a mapping", first_mark, f"found duplicate key {key!r}", mark)
        self.key = key


class UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that rejects a key repeated within one mapping."""

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        if isinstance(node, yaml.MappingNode):
            seen: dict[Any, yaml.Node] = {}
            for key_node, _ in node.value:
                # Keys pulled in through "<<" may be overridden
                if key_node.tag == "tag:yaml.org,2002:merge":
                    continue
                key = self.construct_object(key_node, deep=deep)
                try:
                    first = seen.get(key)
                except TypeError:
                    continue
                if first is not None:
                    raise DuplicateKeyError(key, first.start_mark, key_node.start_mark)
                seen[key] = key_node
        return super().construct_mapping(node, deep=deep)


def _read_yaml(path: Path, duplicate_error: type[ModtreeError] = ConfigurationError) -> Any:
    """
    Read a YAML (or JSON) file with readable parse errors.

    A key repeated within one mapping raises ``duplicate_error``.
    """
    if not path.is_file():
        raise ConfigurationError(f"File not found: {path}")
    try:
        with open(path) as f:
            return yaml.load(f, Loader=UniqueKeyLoader)
    except DuplicateKeyError as e:
        mark = e.problem_mark
        raise duplicate_error(
            f"Duplicate key {e.key!r} in {path.name} at line {mark.line + 1}, column {mark.column + 1}",
            details={"key": e.key, "file": str(path), "line": mark.line + 1, "column": mark.column + 1},
        ) from e
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            raise ConfigurationError(
                f"Error parsing {path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                f"  {e}\n"
                f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes"
            ) from e
        raise ConfigurationError(f"Error parsing {path}: {e}") from e


def load_config(project_dir: Path | None = None, env: str | None = None) -> Config:
    """
    Load modtree configuration.

    Loads ``modtree.yaml`` and, when ``env`` is given, merges
    ``modtree.{env}.yaml`` over it. A missing base file yields an empty
    configuration.
    """
    if project_dir is None:
        project_dir = Path.cwd()

    base_path = project_dir / CONFIG_FILE
    config_data: dict[str, Any] = {}
    if base_path.exists():
        config_data = _read_yaml(base_path) or {}
        if not isinstance(config_data, dict):
            raise ConfigurationError(
                f"Configuration must be a mapping, got {type(config_data).__name__}\n  File: {base_path}"
            )
    else:
        logger.debug(f"No {CONFIG_FILE} in {project_dir}, using defaults")

    if env:
        env_path = project_dir / f"modtree.{env}.yaml"
        if env_path.exists():
            _merge_dict(config_data, _read_yaml(env_path) or {})

    config = Config(resolve_config(config_data, env or "dev"), project_dir=project_dir)
    config.validate()
    return config


def _merge_dict(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value


def _declaration_from_block(name: str, block: dict[str, Any], origin: str) -> ModuleDeclaration:
    if "source" not in block:
        raise ConfigurationError(f"Module '{name}' in {origin} has no source")
    arguments = dict(block.get("arguments") or {})
    # Terraform-style blocks put arguments next to source
    for key, value in block.items():
        if key not in _RESERVED_KEYS:
            if key in arguments:
                raise DeclarationError(f"Argument '{key}' of module '{name}' is set twice")
            arguments[key] = value
    return ModuleDeclaration(
        name=name,
        source=str(block["source"]),
        for_each=from_value(block["for_each"]) if block.get("for_each") is not None else None,
        count=from_value(block["count"]) if block.get("count") is not None else None,
        arguments={k: from_value(v) for k, v in arguments.items()},
    )


def parse_declarations(document: Any, origin: str = "<document>") -> tuple[list[ModuleDeclaration], dict[str, Any]]:
    """
    Build declarations from a loaded document.

    Two layouts are accepted::

        # block list
        blocks:
          - {type: module, name: bar, source: ./bar, for_each: {x: 2}}
          - {type: variable, name: region, default: eu}

        # keyed by block type
        module:
          bar: {source: ./bar, for_each: {x: 2}}
        variable:
          region: {default: eu}

    Returns:
        The module declarations in document order, and variable defaults
    """
    if not isinstance(document, dict):
        raise ConfigurationError(f"Declarations in {origin} must be a mapping")

    declarations: list[ModuleDeclaration] = []
    defaults: dict[str, Any] = {}

    for block in _section(document, "blocks", list, origin):
        if not isinstance(block, dict) or "name" not in block:
            raise ConfigurationError(f"Every block in {origin} needs a name")
        block_type = block.get("type", "module")
        if block_type == "module":
            _add_declaration(declarations, block["name"], block, origin)
        elif block_type == "variable":
            if "default" in block:
                defaults[block["name"]] = block["default"]
        else:
            raise ConfigurationError(f"Unsupported block type '{block_type}' in {origin}")

    for name, block in _section(document, "module", dict, origin).items():
        if block is None:
            block = {}
        if not isinstance(block, dict):
            raise ConfigurationError(f"Module '{name}' in {origin} must be a mapping, got {type(block).__name__}")
        _add_declaration(declarations, name, block, origin)

    for name, block in _section(document, "variable", dict, origin).items():
        if isinstance(block, dict) and "default" in block:
            defaults[name] = block["default"]

    return declarations, defaults


def _section(document: dict[str, Any], key: str, kind: type, origin: str) -> Any:
    value = document.get(key) or kind()
    if not isinstance(value, kind):
        raise ConfigurationError(f"'{key}' in {origin} must be a {kind.__name__}, got {type(value).__name__}")
    return value


def _add_declaration(declarations: list[ModuleDeclaration], name: str, block: dict[str, Any], origin: str) -> None:
    if any(d.name == name for d in declarations):
        raise DeclarationError(f"Duplicate module declaration: {name}", details={"module": name})
    declarations.append(_declaration_from_block(name, block, origin))


def load_declarations(path: Path) -> tuple[list[ModuleDeclaration], dict[str, Any]]:
    """Load module declarations and variable defaults from a YAML/JSON file."""
    declarations, defaults = parse_declarations(_read_yaml(path, DeclarationError) or {}, origin=str(path))
    logger.debug(f"Loaded {len(declarations)} module declaration(s) from {path}")
    return declarations, defaults


def parse_var_assignment(text: str) -> tuple[str, Any]:
    """
    Parse a ``name=value`` command line assignment.

    The value is read as YAML so ``count=3`` gives an integer and
    ``tags={a: 1}`` a mapping.
    """
    name, sep, raw = text.partition("=")
    name = name.strip()
    if not sep or not name:
        raise ConfigurationError(f"Invalid variable assignment '{text}', expected name=value")
    try:
        value = yaml.safe_load(raw) if raw.strip() else ""
    except yaml.YAMLError:
        value = raw
    return name, value


def load_var_file(path: Path) -> dict[str, Any]:
    """Load a YAML/JSON file of variable values."""
    values = _read_yaml(path) or {}
    if not isinstance(values, dict):
        raise ConfigurationError(f"Variable file {path} must contain a mapping")
    return values


def collect_variables(
    defaults: dict[str, Any],
    config: Config | None = None,
    var_files: list[Path] | None = None,
    assignments: list[str] | None = None,
) -> dict[str, Any]:
    """
    Merge variable values; later sources win.

    Precedence: declaration defaults, config ``variables``, config
    ``var_files``, extra var files, ``name=value`` assignments.
    """
    variables = dict(defaults)
    if config is not None:
        variables.update(config.variables)
        for path in config.var_files:
            variables.update(load_var_file(path))
    for path in var_files or []:
        variables.update(load_var_file(path))
    for assignment in assignments or []:
        name, value = parse_var_assignment(assignment)
        variables[name] = value
    return variables
