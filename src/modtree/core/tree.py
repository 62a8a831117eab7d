"""
Module tree rendering.

Prints the module structure of a project: one node per declaration with
its multiplicity and source, e.g. ``bar{x y z} (./bar)`` or ``web[3] (./web)``.
"""

from __future__ import annotations

from pathlib import Path

from rich.text import Text
from rich.tree import Tree

from modtree.core.types import InstanceRegistry, ModuleDeclaration


def _display_source(source: str, base_dir: Path | None) -> str:
    # Local sources are shown resolved against the project directory
    if base_dir is not None and source.startswith(("./", "../")):
        return str((base_dir / source).resolve())
    return source


def format_declaration(
    declaration: ModuleDeclaration, registry: InstanceRegistry, base_dir: Path | None = None
) -> str:
    """Render one declaration as ``name[count]`` / ``name{keys}`` plus its source."""
    label = declaration.name
    keys = registry.keys_of(declaration.name)
    if declaration.count is not None:
        label += f"[{len(keys)}]"
    elif declaration.for_each is not None:
        label += "{" + " ".join(str(k) for k in keys) + "}"
    return f"{label} ({_display_source(declaration.source, base_dir)})"


def build_tree(
    registry: InstanceRegistry,
    root_label: str = "*",
    base_dir: Path | None = None,
    show_instances: bool = False,
) -> Tree:
    """
    Build a rich Tree of the declarations in a registry.

    Args:
        registry: Expanded instances
        root_label: Label of the root node (the project itself)
        base_dir: Project directory used to resolve local sources
        show_instances: Add one leaf per instance under expanded modules
    """
    root_text = root_label if base_dir is None else f"{root_label} ({base_dir.resolve()})"
    tree = Tree(Text(root_text))
    for declaration in registry.declarations.values():
        node = tree.add(Text(format_declaration(declaration, registry, base_dir)))
        if show_instances and declaration.is_expanded:
            for instance in registry.instances_of(declaration.name):
                node.add(Text(str(instance.id)))
    return tree
