"""
Reference resolution.

Walks the argument expressions of every instance, validates each module
reference against the registry and turns it into a dependency edge.
A graph that fails validation is never returned: the first bad reference
or cycle aborts resolution.
"""

from __future__ import annotations

from collections.abc import Iterator

from modtree.core.dependencies import DependencyGraph
from modtree.core.expressions import AttributeRef, Expression, Indexed, Literal, ModuleRef, children
from modtree.core.types import InstanceId, InstanceRegistry, ModuleInstance
from modtree.exceptions import ReferenceError_
from modtree.utils.logging import get_logger

logger = get_logger("modtree.resolver")


def _check_module(registry: InstanceRegistry, module: str, source: InstanceId) -> None:
    if module not in registry.declarations:
        raise ReferenceError_(f"unknown module {module}", module=module, source=source)


def _resolve_keyed(registry: InstanceRegistry, module: str, key: object, source: InstanceId) -> InstanceId:
    """Resolve ``module.<name>[key]`` (key may be None) to one instance id."""
    _check_module(registry, module, source)
    if registry.is_expanded(module):
        if key is None or key not in registry.keys_of(module):
            raise ReferenceError_(
                f"unknown instance key {key} for module {module}",
                module=module,
                key=key,
                source=source,
            )
        return InstanceId(module, key)
    if key is not None:
        raise ReferenceError_(f"module {module} has no keyed instances", module=module, key=key, source=source)
    return InstanceId(module)


def find_references(expr: Expression, registry: InstanceRegistry, source: InstanceId) -> Iterator[InstanceId]:
    """
    Yield the instance ids an expression reads, validating each reference.

    ``module.bar["x"]`` written as an index on the module collection with a
    literal key resolves to that single instance. A collection read any other
    way depends on every instance of the module.

    Raises:
        ReferenceError_: unknown module, unknown key, or key on a singleton
    """
    if isinstance(expr, AttributeRef):
        yield _resolve_keyed(registry, expr.module, expr.key, source)
        return
    if isinstance(expr, Indexed) and isinstance(expr.target, ModuleRef) and isinstance(expr.key, Literal):
        module = expr.target.module
        _check_module(registry, module, source)
        if registry.is_expanded(module):
            yield _resolve_keyed(registry, module, expr.key.value, source)
        else:
            # Indexing a singleton's outputs by attribute name
            yield InstanceId(module)
        return
    if isinstance(expr, ModuleRef):
        _check_module(registry, expr.module, source)
        for instance in registry.instances_of(expr.module):
            yield instance.id
        return
    for child in children(expr):
        yield from find_references(child, registry, source)


def instance_references(instance: ModuleInstance, registry: InstanceRegistry) -> list[InstanceId]:
    """All instances referenced by one instance's arguments, in argument order."""
    refs: list[InstanceId] = []
    for expr in instance.arguments.values():
        for ref in find_references(expr, registry, instance.id):
            if ref not in refs:
                refs.append(ref)
    return refs


def resolve(registry: InstanceRegistry) -> DependencyGraph:
    """
    Build the dependency graph over all instances.

    Args:
        registry: Instances produced by expansion

    Returns:
        Acyclic DependencyGraph bound to the registry

    Raises:
        ReferenceError_: a reference does not resolve
        CycleError: instances depend on each other in a cycle
    """
    graph = DependencyGraph(registry)
    for instance_id, instance in registry.items():
        for target in instance_references(instance, registry):
            graph.add_edge(instance_id, target)
            logger.debug(f"Dependency: {instance_id} -> {target}")

    # Raises CycleError with the ordered cycle path
    graph.topological_sort()
    logger.debug(f"Resolved {len(graph)} instance(s) with {len(graph.edges())} dependency edge(s)")
    return graph
