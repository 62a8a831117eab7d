"""
Instance expansion.

Turns each module declaration into one or more keyed instances:
for_each yields one instance per map entry, count yields instances keyed
0..n-1, and a plain declaration yields a single keyless instance.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from modtree.core.evaluator import EvaluationContext, ExpressionEvaluator
from modtree.core.expressions import MapLiteral, references_instances
from modtree.core.types import InstanceId, InstanceRegistry, ModuleDeclaration, ModuleInstance
from modtree.exceptions import DeclarationError, EvaluationError, ExpansionError
from modtree.utils.logging import get_logger

logger = get_logger("modtree.expander")

_SCALAR_KEY_TYPES = (str, int, bool)


def validate_declarations(declarations: Iterable[ModuleDeclaration]) -> dict[str, ModuleDeclaration]:
    """
    Check declaration-level invariants and index declarations by name.

    Raises:
        DeclarationError: duplicate names, or both for_each and count set
    """
    by_name: dict[str, ModuleDeclaration] = {}
    for declaration in declarations:
        if declaration.name in by_name:
            raise DeclarationError(
                f"Duplicate module declaration: {declaration.name}",
                details={"module": declaration.name},
            )
        if declaration.for_each is not None and declaration.count is not None:
            raise DeclarationError(
                f"Module '{declaration.name}' sets both for_each and count",
                details={"module": declaration.name},
            )
        if isinstance(declaration.for_each, MapLiteral):
            _check_unique_keys(declaration.name, [key for key, _ in declaration.for_each.entries])
        by_name[declaration.name] = declaration
    return by_name


def _check_unique_keys(module: str, keys: list[Any]) -> None:
    seen: set[Any] = set()
    for key in keys:
        if key in seen:
            raise DeclarationError(
                f"Duplicate for_each key {key!r} in module '{module}'",
                details={"module": module, "key": key},
            )
        seen.add(key)


def _evaluate_multiplicity(declaration: ModuleDeclaration, attribute: str, variables: Mapping[str, Any]) -> Any:
    expr = getattr(declaration, attribute)
    if references_instances(expr):
        raise ExpansionError(declaration.name, f"{attribute} must not reference module outputs")
    evaluator = ExpressionEvaluator(EvaluationContext(variables=variables))
    try:
        return evaluator.evaluate(expr)
    except EvaluationError as e:
        raise ExpansionError(declaration.name, f"{attribute} could not be evaluated: {e.message}") from e


def _for_each_entries(declaration: ModuleDeclaration, variables: Mapping[str, Any]) -> list[tuple[Any, Any]]:
    value = _evaluate_multiplicity(declaration, "for_each", variables)
    if not isinstance(value, Mapping):
        raise ExpansionError(
            declaration.name,
            f"for_each must evaluate to a mapping, got {type(value).__name__}",
        )
    for key in value:
        if not isinstance(key, _SCALAR_KEY_TYPES):
            raise ExpansionError(declaration.name, f"for_each key {key!r} is not a scalar")
    return list(value.items())


def _count_entries(declaration: ModuleDeclaration, variables: Mapping[str, Any]) -> list[tuple[Any, Any]]:
    value = _evaluate_multiplicity(declaration, "count", variables)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ExpansionError(declaration.name, f"count must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ExpansionError(declaration.name, f"count must not be negative, got {value}")
    return [(index, index) for index in range(value)]


def expand(
    declarations: Iterable[ModuleDeclaration],
    variables: Mapping[str, Any] | None = None,
) -> InstanceRegistry:
    """
    Expand declarations into a registry of module instances.

    Args:
        declarations: Ordered module declarations
        variables: Input variables available to for_each/count expressions

    Returns:
        InstanceRegistry keyed by (declaration name, key)

    Raises:
        DeclarationError: malformed declarations, checked before any expansion
        ExpansionError: for_each not a mapping, count not a non-negative integer
    """
    variables = variables or {}
    by_name = validate_declarations(declarations)
    instances: dict[InstanceId, ModuleInstance] = {}

    for declaration in by_name.values():
        if declaration.for_each is not None:
            entries = _for_each_entries(declaration, variables)
        elif declaration.count is not None:
            entries = _count_entries(declaration, variables)
        else:
            instance_id = InstanceId(declaration.name)
            instances[instance_id] = ModuleInstance(instance_id, declaration)
            continue

        for key, value in entries:
            instance_id = InstanceId(declaration.name, key)
            instances[instance_id] = ModuleInstance(instance_id, declaration, each_value=value)
        logger.debug(f"Module '{declaration.name}' expanded to {len(entries)} instance(s)")

    logger.debug(f"Expanded {len(by_name)} declaration(s) into {len(instances)} instance(s)")
    return InstanceRegistry(by_name, instances, variables)
