"""
Expression tree for module arguments.

Expressions are immutable trees. They carry structure only: evaluation
lives in ``modtree.core.evaluator`` and reference discovery in
``modtree.core.resolver``, both dispatching on the node type.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Literal:
    """A constant string, integer, boolean or composite value."""

    value: Any


@dataclass(frozen=True)
class MapLiteral:
    """
    An inline mapping whose values are themselves expressions.

    Entries are kept as a tuple of pairs so the node stays hashable and
    keeps declaration order.
    """

    entries: tuple[tuple[Any, "Expression"], ...]


@dataclass(frozen=True)
class VariableRef:
    """An input variable, ``var.<name>``."""

    name: str


@dataclass(frozen=True)
class EachRef:
    """
    The current instance's own key or value: ``each.key``, ``each.value``
    or ``count.index``.
    """

    attribute: str


@dataclass(frozen=True)
class ModuleRef:
    """
    All instances of a module, ``module.<name>``.

    Evaluates to a mapping of key -> outputs for expanded modules, or the
    outputs themselves for a singleton.
    """

    module: str


@dataclass(frozen=True)
class AttributeRef:
    """
    An output attribute of one instance.

    Examples:
        module.foo.length           -> AttributeRef("foo", None, ("length",))
        module.bar["x"].digest      -> AttributeRef("bar", "x", ("digest",))
    """

    module: str
    key: Any
    path: tuple[str, ...]


@dataclass(frozen=True)
class Indexed:
    """``target[key]`` lookup into a mapping, sequence or instance collection."""

    target: "Expression"
    key: "Expression"


@dataclass(frozen=True)
class FunctionCall:
    """Application of a built-in function, e.g. ``length(x)``."""

    name: str
    args: tuple["Expression", ...]


Expression = Union[Literal, MapLiteral, VariableRef, EachRef, ModuleRef, AttributeRef, Indexed, FunctionCall]


def children(expr: Expression) -> Iterator[Expression]:
    """Yield the direct sub-expressions of a node."""
    if isinstance(expr, Indexed):
        yield expr.target
        yield expr.key
    elif isinstance(expr, FunctionCall):
        yield from expr.args
    elif isinstance(expr, MapLiteral):
        for _, value in expr.entries:
            yield value


def walk(expr: Expression) -> Iterator[Expression]:
    """Depth-first pre-order traversal of an expression tree."""
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(list(children(node))))


def references_instances(expr: Expression) -> bool:
    """Whether the expression reads any module outputs."""
    return any(isinstance(node, (AttributeRef, ModuleRef)) for node in walk(expr))


def to_source(expr: Expression) -> str:
    """Render an expression back to its surface syntax."""
    if isinstance(expr, Literal):
        return _literal_source(expr.value)
    if isinstance(expr, MapLiteral):
        inner = ", ".join(f"{_literal_source(k)} = {to_source(v)}" for k, v in expr.entries)
        return "{" + inner + "}"
    if isinstance(expr, VariableRef):
        return f"var.{expr.name}"
    if isinstance(expr, EachRef):
        return "count.index" if expr.attribute == "index" else f"each.{expr.attribute}"
    if isinstance(expr, ModuleRef):
        return f"module.{expr.module}"
    if isinstance(expr, AttributeRef):
        text = f"module.{expr.module}"
        if expr.key is not None:
            text += f"[{_literal_source(expr.key)}]"
        return text + "".join(f".{part}" for part in expr.path)
    if isinstance(expr, Indexed):
        return f"{to_source(expr.target)}[{to_source(expr.key)}]"
    if isinstance(expr, FunctionCall):
        return f"{expr.name}({', '.join(to_source(a) for a in expr.args)})"
    raise TypeError(f"Not an expression: {expr!r}")


def _literal_source(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        inner = ", ".join(f"{_literal_source(k)} = {_literal_source(v)}" for k, v in value.items())
        return "{" + inner + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_literal_source(v) for v in value) + "]"
    return str(value)
