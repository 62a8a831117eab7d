"""
Type definitions for modtree.

Declarations are immutable once loaded. Instances are created once during
expansion; the only field written afterwards is ``outputs``, exactly once.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from modtree.core.expressions import Expression
from modtree.exceptions import InternalError

#: Keys allowed in a for_each map (count keys are ints)
InstanceKey = str | int | bool

#: Outputs returned by a module executor
Outputs = Mapping[str, Any]


@dataclass(frozen=True, eq=False)
class ModuleDeclaration:
    """Static definition of a module, possibly with multiplicity. Compared by identity."""

    name: str
    source: str
    for_each: Expression | None = None
    count: Expression | None = None
    arguments: Mapping[str, Expression] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the argument mapping so the declaration stays immutable
        object.__setattr__(self, "arguments", MappingProxyType(dict(self.arguments)))

    @property
    def is_expanded(self) -> bool:
        return self.for_each is not None or self.count is not None


@dataclass(frozen=True)
class InstanceId:
    """Identity of one instance: declaration name plus optional key."""

    module: str
    key: InstanceKey | None = None

    def __str__(self) -> str:
        if self.key is None:
            return self.module
        if isinstance(self.key, str):
            return f'{self.module}["{self.key}"]'
        return f"{self.module}[{self.key}]"

    def sort_key(self) -> tuple[str, int, str]:
        """Stable ordering across mixed key types."""
        if self.key is None:
            return (self.module, 0, "")
        if isinstance(self.key, int):
            return (self.module, 1, f"{self.key:020d}")
        return (self.module, 2, str(self.key))


class ModuleInstance:
    """One concrete occurrence of a declaration after expansion."""

    __slots__ = ("id", "declaration", "each_value", "_outputs")

    def __init__(self, id: InstanceId, declaration: ModuleDeclaration, each_value: Any = None):
        self.id = id
        self.declaration = declaration
        self.each_value = each_value
        self._outputs: Outputs | None = None

    @property
    def arguments(self) -> Mapping[str, Expression]:
        return self.declaration.arguments

    @property
    def source(self) -> str:
        return self.declaration.source

    @property
    def outputs(self) -> Outputs | None:
        return self._outputs

    @property
    def is_evaluated(self) -> bool:
        return self._outputs is not None

    def set_outputs(self, outputs: Mapping[str, Any]) -> None:
        """Record outputs. Raises InternalError on a second write."""
        if self._outputs is not None:
            raise InternalError(f"Outputs of instance '{self.id}' already recorded")
        self._outputs = MappingProxyType(dict(outputs))

    def __repr__(self) -> str:
        return f"ModuleInstance({self.id}, source={self.source!r})"


@dataclass(frozen=True)
class DependencyEdge:
    """``source`` reads an output of ``target``."""

    source: InstanceId
    target: InstanceId


class InstanceRegistry(Mapping[InstanceId, ModuleInstance]):
    """
    Read-only registry of every instance produced by expansion.

    Passed explicitly through resolver and scheduler calls; there is no
    process-wide registry.
    """

    def __init__(
        self,
        declarations: Mapping[str, ModuleDeclaration],
        instances: Mapping[InstanceId, ModuleInstance],
        variables: Mapping[str, Any] | None = None,
    ):
        self._declarations = MappingProxyType(dict(declarations))
        self._instances = MappingProxyType(dict(instances))
        self._variables = MappingProxyType(dict(variables or {}))
        keys: dict[str, list[InstanceKey]] = {name: [] for name in declarations}
        for instance_id in instances:
            if instance_id.key is not None:
                keys[instance_id.module].append(instance_id.key)
        self._keys = MappingProxyType({name: tuple(k) for name, k in keys.items()})

    def __getitem__(self, instance_id: InstanceId) -> ModuleInstance:
        return self._instances[instance_id]

    def __iter__(self) -> Iterator[InstanceId]:
        return iter(self._instances)

    def __len__(self) -> int:
        return len(self._instances)

    @property
    def variables(self) -> Mapping[str, Any]:
        return self._variables

    @property
    def declarations(self) -> Mapping[str, ModuleDeclaration]:
        return self._declarations

    def is_expanded(self, module: str) -> bool:
        return self._declarations[module].is_expanded

    def keys_of(self, module: str) -> tuple[InstanceKey, ...]:
        """Instance keys of an expanded module, in expansion order."""
        return self._keys.get(module, ())

    def instances_of(self, module: str) -> list[ModuleInstance]:
        """All instances of a module, in expansion order."""
        if not self.is_expanded(module):
            return [self._instances[InstanceId(module)]]
        return [self._instances[InstanceId(module, key)] for key in self.keys_of(module)]
