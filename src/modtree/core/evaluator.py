"""
Expression evaluation.

Evaluates argument, for_each and count expressions against input variables
and the outputs of instances that have already finished. The scheduler
guarantees every referenced instance is done before an expression that reads
it is evaluated; reaching an unevaluated instance is an InternalError.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from modtree.core.expressions import (
    AttributeRef,
    EachRef,
    Expression,
    FunctionCall,
    Indexed,
    Literal,
    MapLiteral,
    ModuleRef,
    VariableRef,
)
from modtree.core.types import InstanceId, InstanceRegistry, ModuleInstance
from modtree.exceptions import EvaluationError, InternalError


def _length(value: Any) -> int:
    if isinstance(value, (str, Mapping, Sequence, set, frozenset)):
        return len(value)
    raise EvaluationError("length() requires a sized value", details={"type": type(value).__name__})


#: Built-in functions: name -> (callable, arity)
BUILTIN_FUNCTIONS: dict[str, tuple[Callable[..., Any], int]] = {
    "length": (_length, 1),
}


class EvaluationContext:
    """
    Read-only view used while evaluating one expression.

    Args:
        registry: Instance registry (None during expansion, when no
            instance outputs exist yet)
        variables: Input variable values
        instance: The instance whose arguments are being evaluated, used
            for ``each.key`` / ``each.value`` / ``count.index``
    """

    def __init__(
        self,
        registry: InstanceRegistry | None = None,
        variables: Mapping[str, Any] | None = None,
        instance: ModuleInstance | None = None,
    ):
        self.registry = registry
        self.variables = variables or {}
        self.instance = instance

    def for_instance(self, instance: ModuleInstance) -> EvaluationContext:
        return EvaluationContext(self.registry, self.variables, instance)

    def outputs_of(self, instance_id: InstanceId) -> Mapping[str, Any]:
        if self.registry is None or instance_id not in self.registry:
            raise InternalError(f"Instance '{instance_id}' is not available in this context")
        outputs = self.registry[instance_id].outputs
        if outputs is None:
            raise InternalError(f"Instance '{instance_id}' read before it was evaluated")
        return outputs

    def collection_of(self, module: str) -> Any:
        if self.registry is None or module not in self.registry.declarations:
            raise InternalError(f"Module '{module}' is not available in this context")
        if not self.registry.is_expanded(module):
            return self.outputs_of(InstanceId(module))
        return {key: self.outputs_of(InstanceId(module, key)) for key in self.registry.keys_of(module)}


class ExpressionEvaluator:
    """Evaluates expression trees by dispatching on node type."""

    def __init__(self, context: EvaluationContext):
        self.context = context

    def evaluate(self, expr: Expression) -> Any:
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, MapLiteral):
            return {key: self.evaluate(value) for key, value in expr.entries}
        if isinstance(expr, VariableRef):
            return self._variable(expr)
        if isinstance(expr, EachRef):
            return self._each(expr)
        if isinstance(expr, ModuleRef):
            return self.context.collection_of(expr.module)
        if isinstance(expr, AttributeRef):
            return self._attribute(expr)
        if isinstance(expr, Indexed):
            return self._index(self.evaluate(expr.target), self.evaluate(expr.key))
        if isinstance(expr, FunctionCall):
            return self._call(expr)
        raise InternalError(f"Unsupported expression node: {type(expr).__name__}")

    def evaluate_arguments(self, arguments: Mapping[str, Expression]) -> dict[str, Any]:
        """Evaluate every argument expression of an instance."""
        return {name: self.evaluate(expr) for name, expr in arguments.items()}

    def _variable(self, expr: VariableRef) -> Any:
        if expr.name not in self.context.variables:
            raise EvaluationError(f"unknown variable {expr.name}", details={"variable": expr.name})
        return self.context.variables[expr.name]

    def _each(self, expr: EachRef) -> Any:
        instance = self.context.instance
        if instance is None or instance.id.key is None:
            raise EvaluationError(
                f"each.{expr.attribute} is only available in expanded modules",
                details={"attribute": expr.attribute},
            )
        declaration = instance.declaration
        if expr.attribute == "index":
            if declaration.count is None:
                raise EvaluationError("count.index is only available in modules using count")
            return instance.id.key
        if declaration.for_each is None:
            raise EvaluationError(f"each.{expr.attribute} is only available in modules using for_each")
        if expr.attribute == "key":
            return instance.id.key
        if expr.attribute == "value":
            return instance.each_value
        raise EvaluationError(f"unknown attribute each.{expr.attribute}")

    def _attribute(self, expr: AttributeRef) -> Any:
        instance_id = InstanceId(expr.module, expr.key)
        value: Any = self.context.outputs_of(instance_id)
        for depth, part in enumerate(expr.path):
            if not isinstance(value, Mapping) or part not in value:
                label = f"{instance_id}." + ".".join(expr.path[: depth + 1])
                raise EvaluationError(
                    f"attribute {label} is not defined",
                    details={"instance": str(instance_id), "attribute": part},
                )
            value = value[part]
        return value

    def _index(self, target: Any, key: Any) -> Any:
        if isinstance(target, Mapping):
            if key not in target:
                raise EvaluationError(f"key {key!r} not found", details={"key": key})
            return target[key]
        if isinstance(target, Sequence) and not isinstance(target, str):
            if isinstance(key, bool) or not isinstance(key, int):
                raise EvaluationError(f"sequence index must be an integer, got {key!r}")
            if not -len(target) <= key < len(target):
                raise EvaluationError(f"index {key} out of range", details={"key": key})
            return target[key]
        raise EvaluationError(f"cannot index a value of type {type(target).__name__}")

    def _call(self, expr: FunctionCall) -> Any:
        if expr.name not in BUILTIN_FUNCTIONS:
            raise EvaluationError(f"unknown function {expr.name}", details={"function": expr.name})
        func, arity = BUILTIN_FUNCTIONS[expr.name]
        if len(expr.args) != arity:
            raise EvaluationError(
                f"{expr.name}() takes {arity} argument(s), got {len(expr.args)}",
                details={"function": expr.name},
            )
        return func(*(self.evaluate(arg) for arg in expr.args))


def evaluate(expr: Expression, context: EvaluationContext | None = None) -> Any:
    """Evaluate a single expression."""
    return ExpressionEvaluator(context or EvaluationContext()).evaluate(expr)
