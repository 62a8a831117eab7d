"""
Modtree exception hierarchy.

All domain-specific exceptions inherit from ModtreeError, making it easy
to catch any framework error with a single base class while still allowing
fine-grained handling when needed.

Hierarchy::

    ModtreeError
    ├── ConfigurationError        - config loading, parsing, validation
    ├── DeclarationError          - duplicate names/keys, conflicting multiplicity
    │   └── ExpressionSyntaxError - expression text cannot be parsed
    ├── ExpansionError            - for_each/count did not yield a usable value
    ├── ReferenceError_           - unknown module, unknown key, key on a singleton
    ├── CycleError                - dependency cycle between instances
    ├── EvaluationError           - expression or module execution failures
    │   ├── InstanceEvaluationError - a single instance failed
    │   ├── UpstreamFailedError     - skipped because a dependency failed
    │   └── EvaluationTimeoutError  - instance exceeded its timeout
    └── InternalError             - scheduling precondition violated

Structural errors (declaration, expansion, reference, cycle) abort a run
before evaluation starts. Evaluation errors are scoped to one instance and
its dependents.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from modtree.core.types import InstanceId


class ModtreeError(Exception):
    """Base exception for all modtree errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(ModtreeError):
    """Raised when configuration or declaration files cannot be loaded."""


# --- Structural --------------------------------------------------------------


class DeclarationError(ModtreeError):
    """Raised when declarations are malformed (duplicate names or keys)."""


class ExpressionSyntaxError(DeclarationError):
    """Raised when expression text cannot be parsed."""

    def __init__(self, message: str, *, text: str, position: int) -> None:
        super().__init__(
            f"{message} at position {position} in {text!r}",
            details={"text": text, "position": position},
        )
        self.text = text
        self.position = position


class ExpansionError(ModtreeError):
    """Raised when a for_each or count expression cannot drive expansion."""

    def __init__(self, module: str, message: str) -> None:
        super().__init__(f"Module '{module}': {message}", details={"module": module})
        self.module = module


class ReferenceError_(ModtreeError):
    """Raised when an attribute reference does not resolve to an instance.

    Named with trailing underscore to avoid shadowing the builtin
    ``ReferenceError``; the public alias ``ModuleReferenceError``
    is preferred for external use.
    """

    def __init__(self, message: str, *, module: str, key: Any = None, source: InstanceId | None = None) -> None:
        details = {"module": module, "key": key}
        if source is not None:
            details["source"] = str(source)
        super().__init__(message, details=details)
        self.module = module
        self.key = key
        self.source = source


# Public alias so callers don't need the underscore
ModuleReferenceError = ReferenceError_


class CycleError(ModtreeError):
    """Raised when the instance dependency graph contains a cycle.

    ``cycle`` is the ordered path of instance ids, with the first
    instance repeated at the end (``[a, b, a]``).
    """

    def __init__(self, cycle: list[InstanceId]) -> None:
        path = " -> ".join(str(i) for i in cycle)
        super().__init__(f"Dependency cycle detected: {path}", details={"cycle": [str(i) for i in cycle]})
        self.cycle = list(cycle)


# --- Evaluation --------------------------------------------------------------


class EvaluationError(ModtreeError):
    """Raised when an expression or a module execution fails."""


class InstanceEvaluationError(EvaluationError):
    """Raised when a single instance fails during evaluation."""

    def __init__(self, instance: InstanceId, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(f"Instance '{instance}' failed: {message}", details={"instance": str(instance)})
        self.instance = instance
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class UpstreamFailedError(EvaluationError):
    """Recorded for instances never started because a dependency failed."""

    def __init__(self, instance: InstanceId, upstream: InstanceId) -> None:
        super().__init__(
            f"Instance '{instance}' skipped: dependency '{upstream}' failed",
            details={"instance": str(instance), "upstream": str(upstream)},
        )
        self.instance = instance
        self.upstream = upstream


class EvaluationTimeoutError(EvaluationError):
    """Raised when an instance does not finish within its timeout."""

    def __init__(self, instance: InstanceId, timeout: float) -> None:
        super().__init__(
            f"Instance '{instance}' timed out after {timeout}s",
            details={"instance": str(instance), "timeout": timeout},
        )
        self.instance = instance
        self.timeout = timeout


# --- Internal ----------------------------------------------------------------


class InternalError(ModtreeError):
    """Raised when an engine invariant is violated (a bug, not user error)."""
