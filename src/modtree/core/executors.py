"""
Module executors.

A module executor computes an instance's outputs from its resolved
arguments. The engine treats it as opaque: it only requires a mapping of
output attribute names back. Executors may be synchronous (run on the
scheduler's thread pool) or ``async def`` (awaited on the event loop).
"""

from __future__ import annotations

import functools
import importlib
import inspect
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from modtree.core.types import InstanceId
from modtree.exceptions import ConfigurationError, EvaluationError
from modtree.utils.logging import get_logger

logger = get_logger("modtree.executors")

ModuleFunction = Callable[..., Mapping[str, Any] | Awaitable[Mapping[str, Any]]]


class ModuleExecutor(ABC):
    """Base class for module executors."""

    @abstractmethod
    def execute(self, instance_id: InstanceId, source: str, arguments: dict[str, Any]) -> Any:
        """
        Compute outputs for one instance.

        Args:
            instance_id: Identity of the instance being evaluated
            source: The declaration's source locator
            arguments: Fully evaluated argument values

        Returns:
            Mapping of output attribute name -> value (or an awaitable of one)
        """

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.execute)


class FunctionExecutor(ModuleExecutor):
    """Adapts a plain ``func(instance_id, source, arguments)`` callable."""

    def __init__(self, func: Callable[[InstanceId, str, dict[str, Any]], Any]):
        self.func = func

    def execute(self, instance_id: InstanceId, source: str, arguments: dict[str, Any]) -> Any:
        return self.func(instance_id, source, arguments)

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.func)


class SourceRegistry(ModuleExecutor):
    """
    Executor dispatching on the source locator.

    Each source maps to a function called with the instance's arguments as
    keyword arguments::

        registry = SourceRegistry()

        @registry.source("./bar")
        def bar(value):
            return {"digest": f"d{value}"}
    """

    def __init__(self, functions: Mapping[str, ModuleFunction] | None = None):
        self._functions: dict[str, ModuleFunction] = dict(functions or {})

    def register(self, source: str, func: ModuleFunction) -> None:
        if source in self._functions:
            logger.warning(f"Replacing executor registered for source '{source}'")
        self._functions[source] = func

    def source(self, source: str) -> Callable[[ModuleFunction], ModuleFunction]:
        """Decorator registering a function for ``source``."""

        def decorator(func: ModuleFunction) -> ModuleFunction:
            self.register(source, func)
            return func

        return decorator

    def __contains__(self, source: object) -> bool:
        return source in self._functions

    @property
    def sources(self) -> list[str]:
        return sorted(self._functions)

    def execute(self, instance_id: InstanceId, source: str, arguments: dict[str, Any]) -> Any:
        func = self._functions.get(source)
        if func is None:
            raise EvaluationError(f"no executor registered for source {source}", details={"source": source})
        start_time = time.time()
        result = func(**arguments)
        logger.debug(f"Source '{source}' executed for '{instance_id}' in {time.time() - start_time:.3f}s")
        return result


# Default registry used by the @module_source decorator
default_registry = SourceRegistry()


def module_source(source: str, registry: SourceRegistry | None = None) -> Callable[[ModuleFunction], ModuleFunction]:
    """
    Register a function as the implementation of a module source.

    Examples:
        @module_source("./bar")
        def bar(value):
            return {"digest": compute(value)}
    """
    target = registry if registry is not None else default_registry

    def decorator(func: ModuleFunction) -> ModuleFunction:
        target.register(source, func)
        return func

    return decorator


@functools.lru_cache(maxsize=None)
def load_callable(path: str) -> ModuleFunction:
    """
    Import ``package.module:function``.

    Raises:
        ConfigurationError: if the path is malformed or cannot be imported
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(
            f"Invalid executor path '{path}'\n" f"  Suggestion: use the form 'package.module:function'"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import executor module '{module_name}': {e}") from e
    func = getattr(module, attr, None)
    if not callable(func):
        raise ConfigurationError(f"Executor '{path}' is not a callable")
    return func


def registry_from_config(executors: Mapping[str, str], base: SourceRegistry | None = None) -> SourceRegistry:
    """Build a SourceRegistry from a ``source -> 'pkg.module:function'`` mapping."""
    registry = SourceRegistry(base._functions if base is not None else None)
    for source, path in executors.items():
        registry.register(source, load_callable(path))
    return registry
