"""
Programmatic API for modtree.

    registry = expand(declarations)
    graph = resolve(registry)
    report = evaluate(graph, executor)     # or: await evaluate(...)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from modtree.core.dependencies import DependencyGraph
from modtree.core.executors import ModuleExecutor
from modtree.core.expander import expand
from modtree.core.resolver import resolve
from modtree.core.scheduler import EvaluationReport, Scheduler
from modtree.core.types import ModuleDeclaration
from modtree.utils.async_utils import dual
from modtree.utils.logging import get_logger

logger = get_logger("modtree.api")

__all__ = ["expand", "resolve", "evaluate", "run"]


@dual
async def evaluate(
    graph: DependencyGraph,
    executor: ModuleExecutor | Callable[..., Any],
    *,
    parallelism: int | None = None,
    timeout: float | None = None,
) -> EvaluationReport:
    """
    Evaluate a resolved graph, automatically works in both sync and async contexts.

    Args:
        graph: Graph returned by resolve()
        executor: Module executor, or a ``func(instance_id, source, arguments)``
        parallelism: Maximum instances in flight (default: 10)
        timeout: Optional per-instance timeout in seconds

    Returns:
        EvaluationReport with outputs for done instances and every failure

    Raises:
        CycleError: if the graph has a cycle
    """
    scheduler = Scheduler(executor, parallelism=parallelism, timeout=timeout)
    return await scheduler.evaluate(graph)


@dual
async def run(
    declarations: Iterable[ModuleDeclaration],
    executor: ModuleExecutor | Callable[..., Any],
    *,
    variables: Mapping[str, Any] | None = None,
    parallelism: int | None = None,
    timeout: float | None = None,
) -> EvaluationReport:
    """
    Expand, resolve and evaluate declarations in one call.

    Structural errors (DeclarationError, ExpansionError, ReferenceError_,
    CycleError) are raised before anything executes; evaluation failures
    are reported in the returned EvaluationReport.

    Examples:
        report = run(declarations, registry)         # blocks
        report = await run(declarations, registry)   # inside a coroutine
    """
    registry = expand(declarations, variables)
    graph = resolve(registry)
    logger.debug(f"Running {len(registry)} instance(s) from {len(registry.declarations)} declaration(s)")
    scheduler = Scheduler(executor, parallelism=parallelism, timeout=timeout)
    return await scheduler.evaluate(graph)
