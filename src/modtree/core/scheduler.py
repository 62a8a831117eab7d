"""
Graph scheduling and evaluation.

Evaluates instances as soon as everything they depend on is done, with a
bounded number of instances in flight. The coordinator loop is the only
writer of instance state and outputs; workers only compute.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import time
from collections import deque
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from modtree.core.dependencies import DependencyGraph
from modtree.core.evaluator import EvaluationContext, ExpressionEvaluator
from modtree.core.executors import FunctionExecutor, ModuleExecutor
from modtree.core.flow import InstanceState, InstanceTask, Run
from modtree.core.types import InstanceId, InstanceRegistry, ModuleInstance
from modtree.exceptions import (
    ConfigurationError,
    EvaluationError,
    EvaluationTimeoutError,
    InstanceEvaluationError,
    InternalError,
    UpstreamFailedError,
)
from modtree.utils.logging import get_logger

logger = get_logger("modtree.scheduler")


@dataclass
class EvaluationReport:
    """Outcome of evaluating an instance graph."""

    outputs: dict[InstanceId, Mapping[str, Any]] = field(default_factory=dict)
    failures: dict[InstanceId, EvaluationError] = field(default_factory=dict)
    states: dict[InstanceId, InstanceState] = field(default_factory=dict)
    run: Run | None = None

    @property
    def success(self) -> bool:
        """True only if every instance is done."""
        return all(state == InstanceState.DONE for state in self.states.values())

    @property
    def root_failures(self) -> dict[InstanceId, EvaluationError]:
        """Failures that originated in the instance itself rather than upstream."""
        return {i: e for i, e in self.failures.items() if not isinstance(e, UpstreamFailedError)}

    def outputs_of(self, module: str) -> dict[Any, Mapping[str, Any]]:
        """Outputs of every done instance of a module, keyed by instance key."""
        return {i.key: o for i, o in self.outputs.items() if i.module == module}

    def raise_for_failures(self) -> None:
        """Raise an EvaluationError enumerating every failed instance."""
        if not self.failures:
            return
        lines = [f"  {instance}: {error}" for instance, error in self.failures.items()]
        raise EvaluationError(
            f"{len(self.failures)} instance(s) failed:\n" + "\n".join(lines),
            details={"failures": {str(i): str(e) for i, e in self.failures.items()}},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "outputs": {str(i): dict(o) for i, o in self.outputs.items()},
            "failures": {str(i): str(e) for i, e in self.failures.items()},
            "states": {str(i): s.value for i, s in self.states.items()},
            "summary": self.run.get_summary() if self.run else None,
        }


class _WorkerPool:
    """
    Thread pool for synchronous executors.

    The timeout clock starts when a worker picks the job up. A job that
    outlives its timeout keeps its thread until it returns, and counts as
    ``abandoned`` against the parallelism bound until then.
    """

    def __init__(self, max_workers: int):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="modtree")
        self.abandoned = 0
        self.released = asyncio.Event()

    async def run(self, func: Callable[[], Any], timeout: float | None = None) -> Any:
        """
        Run ``func`` on a worker thread.

        Raises:
            asyncio.TimeoutError: if ``func`` runs longer than ``timeout``
        """
        loop = asyncio.get_running_loop()
        started = loop.create_future()

        def job() -> Any:
            _call_threadsafe(loop, _resolve, started)
            return func()

        future = self._pool.submit(job)
        result = asyncio.wrap_future(future, loop=loop)
        if timeout is None:
            return await result
        await started
        try:
            return await asyncio.wait_for(result, timeout=timeout)
        except asyncio.TimeoutError:
            if not future.done():
                self.abandoned += 1
                future.add_done_callback(lambda _: _call_threadsafe(loop, self._release))
            raise

    def _release(self) -> None:
        self.abandoned -= 1
        self.released.set()

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)


def _resolve(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)


def _call_threadsafe(loop: asyncio.AbstractEventLoop, callback: Callable[..., Any], *args: Any) -> None:
    # Abandoned jobs may finish after the evaluation's loop has closed
    if not loop.is_closed():
        loop.call_soon_threadsafe(callback, *args)


class Scheduler:
    """
    Evaluates a resolved dependency graph with bounded parallelism.

    Synchronous executors run on a thread pool of ``parallelism`` workers;
    async executors are awaited on the event loop. At most ``parallelism``
    instances are in flight at any time.

    Failure policy: a failed instance fails every instance that depends on
    it, transitively, without executing them. Instances with no path to
    the failure still run, and in-flight work is never cancelled.

    Attributes:
        executor: Module executor computing instance outputs
        parallelism: Maximum number of instances evaluated concurrently
        timeout: Optional per-instance timeout in seconds
    """

    DEFAULT_PARALLELISM = 10

    def __init__(
        self,
        executor: ModuleExecutor | Callable[..., Any],
        parallelism: int | None = None,
        timeout: float | None = None,
    ):
        if not isinstance(executor, ModuleExecutor):
            if not callable(executor):
                raise ConfigurationError(f"Module executor must be callable, got {type(executor).__name__}")
            executor = FunctionExecutor(executor)
        self.executor = executor
        self.parallelism = self._determine_parallelism(parallelism)
        if timeout is not None and timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {timeout}")
        self.timeout = timeout

    @classmethod
    def _determine_parallelism(cls, parallelism: int | None) -> int:
        if parallelism is None:
            return cls.DEFAULT_PARALLELISM
        if isinstance(parallelism, bool) or not isinstance(parallelism, int) or parallelism < 1:
            raise ConfigurationError(f"parallelism must be a positive integer, got {parallelism!r}")
        return parallelism

    async def evaluate(self, graph: DependencyGraph) -> EvaluationReport:
        """
        Evaluate every instance of the graph in dependency order.

        Raises:
            CycleError: if the graph has a cycle (nothing is executed)
            InternalError: if an engine invariant is violated
        """
        registry = graph.registry
        if registry is None:
            raise InternalError("Dependency graph is not bound to an instance registry")

        evaluated = [str(i) for i, instance in registry.items() if instance.is_evaluated]
        if evaluated:
            raise InternalError(f"Instances already evaluated: {', '.join(evaluated)}")

        order = graph.topological_sort()
        position = {instance_id: index for index, instance_id in enumerate(order)}
        context = EvaluationContext(registry, registry.variables)

        run = Run(tasks={instance_id: InstanceTask(instance_id) for instance_id in order})
        remaining = {instance_id: len(graph.get_dependencies(instance_id)) for instance_id in order}
        ready: deque[InstanceId] = deque()
        for instance_id in order:
            if remaining[instance_id] == 0:
                run.tasks[instance_id].mark_ready()
                ready.append(instance_id)

        report = EvaluationReport(run=run)
        in_flight: dict[asyncio.Task, InstanceId] = {}
        workers = _WorkerPool(self.parallelism)
        released: asyncio.Task | None = None

        run.start()
        logger.info(f"Evaluating {len(order)} instance(s) with parallelism {self.parallelism}")
        try:
            while ready or in_flight:
                while ready and len(in_flight) + workers.abandoned < self.parallelism:
                    instance_id = ready.popleft()
                    run.tasks[instance_id].start()
                    logger.debug(f"Instance '{instance_id}' started")
                    task = asyncio.create_task(self._evaluate_instance(registry[instance_id], context, workers))
                    in_flight[task] = instance_id

                waiters: set[asyncio.Future] = set(in_flight)
                if ready and workers.abandoned:
                    # Slots are held by threads still running timed-out jobs
                    workers.released.clear()
                    released = asyncio.create_task(workers.released.wait())
                    waiters.add(released)
                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
                if released is not None:
                    released.cancel()
                    done.discard(released)
                    released = None
                # Process completions in topological order so state updates are deterministic
                for task in sorted(done, key=lambda t: position[in_flight[t]]):
                    instance_id = in_flight.pop(task)
                    try:
                        outputs = task.result()
                    except InternalError:
                        raise
                    except Exception as e:
                        self._record_failure(instance_id, e, graph, run, report)
                        continue
                    self._record_success(registry[instance_id], outputs, graph, run, remaining, ready, position)
        except BaseException:
            for task in in_flight:
                task.cancel()
            if released is not None:
                released.cancel()
            raise
        finally:
            workers.shutdown()

        for instance_id, task in run.tasks.items():
            report.states[instance_id] = task.state
            if task.state == InstanceState.DONE:
                report.outputs[instance_id] = registry[instance_id].outputs
        run.complete(success=report.success)
        summary = run.get_summary()
        logger.info(
            f"Evaluation finished: {summary['done']} done, {summary['failed']} failed "
            f"({summary['skipped']} skipped) in {summary['duration']:.2f}s"
        )
        return report

    async def _evaluate_instance(
        self, instance: ModuleInstance, context: EvaluationContext, workers: _WorkerPool
    ) -> Mapping[str, Any]:
        """Evaluate arguments, run the executor and validate its result."""
        start_time = time.time()
        evaluator = ExpressionEvaluator(context.for_instance(instance))
        arguments = evaluator.evaluate_arguments(instance.arguments)

        try:
            result = await self._execute(instance, arguments, workers)
        except asyncio.TimeoutError:
            raise EvaluationTimeoutError(instance.id, self.timeout) from None

        if not isinstance(result, Mapping):
            raise InstanceEvaluationError(
                instance.id, f"executor returned {type(result).__name__}, expected a mapping of outputs"
            )
        logger.debug(f"Instance '{instance.id}' finished in {time.time() - start_time:.3f}s")
        return result

    async def _execute(self, instance: ModuleInstance, arguments: dict[str, Any], workers: _WorkerPool) -> Any:
        if self.executor.is_async:
            execution = self.executor.execute(instance.id, instance.source, arguments)
            return await asyncio.wait_for(execution, timeout=self.timeout)
        result = await workers.run(
            functools.partial(self.executor.execute, instance.id, instance.source, arguments), timeout=self.timeout
        )
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout=self.timeout)
        return result

    def _record_success(
        self,
        instance: ModuleInstance,
        outputs: Mapping[str, Any],
        graph: DependencyGraph,
        run: Run,
        remaining: dict[InstanceId, int],
        ready: deque[InstanceId],
        position: dict[InstanceId, int],
    ) -> None:
        instance.set_outputs(outputs)
        run.tasks[instance.id].complete()

        newly_ready = []
        for dependent in graph.get_dependents(instance.id):
            remaining[dependent] -= 1
            if remaining[dependent] == 0 and run.tasks[dependent].state == InstanceState.PENDING:
                run.tasks[dependent].mark_ready()
                newly_ready.append(dependent)
        ready.extend(sorted(newly_ready, key=position.__getitem__))

    def _record_failure(
        self,
        instance_id: InstanceId,
        error: Exception,
        graph: DependencyGraph,
        run: Run,
        report: EvaluationReport,
    ) -> None:
        if not isinstance(error, (InstanceEvaluationError, EvaluationTimeoutError)):
            error = InstanceEvaluationError(instance_id, str(error) or type(error).__name__, cause=error)
        run.tasks[instance_id].fail(error)
        report.failures[instance_id] = error
        logger.error(
            f"Instance '{instance_id}' failed: {error}",
            exc_info=(type(error), error, error.__traceback__),
            extra={"instance": str(instance_id)},
        )

        for dependent in sorted(graph.transitive_dependents(instance_id), key=InstanceId.sort_key):
            task = run.tasks[dependent]
            # Dependents can only be pending: they need this instance done first
            if task.state != InstanceState.PENDING:
                continue
            skipped = UpstreamFailedError(dependent, instance_id)
            task.fail(skipped, skipped_reason="upstream_failed")
            report.failures[dependent] = skipped
            logger.error(f"{skipped}", extra={"instance": str(dependent), "failed_dependency": str(instance_id)})


async def evaluate_graph(
    graph: DependencyGraph,
    executor: ModuleExecutor | Callable[..., Any],
    parallelism: int | None = None,
    timeout: float | None = None,
) -> EvaluationReport:
    """Evaluate a resolved graph with a fresh Scheduler."""
    return await Scheduler(executor, parallelism=parallelism, timeout=timeout).evaluate(graph)
