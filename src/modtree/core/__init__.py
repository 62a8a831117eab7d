"""
Core engine: instance expansion, reference resolution, expression
evaluation and graph scheduling.
"""

from modtree.core.api import evaluate, expand, resolve, run
from modtree.core.dependencies import DependencyGraph
from modtree.core.executors import ModuleExecutor, SourceRegistry, module_source
from modtree.core.scheduler import EvaluationReport, Scheduler

__all__ = [
    "expand",
    "resolve",
    "evaluate",
    "run",
    "DependencyGraph",
    "Scheduler",
    "EvaluationReport",
    "ModuleExecutor",
    "SourceRegistry",
    "module_source",
]
