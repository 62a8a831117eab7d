"""
Modtree - declarative module graph resolution and evaluation.

Modules are declared with optional for_each/count multiplicity and
arguments that reference other modules' outputs. Modtree expands them into
instances, resolves references into a dependency graph and evaluates the
graph in parallel.
"""

__version__ = "0.1.0"

# Programmatic API
from modtree.core.api import evaluate, expand, resolve, run
from modtree.core.dependencies import DependencyGraph
from modtree.core.executors import ModuleExecutor, SourceRegistry, module_source
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
from modtree.core.parser import parse_expression
from modtree.core.scheduler import EvaluationReport, Scheduler
from modtree.core.types import InstanceId, InstanceRegistry, ModuleDeclaration, ModuleInstance

# Exceptions
from modtree.exceptions import (
    ConfigurationError,
    CycleError,
    DeclarationError,
    EvaluationError,
    EvaluationTimeoutError,
    ExpansionError,
    ExpressionSyntaxError,
    InstanceEvaluationError,
    InternalError,
    ModtreeError,
    ModuleReferenceError,
    ReferenceError_,
    UpstreamFailedError,
)

# Logging utilities
from modtree.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    # Pipeline
    "expand",
    "resolve",
    "evaluate",
    "run",
    "Scheduler",
    "EvaluationReport",
    "DependencyGraph",
    # Executors
    "ModuleExecutor",
    "SourceRegistry",
    "module_source",
    # Declarations and instances
    "ModuleDeclaration",
    "ModuleInstance",
    "InstanceId",
    "InstanceRegistry",
    # Expressions
    "parse_expression",
    "Expression",
    "Literal",
    "MapLiteral",
    "VariableRef",
    "EachRef",
    "ModuleRef",
    "AttributeRef",
    "Indexed",
    "FunctionCall",
    # Logging
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    # Exceptions
    "ModtreeError",
    "ConfigurationError",
    "DeclarationError",
    "ExpressionSyntaxError",
    "ExpansionError",
    "ReferenceError_",
    "ModuleReferenceError",
    "CycleError",
    "EvaluationError",
    "InstanceEvaluationError",
    "UpstreamFailedError",
    "EvaluationTimeoutError",
    "InternalError",
]
