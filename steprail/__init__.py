"""
steprail: step-graph workflow engine.

Definitions are parsed into typed steps, checked for readiness, and run by an
interpreter that resolves each step's bindings, dispatches to pluggable step
handlers and reports progress as an ordered event stream.
"""

from steprail.bindings import find_output_usage, resolve, validate_bindings
from steprail.compiler import load_workflow_file, parse_workflow_definition
from steprail.errors import (
    BindingResolutionError,
    DefinitionError,
    ExpressionError,
    InputValidationError,
    ReadinessError,
    RunCancelledError,
    SafetyLimitError,
    StepExecutionError,
    StepRailError,
)
from steprail.graph import StepGraph
from steprail.readiness import ConnectionRecord, ReadinessReport, check_readiness, readiness_for_workflow
from steprail.registry import HandlerRegistry
from steprail.runtime import RunResult, RunStatus, WorkflowRun, execute_workflow
from steprail.schema import WorkflowDefinition

__all__ = [
    "BindingResolutionError",
    "ConnectionRecord",
    "DefinitionError",
    "ExpressionError",
    "HandlerRegistry",
    "InputValidationError",
    "ReadinessError",
    "ReadinessReport",
    "RunCancelledError",
    "RunResult",
    "RunStatus",
    "SafetyLimitError",
    "StepExecutionError",
    "StepGraph",
    "StepRailError",
    "WorkflowDefinition",
    "WorkflowRun",
    "check_readiness",
    "execute_workflow",
    "find_output_usage",
    "load_workflow_file",
    "parse_workflow_definition",
    "readiness_for_workflow",
    "resolve",
    "validate_bindings",
]
