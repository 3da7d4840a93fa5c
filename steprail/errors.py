"""
Shared exception hierarchy for the workflow engine.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional


class StepRailError(Exception):
    """Base class for all engine related errors."""


class DefinitionError(StepRailError):
    """Raised when the step graph or its bindings are structurally invalid."""

    def __init__(self, errors: Iterable[str] | str) -> None:
        self.errors: List[str] = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("\n".join(self.errors) or "Invalid workflow definition")


class ReadinessError(StepRailError):
    """Raised when a run is requested for a definition that is not ready."""

    def __init__(self, errors: Iterable[str], missing_connections: Iterable[str] = ()) -> None:
        self.errors = list(errors)
        self.missing_connections = list(missing_connections)
        super().__init__("; ".join(self.errors) or "Workflow is not ready to execute")


class InputValidationError(StepRailError):
    """Raised when run-time workflow inputs are missing or cannot be coerced."""


class BindingResolutionError(StepRailError):
    """Raised when a binding reads the output of a step that has not run."""


class ExpressionError(StepRailError):
    """Raised when a condition or array source cannot be evaluated."""


class StepExecutionError(StepRailError):
    """Raised when a step fails; the run fails with ``step_id`` as its failed step."""

    def __init__(
        self,
        message: str,
        *,
        step_id: str,
        partial_output: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.step_id = step_id
        self.partial_output = partial_output


class SafetyLimitError(StepExecutionError):
    """Raised when a loop exceeds its iteration cap."""


class RunCancelledError(StepRailError):
    """Raised at await points once the run's cancellation signal is set."""

    def __init__(self, message: str = "Run was cancelled") -> None:
        super().__init__(message)
