from steprail.runtime.cancellation import CancellationToken
from steprail.runtime.context import RunContext
from steprail.runtime.emitter import ProgressEmitter
from steprail.runtime.events import (
    ProgressEvent,
    SSEDecoder,
    StepCompleteEvent,
    StepErrorEvent,
    StepStartEvent,
    WorkflowCompleteEvent,
    WorkflowErrorEvent,
    encode_sse,
    from_wire,
    to_wire,
)
from steprail.runtime.execution import RunResult, WorkflowRun, execute_workflow
from steprail.runtime.input_validation import coerce_inputs
from steprail.runtime.state import RunState, RunStatus, StepProgress, StepStatus

__all__ = [
    "CancellationToken",
    "ProgressEmitter",
    "ProgressEvent",
    "RunContext",
    "RunResult",
    "RunState",
    "RunStatus",
    "SSEDecoder",
    "StepCompleteEvent",
    "StepErrorEvent",
    "StepProgress",
    "StepStartEvent",
    "StepStatus",
    "WorkflowCompleteEvent",
    "WorkflowErrorEvent",
    "WorkflowRun",
    "coerce_inputs",
    "encode_sse",
    "execute_workflow",
    "from_wire",
    "to_wire",
]
