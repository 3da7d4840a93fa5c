from steprail.schema.models import (
    ACTION_STEP_TYPES,
    BranchCondition,
    BranchConfig,
    BranchStep,
    CustomCodeStep,
    FieldSchema,
    ForEachConfig,
    ForEachStep,
    LaneKind,
    LiteralBinding,
    LoopConfig,
    LoopMode,
    LoopStep,
    ParallelConfig,
    ParallelLane,
    ParallelStep,
    QueryTableStep,
    StepBase,
    StepOutputBinding,
    StepType,
    SuspendConfig,
    SuspendStep,
    ToolCallStep,
    ValueType,
    WaitConfig,
    WaitMode,
    WaitStep,
    WorkflowDefinition,
    WorkflowInputBinding,
    WorkflowInputDefinition,
    WriteTableStep,
)

__all__ = [
    "ACTION_STEP_TYPES",
    "BranchCondition",
    "BranchConfig",
    "BranchStep",
    "CustomCodeStep",
    "FieldSchema",
    "ForEachConfig",
    "ForEachStep",
    "LaneKind",
    "LiteralBinding",
    "LoopConfig",
    "LoopMode",
    "LoopStep",
    "ParallelConfig",
    "ParallelLane",
    "ParallelStep",
    "QueryTableStep",
    "StepBase",
    "StepOutputBinding",
    "StepType",
    "SuspendConfig",
    "SuspendStep",
    "ToolCallStep",
    "ValueType",
    "WaitConfig",
    "WaitMode",
    "WaitStep",
    "WorkflowDefinition",
    "WorkflowInputBinding",
    "WorkflowInputDefinition",
    "WriteTableStep",
]
