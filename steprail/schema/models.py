"""
Pydantic models describing a workflow definition: steps, their nesting and
control configuration, per-field input bindings and workflow-level inputs.

Definitions arrive from the editor with camelCase keys (``listIndex``,
``parentId``); every model also accepts the snake_case field names.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# -----------------------------
# JSON-ish values
# -----------------------------
# NOTE: Pydantic struggles with recursive type aliases when generating schemas,
# so we approximate JSONValue using non-recursive containers.
JSONPrimitive = Union[str, int, float, bool, None]
JSONValue = Union[JSONPrimitive, Dict[str, Any], List[Any]]
JsonSchema = Dict[str, Any]


class StrictModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        validate_assignment=True,
        alias_generator=to_camel,
    )


class DefinitionModel(BaseModel):
    # Editor payloads carry presentation keys (position, collapsed, logos)
    # that the engine does not read.
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        validate_assignment=True,
        alias_generator=to_camel,
    )


# -----------------------------
# Value types & field schemas
# -----------------------------
class ValueType(str, Enum):
    string = "string"
    integer = "integer"
    number = "number"
    boolean = "boolean"
    object = "object"
    array = "array"


class FieldSchema(StrictModel):
    """One named input or output field of a step. ``type=None`` means untyped."""

    name: str = Field(min_length=1)
    type: Optional[ValueType] = None
    required: bool = False
    description: Optional[str] = None


def _json_type(raw: Any) -> Optional[str]:
    if isinstance(raw, list):
        raw = next((item for item in raw if item != "null"), None)
    if raw in {member.value for member in ValueType}:
        return raw
    return None


def fields_from_json_schema(value: Any) -> Any:
    """
    Accept either a list of field descriptions or a JSON-Schema object and
    return the list form.
    """

    if value is None:
        return []
    if not isinstance(value, Mapping):
        return value
    properties = value.get("properties") or {}
    required = set(value.get("required") or [])
    fields = []
    for name, prop in properties.items():
        prop = prop if isinstance(prop, Mapping) else {}
        fields.append(
            {
                "name": name,
                "type": _json_type(prop.get("type")),
                "required": name in required,
                "description": prop.get("description"),
            }
        )
    return fields


# -----------------------------
# Step kinds
# -----------------------------
class StepType(str, Enum):
    tool_call = "tool-call"
    custom_code = "custom-code"
    query_table = "query-table"
    write_table = "write-table"
    control = "control"


class ControlType(str, Enum):
    branch = "branch"
    parallel = "parallel"
    loop = "loop"
    foreach = "foreach"
    wait = "wait"
    suspend = "suspend"


class LaneKind(str, Enum):
    branch = "branch"
    parallel = "parallel"


class StepBase(DefinitionModel):
    id: str = Field(min_length=1)
    type: str
    name: str = ""
    description: Optional[str] = None

    list_index: int = Field(default=0, ge=0)
    parent_id: Optional[str] = None
    branch_condition_index: Optional[int] = Field(default=None, ge=0)
    parallel_lane_index: Optional[int] = Field(default=None, ge=0)

    input_schema: List[FieldSchema] = Field(default_factory=list)
    output_schema: List[FieldSchema] = Field(default_factory=list)

    # Loop/foreach own a body; branch/parallel own indexed lanes.
    is_container: ClassVar[bool] = False
    lane_kind: ClassVar[Optional[LaneKind]] = None

    @field_validator("input_schema", "output_schema", mode="before")
    @classmethod
    def _accept_json_schema(cls, value: Any) -> Any:
        return fields_from_json_schema(value)

    @model_validator(mode="after")
    def _check_lane_membership(self) -> "StepBase":
        if self.branch_condition_index is not None and self.parallel_lane_index is not None:
            raise ValueError(
                f"step '{self.id}': branchConditionIndex and parallelLaneIndex are mutually exclusive"
            )
        if self.lane is not None and self.parent_id is None:
            raise ValueError(f"step '{self.id}': a lane index requires parentId")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def lane(self) -> Optional[Tuple[LaneKind, int]]:
        if self.branch_condition_index is not None:
            return LaneKind.branch, self.branch_condition_index
        if self.parallel_lane_index is not None:
            return LaneKind.parallel, self.parallel_lane_index
        return None

    def input_field(self, name: str) -> Optional[FieldSchema]:
        return next((field for field in self.input_schema if field.name == name), None)

    def output_field(self, name: str) -> Optional[FieldSchema]:
        return next((field for field in self.output_schema if field.name == name), None)


class ToolCallStep(StepBase):
    type: Literal["tool-call"] = "tool-call"
    tool_id: str = Field(min_length=1)
    toolkit_slug: Optional[str] = None
    toolkit_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.tool_id or self.id


class CustomCodeStep(StepBase):
    type: Literal["custom-code"] = "custom-code"
    code: str = ""


class QueryTableStep(StepBase):
    type: Literal["query-table"] = "query-table"
    table_ref: Optional[str] = None
    table_config: Dict[str, Any] = Field(default_factory=dict)


class WriteTableStep(StepBase):
    type: Literal["write-table"] = "write-table"
    table_ref: Optional[str] = None
    table_config: Dict[str, Any] = Field(default_factory=dict)


# -----------------------------
# Control configuration
# -----------------------------
class BranchCondition(StrictModel):
    id: str = Field(min_length=1)
    label: str = ""
    expression: str = Field(min_length=1)
    color: Optional[str] = None


class BranchConfig(StrictModel):
    conditions: List[BranchCondition] = Field(default_factory=list)
    has_else: bool = True

    @property
    def else_lane_index(self) -> Optional[int]:
        return len(self.conditions) if self.has_else else None

    @property
    def lane_count(self) -> int:
        return len(self.conditions) + (1 if self.has_else else 0)


class ParallelLane(StrictModel):
    id: str = Field(min_length=1)
    label: str = ""


class ParallelConfig(StrictModel):
    lanes: List[ParallelLane] = Field(default_factory=list)
    wait_for_all: bool = True
    fail_fast: bool = True

    @property
    def lane_count(self) -> int:
        return len(self.lanes)


class LoopMode(str, Enum):
    while_ = "while"
    until = "until"


class LoopConfig(StrictModel):
    type: LoopMode = LoopMode.while_
    condition: str = Field(min_length=1)
    # None falls back to config.default_max_iterations
    max_iterations: Optional[int] = Field(default=None, ge=1)


class ForEachConfig(StrictModel):
    array_source: str = Field(min_length=1)
    item_variable: str = Field(default="item", min_length=1)
    index_variable: str = Field(default="index", min_length=1)
    concurrency: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _distinct_variables(self) -> "ForEachConfig":
        if self.item_variable == self.index_variable:
            raise ValueError("itemVariable and indexVariable must differ")
        return self


class WaitMode(str, Enum):
    duration = "duration"
    until = "until"


class WaitConfig(StrictModel):
    type: WaitMode = WaitMode.duration
    duration_ms: Optional[int] = Field(default=None, ge=0)
    until_time: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_target(self) -> "WaitConfig":
        if self.type == WaitMode.duration and self.duration_ms is None:
            raise ValueError('wait type="duration" requires durationMs')
        if self.type == WaitMode.until and self.until_time is None:
            raise ValueError('wait type="until" requires untilTime')
        return self


class SuspendConfig(StrictModel):
    message: Optional[str] = None
    payload: Optional[JSONValue] = None


# -----------------------------
# Control steps
# -----------------------------
class ControlStepBase(StepBase):
    type: Literal["control"] = "control"
    control_type: str


class BranchStep(ControlStepBase):
    control_type: Literal["branch"] = "branch"
    control_config: BranchConfig = Field(default_factory=BranchConfig)

    lane_kind: ClassVar[Optional[LaneKind]] = LaneKind.branch

    @property
    def lane_count(self) -> int:
        return self.control_config.lane_count


class ParallelStep(ControlStepBase):
    control_type: Literal["parallel"] = "parallel"
    control_config: ParallelConfig = Field(default_factory=ParallelConfig)

    lane_kind: ClassVar[Optional[LaneKind]] = LaneKind.parallel

    @property
    def lane_count(self) -> int:
        return self.control_config.lane_count


class LoopStep(ControlStepBase):
    control_type: Literal["loop"] = "loop"
    control_config: LoopConfig

    is_container: ClassVar[bool] = True


class ForEachStep(ControlStepBase):
    control_type: Literal["foreach"] = "foreach"
    control_config: ForEachConfig

    is_container: ClassVar[bool] = True


class WaitStep(ControlStepBase):
    control_type: Literal["wait"] = "wait"
    control_config: WaitConfig


class SuspendStep(ControlStepBase):
    control_type: Literal["suspend"] = "suspend"
    control_config: SuspendConfig = Field(default_factory=SuspendConfig)


ControlStep = Annotated[
    Union[BranchStep, ParallelStep, LoopStep, ForEachStep, WaitStep, SuspendStep],
    Field(discriminator="control_type"),
]

Step = Annotated[
    Union[ToolCallStep, CustomCodeStep, QueryTableStep, WriteTableStep, ControlStep],
    Field(discriminator="type"),
]

ActionStep = Union[ToolCallStep, CustomCodeStep, QueryTableStep, WriteTableStep]
ACTION_STEP_TYPES = (ToolCallStep, CustomCodeStep, QueryTableStep, WriteTableStep)


# -----------------------------
# Bindings
# -----------------------------
class BindingSource(str, Enum):
    step_output = "step-output"
    workflow_input = "workflow-input"
    literal = "literal"


class StepOutputBinding(StrictModel):
    source_type: Literal["step-output"] = "step-output"
    source_step_id: str = Field(min_length=1)
    source_path: str = ""


class WorkflowInputBinding(StrictModel):
    source_type: Literal["workflow-input"] = "workflow-input"
    workflow_input_name: str = Field(min_length=1)


class LiteralBinding(StrictModel):
    source_type: Literal["literal"] = "literal"
    literal_value: Optional[JSONValue] = None


FieldBinding = Annotated[
    Union[StepOutputBinding, WorkflowInputBinding, LiteralBinding],
    Field(discriminator="source_type"),
]

# step id -> field name -> binding
StepBindings = Dict[str, Dict[str, FieldBinding]]


# -----------------------------
# Workflow
# -----------------------------
class WorkflowInputDefinition(StrictModel):
    name: str = Field(min_length=1)
    type: ValueType = ValueType.string
    required: bool = True
    default_value: Optional[JSONValue] = None
    description: Optional[str] = None


class WorkflowDefinition(DefinitionModel):
    id: str = ""
    name: str = ""
    steps: List[Step] = Field(default_factory=list)
    bindings: StepBindings = Field(default_factory=dict)
    inputs: List[WorkflowInputDefinition] = Field(default_factory=list)
    meta: Dict[str, JSONValue] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_unique_names(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id '{step.id}'")
            seen.add(step.id)
        input_names = [definition.name for definition in self.inputs]
        if len(input_names) != len(set(input_names)):
            raise ValueError("workflow input names must be unique")
        return self

    def get_step(self, step_id: str) -> Optional[StepBase]:
        return next((step for step in self.steps if step.id == step_id), None)

    def input_definitions(self) -> Dict[str, WorkflowInputDefinition]:
        return {definition.name: definition for definition in self.inputs}

    def bindings_for(self, step_id: str) -> Dict[str, Any]:
        return dict(self.bindings.get(step_id) or {})
