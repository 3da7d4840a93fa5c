"""Definition builders and fake handlers shared by the test modules."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Optional

from steprail.schema.models import (
    BranchCondition,
    BranchConfig,
    BranchStep,
    FieldSchema,
    ForEachConfig,
    ForEachStep,
    LiteralBinding,
    LoopConfig,
    LoopStep,
    ParallelConfig,
    ParallelLane,
    ParallelStep,
    StepOutputBinding,
    ToolCallStep,
    ValueType,
    WorkflowDefinition,
    WorkflowInputBinding,
    WorkflowInputDefinition,
)

_PLACEMENT_KEYS = ("parent_id", "branch_condition_index", "parallel_lane_index", "name", "input_schema", "output_schema")


def _split_placement(config: Dict[str, Any]) -> Dict[str, Any]:
    """Pop step-level keyword arguments out of control config keyword arguments."""
    return {key: config.pop(key) for key in _PLACEMENT_KEYS if key in config}


def tool(step_id: str, index: int = 0, *, inputs: Iterable[str] = (), **kwargs: Any) -> ToolCallStep:
    schema = kwargs.pop("input_schema", None) or [FieldSchema(name=name) for name in inputs]
    return ToolCallStep(id=step_id, tool_id=f"tools.{step_id}", list_index=index, input_schema=schema, **kwargs)


def typed_field(name: str, value_type: ValueType | None = None, required: bool = False) -> FieldSchema:
    return FieldSchema(name=name, type=value_type, required=required)


def output_of(step_id: str, path: str = "") -> StepOutputBinding:
    return StepOutputBinding(source_step_id=step_id, source_path=path)


def workflow_input(name: str) -> WorkflowInputBinding:
    return WorkflowInputBinding(workflow_input_name=name)


def literal(value: Any) -> LiteralBinding:
    return LiteralBinding(literal_value=value)


def branch(step_id: str, expressions: List[str], index: int = 0, *, has_else: bool = True, **placement: Any) -> BranchStep:
    conditions = [
        BranchCondition(id=f"{step_id}-c{position}", label=f"case {position}", expression=expression)
        for position, expression in enumerate(expressions)
    ]
    return BranchStep(
        id=step_id,
        list_index=index,
        control_config=BranchConfig(conditions=conditions, has_else=has_else),
        **placement,
    )


def parallel(step_id: str, lanes: int, index: int = 0, **config: Any) -> ParallelStep:
    placement = _split_placement(config)
    return ParallelStep(
        id=step_id,
        list_index=index,
        **placement,
        control_config=ParallelConfig(
            lanes=[ParallelLane(id=f"{step_id}-l{n}", label=f"lane {n}") for n in range(lanes)],
            **config,
        ),
    )


def loop(step_id: str, condition: str, index: int = 0, **config: Any) -> LoopStep:
    placement = _split_placement(config)
    return LoopStep(id=step_id, list_index=index, control_config=LoopConfig(condition=condition, **config), **placement)


def foreach(step_id: str, array_source: str, index: int = 0, **config: Any) -> ForEachStep:
    placement = _split_placement(config)
    return ForEachStep(
        id=step_id,
        list_index=index,
        control_config=ForEachConfig(array_source=array_source, **config),
        **placement,
    )


def definition(
    steps: list,
    bindings: Optional[Dict[str, Dict[str, Any]]] = None,
    inputs: Optional[List[WorkflowInputDefinition]] = None,
) -> WorkflowDefinition:
    return WorkflowDefinition(id="wf-test", name="test workflow", steps=steps, bindings=bindings or {}, inputs=inputs or [])


class RecordingHandler:
    """
    Fake step handler. ``responses`` maps step id to an output, an exception
    to raise, or a callable receiving the resolved inputs.
    """

    def __init__(self, responses: Optional[Mapping[str, Any]] = None, delays: Optional[Mapping[str, float]] = None) -> None:
        self.responses: Dict[str, Any] = dict(responses or {})
        self.delays: Dict[str, float] = dict(delays or {})
        self.calls: List[tuple[str, Dict[str, Any]]] = []
        self.finished: List[str] = []

    async def execute(self, step, inputs, context):
        self.calls.append((step.id, dict(inputs)))
        delay = self.delays.get(step.id)
        if delay:
            await asyncio.sleep(delay)
        response = self.responses.get(step.id)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(inputs)
        self.finished.append(step.id)
        return response

    @property
    def called(self) -> List[str]:
        return [step_id for step_id, _ in self.calls]


def summarize(events) -> List[tuple]:
    """(type, step id) pairs; terminal events carry their failed step id."""
    summary = []
    for event in events:
        if event.type.startswith("step-"):
            summary.append((event.type, event.step_id))
        elif event.type == "workflow-error":
            summary.append((event.type, event.failed_step_id))
        else:
            summary.append((event.type, None))
    return summary
