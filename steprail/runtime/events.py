"""
Typed progress events and their wire framing.

Events serialise to camelCase JSON. ``encode_sse`` frames one event as a
server-sent event (``data: <json>``), and ``SSEDecoder`` reassembles events
from arbitrarily split chunks of such a stream.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from steprail.runtime.state import utcnow


class _EventBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, frozen=True)

    run_id: str = ""
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return False


class _StepEventBase(_EventBase):
    step_id: str
    step_name: str
    # step_id plus the loop/foreach iteration path, e.g. "double@2"
    instance_id: str
    iteration: Optional[List[int]] = None
    internal: bool = False


class StepStartEvent(_StepEventBase):
    type: Literal["step-start"] = "step-start"
    inputs: dict[str, Any] = Field(default_factory=dict)


class StepCompleteEvent(_StepEventBase):
    type: Literal["step-complete"] = "step-complete"
    output: Any = None
    duration_ms: float = 0.0


class StepErrorEvent(_StepEventBase):
    type: Literal["step-error"] = "step-error"
    error: str
    duration_ms: float = 0.0


class WorkflowCompleteEvent(_EventBase):
    type: Literal["workflow-complete"] = "workflow-complete"
    output: Any = None
    total_duration_ms: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return True


class WorkflowErrorEvent(_EventBase):
    type: Literal["workflow-error"] = "workflow-error"
    error: str
    failed_step_id: Optional[str] = None
    cancelled: bool = False
    partial_output: Optional[dict[str, Any]] = None
    total_duration_ms: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return True


ProgressEvent = Annotated[
    Union[StepStartEvent, StepCompleteEvent, StepErrorEvent, WorkflowCompleteEvent, WorkflowErrorEvent],
    Field(discriminator="type"),
]
StepEvent = Union[StepStartEvent, StepCompleteEvent, StepErrorEvent]

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(ProgressEvent)


def to_wire(event: _EventBase) -> dict[str, Any]:
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def from_wire(payload: dict[str, Any] | str) -> _EventBase:
    if isinstance(payload, str):
        return _EVENT_ADAPTER.validate_json(payload)
    return _EVENT_ADAPTER.validate_python(payload)


def encode_sse(event: _EventBase) -> str:
    return f"data: {json.dumps(to_wire(event), default=str)}\n\n"


class SSEDecoder:
    """
    Incremental decoder for a ``text/event-stream`` of progress events.

    Feed raw text chunks as they arrive; complete events are returned as soon
    as their blank-line terminator has been seen. Comment lines and fields
    other than ``data`` are ignored.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> List[_EventBase]:
        self._buffer += chunk.replace("\r\n", "\n").replace("\r", "\n")
        events: List[_EventBase] = []
        while "\n\n" in self._buffer:
            block, self._buffer = self._buffer.split("\n\n", 1)
            event = self._parse_block(block)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> List[_EventBase]:
        """Decode whatever is left once the stream has ended."""
        block, self._buffer = self._buffer, ""
        event = self._parse_block(block)
        return [event] if event is not None else []

    @staticmethod
    def _parse_block(block: str) -> Optional[_EventBase]:
        data_lines = []
        for line in block.split("\n"):
            if not line or line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            if name != "data":
                continue
            data_lines.append(value[1:] if value.startswith(" ") else value)
        if not data_lines:
            return None
        return from_wire("\n".join(data_lines))
