"""
Caller-owned state of one run: status, per-step progress and the output map.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RunStatus(str, Enum):
    idle = "idle"
    running = "running"
    paused = "paused"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({RunStatus.completed, RunStatus.failed, RunStatus.cancelled})

_RUN_TRANSITIONS = {
    RunStatus.idle: {RunStatus.running, RunStatus.cancelled},
    RunStatus.running: {RunStatus.paused, RunStatus.completed, RunStatus.failed, RunStatus.cancelled},
    RunStatus.paused: {RunStatus.running, RunStatus.failed, RunStatus.cancelled},
}


class StepStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepProgress(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    step_id: str
    status: StepStatus = StepStatus.pending
    output: Optional[Any] = None
    error: Optional[str] = None
    duration_ms: Optional[float] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    # Number of times the step has started, across loop/foreach iterations
    attempts: int = Field(default=0, ge=0)


@dataclass
class RunState:
    """
    Owned exclusively by one run. ``outputs`` holds the last recorded output
    of every step that completed on the shared scope; lane and iteration
    scopes are merged in at their join points.
    """

    run_id: str
    status: RunStatus = RunStatus.idle
    outputs: Dict[str, Any] = field(default_factory=dict)
    progress: Dict[str, StepProgress] = field(default_factory=dict)
    transitions: List[Tuple[RunStatus, datetime]] = field(default_factory=list)
    failed_step_id: Optional[str] = None
    error: Optional[str] = None
    paused_step_id: Optional[str] = None

    def init_progress(self, step_ids: List[str]) -> None:
        self.progress = {step_id: StepProgress(step_id=step_id) for step_id in step_ids}

    def transition(self, status: RunStatus) -> None:
        if status == self.status:
            return
        allowed = _RUN_TRANSITIONS.get(self.status, set())
        if status not in allowed:
            raise RuntimeError(f"Invalid run transition {self.status.value} -> {status.value}")
        self.status = status
        self.transitions.append((status, utcnow()))

    @property
    def finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def step(self, step_id: str) -> StepProgress:
        if step_id not in self.progress:
            self.progress[step_id] = StepProgress(step_id=step_id)
        return self.progress[step_id]
