"""
Progress emitter: turns interpreter transitions into an ordered event stream.

Every event is appended to ``history``, handed to synchronous listeners and
pushed to each live ``events()`` iterator. The emitter refuses out-of-order
transitions (a completion without a start, anything after the terminal
event) because they indicate an interpreter defect.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Sequence

from steprail.runtime.events import (
    StepCompleteEvent,
    StepErrorEvent,
    StepStartEvent,
    WorkflowCompleteEvent,
    WorkflowErrorEvent,
    _EventBase,
)
from steprail.runtime.state import RunState, StepStatus, utcnow
from steprail.schema.models import StepBase
from steprail.shared.config import config
from steprail.shared.logger import get_logger

logger = get_logger(__name__)

Listener = Callable[[_EventBase], None]


def instance_id_for(step_id: str, iteration: Sequence[int] = ()) -> str:
    if not iteration:
        return step_id
    return f"{step_id}@{'.'.join(str(i) for i in iteration)}"


class ProgressEmitter:
    def __init__(self, state: RunState, *, internal_prefix: Optional[str] = None) -> None:
        self.state = state
        self.internal_prefix = internal_prefix or config.internal_step_prefix
        self.history: List[_EventBase] = []
        self._listeners: List[Listener] = []
        self._queues: List[asyncio.Queue] = []
        self._open: Dict[str, float] = {}
        self._run_started = time.monotonic()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def events(self) -> AsyncIterator[_EventBase]:
        """Replay the history so far, then follow live events up to the terminal one."""
        queue: asyncio.Queue = asyncio.Queue()
        for event in self.history:
            queue.put_nowait(event)
        if not self._closed:
            self._queues.append(queue)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    return
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    # ------------------------------------------------------------------
    # Step events
    # ------------------------------------------------------------------
    def step_start(
        self,
        step: StepBase,
        inputs: Mapping[str, Any] | None = None,
        iteration: Sequence[int] = (),
    ) -> StepStartEvent:
        instance_id = instance_id_for(step.id, iteration)
        if instance_id in self._open:
            raise RuntimeError(f"step-start emitted twice for '{instance_id}'")
        self._open[instance_id] = time.monotonic()

        progress = self.state.step(step.id)
        progress.status = StepStatus.running
        progress.started_at = utcnow()
        progress.finished_at = None
        progress.error = None
        progress.attempts += 1

        return self._emit(
            StepStartEvent(
                run_id=self.state.run_id,
                step_id=step.id,
                step_name=step.display_name,
                instance_id=instance_id,
                iteration=list(iteration) or None,
                internal=self._is_internal(step),
                inputs=dict(inputs or {}),
            )
        )

    def step_complete(self, step: StepBase, output: Any, iteration: Sequence[int] = ()) -> StepCompleteEvent:
        instance_id, duration_ms = self._close(step, iteration)
        progress = self.state.step(step.id)
        progress.status = StepStatus.completed
        progress.output = output
        progress.duration_ms = duration_ms
        progress.finished_at = utcnow()

        return self._emit(
            StepCompleteEvent(
                run_id=self.state.run_id,
                step_id=step.id,
                step_name=step.display_name,
                instance_id=instance_id,
                iteration=list(iteration) or None,
                internal=self._is_internal(step),
                output=output,
                duration_ms=duration_ms,
            )
        )

    def step_error(self, step: StepBase, error: str, iteration: Sequence[int] = ()) -> StepErrorEvent:
        instance_id, duration_ms = self._close(step, iteration)
        progress = self.state.step(step.id)
        progress.status = StepStatus.failed
        progress.error = error
        progress.duration_ms = duration_ms
        progress.finished_at = utcnow()

        return self._emit(
            StepErrorEvent(
                run_id=self.state.run_id,
                step_id=step.id,
                step_name=step.display_name,
                instance_id=instance_id,
                iteration=list(iteration) or None,
                internal=self._is_internal(step),
                error=error,
                duration_ms=duration_ms,
            )
        )

    # ------------------------------------------------------------------
    # Terminal events
    # ------------------------------------------------------------------
    def workflow_complete(self, output: Any) -> WorkflowCompleteEvent:
        return self._emit(
            WorkflowCompleteEvent(
                run_id=self.state.run_id,
                output=output,
                total_duration_ms=self._elapsed_ms(self._run_started),
            )
        )

    def workflow_error(
        self,
        error: str,
        *,
        failed_step_id: Optional[str] = None,
        cancelled: bool = False,
        partial_output: Optional[dict[str, Any]] = None,
    ) -> WorkflowErrorEvent:
        return self._emit(
            WorkflowErrorEvent(
                run_id=self.state.run_id,
                error=error,
                failed_step_id=failed_step_id,
                cancelled=cancelled,
                partial_output=partial_output,
                total_duration_ms=self._elapsed_ms(self._run_started),
            )
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _close(self, step: StepBase, iteration: Sequence[int]) -> tuple[str, float]:
        instance_id = instance_id_for(step.id, iteration)
        started = self._open.pop(instance_id, None)
        if started is None:
            raise RuntimeError(f"step end emitted for '{instance_id}' without a matching step-start")
        return instance_id, self._elapsed_ms(started)

    def _emit(self, event):
        if self._closed:
            raise RuntimeError(f"Cannot emit {event.type} after the run's terminal event")
        if event.is_terminal:
            if self._open:
                raise RuntimeError(f"Terminal event emitted while steps are open: {sorted(self._open)}")
            self._closed = True

        self.history.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Progress listener %r failed on %s", listener, event.type)
        for queue in self._queues:
            queue.put_nowait(event)
        return event

    def _is_internal(self, step: StepBase) -> bool:
        return step.id.startswith(self.internal_prefix)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.monotonic() - started) * 1000, 3)
