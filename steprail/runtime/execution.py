"""
Run entry point: one in-process, best-effort execution of a workflow
definition with a typed progress stream and a single cancellation signal.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional

from steprail.compiler.emit_langgraph import emit_langgraph, recursion_limit
from steprail.compiler.parse import parse_workflow_definition
from steprail.errors import ReadinessError, RunCancelledError, StepExecutionError
from steprail.graph.model import StepGraph
from steprail.readiness.check import ConnectionRecord, ReadinessReport, check_readiness
from steprail.registry.handler_registry import HandlerRegistry
from steprail.runtime.context import RunContext
from steprail.runtime.emitter import ProgressEmitter
from steprail.runtime.events import _EventBase
from steprail.runtime.input_validation import coerce_inputs
from steprail.runtime.interpreter import CANCELLED_MESSAGE, ExecutionScope, Interpreter, describe_error
from steprail.runtime.state import RunState, RunStatus
from steprail.schema.models import WorkflowDefinition
from steprail.shared.config import SteprailConfig, config as default_config
from steprail.shared.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RunResult:
    run_id: str
    status: RunStatus
    output: Any = None
    outputs: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    failed_step_id: Optional[str] = None
    partial_output: Optional[Dict[str, Any]] = None
    events: List[_EventBase] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.completed


class WorkflowRun:
    """
    Prepares and executes one run.

    Construction refuses a definition whose readiness report cannot execute,
    deep-copies the definition so editor changes never reach an active run,
    validates the step graph and coerces the run inputs.
    """

    def __init__(
        self,
        definition: WorkflowDefinition | Mapping[str, Any] | str,
        *,
        handlers: HandlerRegistry | Mapping[str, Any] | None = None,
        readiness: Optional[ReadinessReport] = None,
        inputs: Optional[Mapping[str, Any]] = None,
        user_id: Optional[str] = None,
        run_id: Optional[str] = None,
        settings: Optional[SteprailConfig] = None,
    ) -> None:
        if readiness is not None and not readiness.can_execute:
            raise ReadinessError(readiness.errors, readiness.missing_connections)

        self.settings = settings or default_config
        self.definition = parse_workflow_definition(definition).model_copy(deep=True)
        self.graph = StepGraph(self.definition.steps)
        self.graph.assert_valid()
        self.inputs = coerce_inputs(self.definition, inputs)
        self.handlers = handlers if isinstance(handlers, HandlerRegistry) else HandlerRegistry(dict(handlers or {}))

        self.run_id = run_id or uuid.uuid4().hex
        self.state = RunState(run_id=self.run_id)
        self.state.init_progress([step.id for step in self.graph.run_order()])
        self.context = RunContext(
            run_id=self.run_id,
            workflow_id=self.definition.id,
            inputs=self.inputs,
            connections=dict(readiness.connection_bindings) if readiness else {},
            user_id=user_id,
        )
        self.emitter = ProgressEmitter(self.state, internal_prefix=self.settings.internal_step_prefix)
        self.interpreter = Interpreter(
            self.definition,
            self.graph,
            self.handlers,
            self.context,
            self.state,
            self.emitter,
            settings=self.settings,
        )
        self._started = False

    @property
    def status(self) -> RunStatus:
        return self.state.status

    def events(self) -> AsyncIterator[_EventBase]:
        return self.emitter.events()

    def subscribe(self, listener: Callable[[_EventBase], None]) -> Callable[[], None]:
        return self.emitter.subscribe(listener)

    def cancel(self, reason: Optional[str] = None) -> None:
        self.context.cancellation.cancel(reason)

    def resume(self, step_id: str, payload: Any = None) -> bool:
        return self.context.suspensions.resume(step_id, payload)

    async def execute(self) -> RunResult:
        if self._started:
            raise RuntimeError("A WorkflowRun can only be executed once")
        self._started = True

        if self.context.cancellation.cancelled:
            return self._fail(CANCELLED_MESSAGE, cancelled=True)

        rail = self.graph.top_level_steps()
        scope = ExecutionScope.root(self.state.outputs)
        compiled = emit_langgraph(rail, lambda step: self.interpreter.run_step(step, scope))

        self.state.transition(RunStatus.running)
        logger.info(
            "Run %s started for workflow '%s' (%d steps)",
            self.run_id,
            self.definition.id or self.definition.name,
            len(self.graph),
        )
        try:
            await compiled.ainvoke(
                {"last_step_id": ""},
                config={"recursion_limit": recursion_limit(len(rail), self.settings.graph_recursion_headroom)},
            )
        except StepExecutionError as exc:
            return self._fail(
                exc.message,
                failed_step_id=exc.step_id,
                partial_output=exc.partial_output,
                cancelled=self.context.cancellation.cancelled,
            )
        except RunCancelledError as exc:
            return self._fail(str(exc), cancelled=True)
        except asyncio.CancelledError:
            self.context.cancellation.cancel()
            self._fail(CANCELLED_MESSAGE, cancelled=True)
            raise
        except Exception as exc:
            logger.exception("Run %s failed outside of a step", self.run_id)
            return self._fail(describe_error(exc))

        output = self.state.outputs.get(rail[-1].id) if rail else None
        self.state.transition(RunStatus.completed)
        self.emitter.workflow_complete(output)
        logger.info("Run %s completed", self.run_id)
        return self._result(output=output)

    def _fail(
        self,
        error: str,
        *,
        failed_step_id: Optional[str] = None,
        partial_output: Optional[Dict[str, Any]] = None,
        cancelled: bool = False,
    ) -> RunResult:
        if partial_output is None and self.state.outputs:
            partial_output = dict(self.state.outputs)
        self.state.failed_step_id = failed_step_id
        self.state.error = error
        self.state.transition(RunStatus.cancelled if cancelled else RunStatus.failed)
        self.emitter.workflow_error(
            error,
            failed_step_id=failed_step_id,
            cancelled=cancelled,
            partial_output=partial_output,
        )
        if cancelled:
            logger.info("Run %s cancelled", self.run_id)
        else:
            logger.warning("Run %s failed at step %s: %s", self.run_id, failed_step_id, error)
        return self._result(error=error, failed_step_id=failed_step_id, partial_output=partial_output)

    def _result(self, **kwargs: Any) -> RunResult:
        return RunResult(
            run_id=self.run_id,
            status=self.state.status,
            outputs=dict(self.state.outputs),
            events=list(self.emitter.history),
            **kwargs,
        )


async def execute_workflow(
    definition: WorkflowDefinition | Mapping[str, Any] | str,
    *,
    handlers: HandlerRegistry | Mapping[str, Any] | None = None,
    inputs: Optional[Mapping[str, Any]] = None,
    connections: Iterable[ConnectionRecord | Mapping[str, Any]] = (),
    tables: Optional[Iterable[str]] = None,
    user_id: Optional[str] = None,
    settings: Optional[SteprailConfig] = None,
) -> RunResult:
    """Check readiness, then run. Raises ``ReadinessError`` when not ready."""
    parsed = parse_workflow_definition(definition)
    readiness = check_readiness(parsed, connections, tables=tables, settings=settings)
    run = WorkflowRun(
        parsed,
        handlers=handlers,
        readiness=readiness,
        inputs=inputs,
        user_id=user_id,
        settings=settings,
    )
    return await run.execute()
