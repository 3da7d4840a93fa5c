"""
Execution interpreter: walks the step graph in run order, resolving bindings
before every step, dispatching action steps to their handlers and
implementing the control-flow semantics of branch, parallel, loop, foreach,
wait and suspend steps.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import ChainMap
from datetime import timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from steprail.bindings.resolver import BindingContext, resolve
from steprail.errors import (
    BindingResolutionError,
    ExpressionError,
    RunCancelledError,
    SafetyLimitError,
    StepExecutionError,
    StepRailError,
)
from steprail.expr.evaluator import evaluate_condition, resolve_value
from steprail.graph.model import StepGraph
from steprail.registry.handler_registry import HandlerRegistry
from steprail.runtime.concurrency import LaneOutcome, first_completed, gather_all
from steprail.runtime.context import RunContext
from steprail.runtime.emitter import ProgressEmitter
from steprail.runtime.state import RunState, RunStatus, utcnow
from steprail.schema.models import (
    BranchStep,
    ForEachStep,
    LaneKind,
    LoopMode,
    LoopStep,
    ParallelStep,
    StepBase,
    SuspendStep,
    WaitMode,
    WaitStep,
    WorkflowDefinition,
)
from steprail.shared.config import SteprailConfig, config as default_config
from steprail.shared.logger import get_logger

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Run was cancelled"


class ExecutionScope:
    """
    Output view of one sequential scope.

    Writes land in the scope's own layer. Parallel lanes and loop/foreach
    iterations get a private child layer on top of their parent's outputs;
    lanes are merged back at the join.
    """

    def __init__(
        self,
        outputs: ChainMap,
        locals: Optional[Mapping[str, Any]] = None,
        iteration: Tuple[int, ...] = (),
    ) -> None:
        self.outputs = outputs
        self.locals: Dict[str, Any] = dict(locals or {})
        self.iteration = iteration

    @classmethod
    def root(cls, outputs: Dict[str, Any]) -> "ExecutionScope":
        return cls(ChainMap(outputs))

    def child(
        self,
        *,
        locals: Optional[Mapping[str, Any]] = None,
        iteration: Optional[Tuple[int, ...]] = None,
        frame: Optional[Tuple[str, Any]] = None,
    ) -> "ExecutionScope":
        layer: Dict[str, Any] = {}
        if frame is not None:
            layer[frame[0]] = frame[1]
        return ExecutionScope(
            self.outputs.new_child(layer),
            {**self.locals, **(locals or {})},
            self.iteration if iteration is None else iteration,
        )

    def record(self, step_id: str, output: Any) -> None:
        self.outputs[step_id] = output

    def merge_into(self, parent: "ExecutionScope") -> None:
        for step_id, output in self.outputs.maps[0].items():
            parent.record(step_id, output)


class Interpreter:
    def __init__(
        self,
        definition: WorkflowDefinition,
        graph: StepGraph,
        handlers: HandlerRegistry,
        context: RunContext,
        state: RunState,
        emitter: ProgressEmitter,
        *,
        settings: Optional[SteprailConfig] = None,
    ) -> None:
        self.definition = definition
        self.graph = graph
        self.handlers = handlers
        self.context = context
        self.state = state
        self.emitter = emitter
        self.settings = settings or default_config
        self._input_definitions = definition.input_definitions()
        self._suspended = 0

    @property
    def token(self):
        return self.context.cancellation

    # ------------------------------------------------------------------
    # Per-step execution
    # ------------------------------------------------------------------
    async def run_step(self, step: StepBase, scope: ExecutionScope) -> Any:
        """Resolve, start, dispatch, record, complete. Failures fail fast."""
        self.token.raise_if_cancelled()
        iteration = scope.iteration

        try:
            inputs = resolve(
                step,
                self.definition.bindings_for(step.id),
                BindingContext(
                    inputs=self.context.inputs,
                    outputs=scope.outputs,
                    input_definitions=self._input_definitions,
                ),
            )
        except BindingResolutionError as exc:
            logger.error("Binding resolution failed for step '%s'", step.id, exc_info=True)
            self.emitter.step_start(step, {}, iteration)
            self.emitter.step_error(step, str(exc), iteration)
            raise StepExecutionError(str(exc), step_id=step.id) from exc

        self.emitter.step_start(step, inputs, iteration)
        try:
            output = await self._dispatch(step, inputs, scope)
        except StepExecutionError as exc:
            # Raised by a nested step or by this container's own safety cap
            self.emitter.step_error(step, exc.message, iteration)
            raise
        except (RunCancelledError, asyncio.CancelledError):
            self.emitter.step_error(step, CANCELLED_MESSAGE, iteration)
            raise
        except Exception as exc:
            message = describe_error(exc)
            logger.warning("Step '%s' failed: %s", step.id, message)
            self.emitter.step_error(step, message, iteration)
            raise StepExecutionError(message, step_id=step.id) from exc

        scope.record(step.id, output)
        self.emitter.step_complete(step, output, iteration)
        return output

    async def run_sequence(self, steps: Sequence[StepBase], scope: ExecutionScope) -> Any:
        """Run ``steps`` strictly one after another; returns the last output."""
        output = None
        for step in steps:
            output = await self.run_step(step, scope)
        return output

    async def _dispatch(self, step: StepBase, inputs: Dict[str, Any], scope: ExecutionScope) -> Any:
        if isinstance(step, BranchStep):
            return await self._run_branch(step, inputs, scope)
        if isinstance(step, ParallelStep):
            return await self._run_parallel(step, scope)
        if isinstance(step, LoopStep):
            return await self._run_loop(step, inputs, scope)
        if isinstance(step, ForEachStep):
            return await self._run_foreach(step, inputs, scope)
        if isinstance(step, WaitStep):
            return await self._run_wait(step)
        if isinstance(step, SuspendStep):
            return await self._run_suspend(step)

        handler = self.handlers.get(step.type)
        logger.debug("Dispatching step '%s' (%s) with inputs %s", step.id, step.type, sorted(inputs))
        result = handler.execute(step, inputs, self.context)
        if inspect.isawaitable(result):
            result = await self.token.run(result)
        self.token.raise_if_cancelled()
        return result

    # ------------------------------------------------------------------
    # Control flow
    # ------------------------------------------------------------------
    async def _run_branch(self, step: BranchStep, inputs: Dict[str, Any], scope: ExecutionScope) -> Any:
        branch_config = step.control_config
        names = self.names(scope, inputs)

        lane_index: Optional[int] = None
        condition_id: Optional[str] = None
        for index, condition in enumerate(branch_config.conditions):
            if evaluate_condition(condition.expression, names):
                lane_index, condition_id = index, condition.id
                break

        if lane_index is None:
            lane_index = branch_config.else_lane_index
            if lane_index is None:
                logger.info("Branch '%s' matched no condition and has no else lane; continuing", step.id)
                return {}

        children = self.graph.lane_children_of(step.id, lane_index, LaneKind.branch)
        output = await self.run_sequence(children, scope)
        return {"selectedLane": lane_index, "conditionId": condition_id, "output": output}

    async def _run_parallel(self, step: ParallelStep, scope: ExecutionScope) -> Any:
        parallel_config = step.control_config
        lane_scopes = [scope.child() for _ in range(step.lane_count)]
        coros = [
            self.run_sequence(self.graph.lane_children_of(step.id, index, LaneKind.parallel), lane_scopes[index])
            for index in range(step.lane_count)
        ]

        if parallel_config.wait_for_all:
            outcomes = await gather_all(coros, fail_fast=parallel_config.fail_fast)
            for outcome in outcomes:
                if outcome.ok:
                    lane_scopes[outcome.index].merge_into(scope)
            self._raise_first_failure(outcomes, "lanes")
            return {"lanes": [outcome.result for outcome in outcomes]}

        winner, outcomes = await first_completed(coros)
        if winner is None:
            self._raise_first_failure(outcomes, "lanes")
            return {"winningLane": None, "output": None}
        lane_scopes[winner.index].merge_into(scope)
        return {"winningLane": winner.index, "output": winner.result}

    async def _run_loop(self, step: LoopStep, inputs: Dict[str, Any], scope: ExecutionScope) -> Any:
        loop_config = step.control_config
        cap = loop_config.max_iterations or self.settings.default_max_iterations
        children = self.graph.children_of(step.id)

        iterations = 0
        output = None
        while True:
            if iterations >= cap:
                raise SafetyLimitError(
                    f"Loop '{step.display_name}' exceeded maxIterations ({cap})",
                    step_id=step.id,
                )
            self.token.raise_if_cancelled()
            frame = {"iteration": iterations}
            iteration_scope = scope.child(
                locals=frame,
                iteration=scope.iteration + (iterations,),
                frame=(step.id, frame),
            )
            output = await self.run_sequence(children, iteration_scope)
            iterations += 1

            holds = evaluate_condition(loop_config.condition, self.names(iteration_scope, inputs))
            if loop_config.type == LoopMode.until:
                if holds:
                    break
            elif not holds:
                break

        return {"iterations": iterations, "output": output}

    async def _run_foreach(self, step: ForEachStep, inputs: Dict[str, Any], scope: ExecutionScope) -> Any:
        foreach_config = step.control_config
        items = resolve_value(foreach_config.array_source, self.names(scope, inputs))
        if isinstance(items, tuple):
            items = list(items)
        if not isinstance(items, list):
            raise ExpressionError(
                f"arraySource '{foreach_config.array_source}' resolved to "
                f"{type(items).__name__}, expected an array"
            )

        children = self.graph.children_of(step.id)
        concurrency = max(1, min(foreach_config.concurrency, self.settings.max_foreach_concurrency))
        semaphore = asyncio.Semaphore(concurrency)

        async def run_item(index: int, item: Any) -> Any:
            async with semaphore:
                self.token.raise_if_cancelled()
                frame = {
                    "item": item,
                    "index": index,
                    foreach_config.item_variable: item,
                    foreach_config.index_variable: index,
                }
                iteration_scope = scope.child(
                    locals={foreach_config.item_variable: item, foreach_config.index_variable: index},
                    iteration=scope.iteration + (index,),
                    frame=(step.id, frame),
                )
                if not children:
                    return item
                return await self.run_sequence(children, iteration_scope)

        if concurrency == 1:
            results = []
            for index, item in enumerate(items):
                results.append(await run_item(index, item))
            return {"results": results}

        outcomes = await gather_all([run_item(index, item) for index, item in enumerate(items)])
        self._raise_first_failure(outcomes, "results")
        return {"results": [outcome.result for outcome in outcomes]}

    async def _run_wait(self, step: WaitStep) -> Any:
        wait_config = step.control_config
        if wait_config.type == WaitMode.duration:
            seconds = (wait_config.duration_ms or 0) / 1000
        else:
            until = wait_config.until_time
            if until.tzinfo is None:
                until = until.replace(tzinfo=timezone.utc)
            seconds = max(0.0, (until - utcnow()).total_seconds())
        logger.debug("Wait step '%s' sleeping %.3fs", step.id, seconds)
        await self.token.sleep(seconds)
        return {"waitedMs": round(seconds * 1000)}

    async def _run_suspend(self, step: SuspendStep) -> Any:
        suspend_config = step.control_config
        if self.settings.suspend_passthrough:
            return {"resumed": False, "message": suspend_config.message, "payload": suspend_config.payload}

        self._suspended += 1
        self.state.paused_step_id = step.id
        self.state.transition(RunStatus.paused)
        logger.info("Run %s paused at suspend step '%s'", self.state.run_id, step.id)
        try:
            payload = await self.context.suspensions.wait(step.id, self.token)
        finally:
            self._suspended -= 1
            if self.state.paused_step_id == step.id:
                self.state.paused_step_id = None
            # A suspend abandoned by a winning or failing sibling lane still unpauses the run
            if self._suspended == 0 and self.state.status == RunStatus.paused and not self.token.cancelled:
                self.state.transition(RunStatus.running)
        logger.info("Run %s resumed at suspend step '%s'", self.state.run_id, step.id)
        return {"resumed": True, "message": suspend_config.message, "payload": payload}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def names(self, scope: ExecutionScope, step_inputs: Mapping[str, Any]) -> Dict[str, Any]:
        """Names visible to conditions: outputs < workflow inputs < step inputs < locals."""
        outputs = dict(scope.outputs)
        names: Dict[str, Any] = dict(outputs)
        names.update(self.context.inputs)
        names["inputs"] = dict(self.context.inputs)
        names["outputs"] = outputs
        names.update(step_inputs)
        names.update(scope.locals)
        return names

    @staticmethod
    def _raise_first_failure(outcomes: List[LaneOutcome], key: str) -> None:
        failures = [outcome for outcome in outcomes if outcome.error is not None]
        if not failures:
            return
        error = failures[0].error
        if isinstance(error, StepExecutionError):
            partial = {
                key: [outcome.result if outcome.ok else None for outcome in outcomes],
                "completed": [outcome.index for outcome in outcomes if outcome.ok],
            }
            raise StepExecutionError(error.message, step_id=error.step_id, partial_output=partial) from error
        raise error


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, KeyError) and exc.args:
        return str(exc.args[0])
    if isinstance(exc, StepRailError):
        return str(exc)
    text = str(exc)
    return text or type(exc).__name__
