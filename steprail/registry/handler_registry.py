"""
In-memory registry of step handlers keyed by step type.

The interpreter looks handlers up here at dispatch time. Control steps are
interpreted directly and never reach the registry.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Dict, Mapping, MutableMapping, Optional, Protocol, Union, runtime_checkable

from steprail.schema.models import StepBase, StepType


@runtime_checkable
class StepHandler(Protocol):
    async def execute(self, step: StepBase, inputs: Mapping[str, Any], context: Any) -> Any:
        ...


HandlerCallable = Callable[[StepBase, Mapping[str, Any], Any], Union[Any, Awaitable[Any]]]


class HandlerNotFoundError(KeyError):
    """Raised when attempting to dispatch a step type with no registered handler."""


class _CallableHandler:
    def __init__(self, func: HandlerCallable) -> None:
        self._func = func

    async def execute(self, step: StepBase, inputs: Mapping[str, Any], context: Any) -> Any:
        result = self._func(step, inputs, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"_CallableHandler({getattr(self._func, '__name__', self._func)!r})"


class HandlerRegistry:
    """
    Stores one handler per action step type (``tool-call``, ``custom-code``,
    ``query-table``, ``write-table``). Plain callables, sync or async, are
    accepted and wrapped.
    """

    def __init__(self, initial: MutableMapping[str, StepHandler | HandlerCallable] | None = None) -> None:
        self._handlers: Dict[str, StepHandler] = {}
        for step_type, handler in (initial or {}).items():
            self.register(step_type, handler)

    def register(self, step_type: StepType | str, handler: StepHandler | HandlerCallable) -> None:
        key = StepType(step_type).value
        if key == StepType.control.value:
            raise ValueError("Control steps are interpreted by the engine and cannot have a handler")
        if not isinstance(handler, StepHandler):
            handler = _CallableHandler(handler)
        self._handlers[key] = handler

    def get(self, step_type: StepType | str) -> StepHandler:
        key = step_type.value if isinstance(step_type, StepType) else step_type
        try:
            return self._handlers[key]
        except KeyError as exc:
            raise HandlerNotFoundError(f"No handler registered for step type '{key}'") from exc

    def maybe_get(self, step_type: StepType | str) -> Optional[StepHandler]:
        key = step_type.value if isinstance(step_type, StepType) else step_type
        return self._handlers.get(key)

    def supports(self, step_type: StepType | str) -> bool:
        return self.maybe_get(step_type) is not None

    def step_types(self) -> list[str]:
        return sorted(self._handlers)
