"""
Tool-call steps: delegate to a credential-bound tool invoker.
"""

from __future__ import annotations

import inspect
from typing import Any, Iterable, Mapping, Optional, Protocol

from steprail.errors import StepRailError
from steprail.schema.models import StepBase, ToolCallStep
from steprail.shared.config import config
from steprail.shared.logger import get_logger

logger = get_logger(__name__)


class ToolCallError(StepRailError):
    """Raised when a tool invocation reports failure."""


class ToolInvoker(Protocol):
    async def invoke(
        self,
        tool_id: str,
        arguments: Mapping[str, Any],
        *,
        connection_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Any:
        ...


def unwrap_tool_result(result: Any) -> Any:
    """
    Unwrap the ``{successful, data, error}`` envelope tool backends return.
    Anything else is passed through as the step output.
    """
    if isinstance(result, Mapping) and "successful" in result and ("data" in result or "error" in result):
        if not result["successful"]:
            raise ToolCallError(str(result.get("error") or "Tool call failed"))
        return result.get("data")
    return result


class ToolCallHandler:
    def __init__(self, invoker: ToolInvoker, *, no_auth_toolkits: Optional[Iterable[str]] = None) -> None:
        self.invoker = invoker
        self.no_auth_toolkits = set(config.no_auth_toolkits if no_auth_toolkits is None else no_auth_toolkits)

    async def execute(self, step: StepBase, inputs: Mapping[str, Any], context: Any) -> Any:
        if not isinstance(step, ToolCallStep):
            raise ToolCallError(f"Step '{step.id}' is not a tool-call step")

        slug = step.toolkit_slug
        connection_id = context.connection_for(slug) if context is not None else None
        if slug and connection_id is None and slug not in self.no_auth_toolkits:
            raise ToolCallError(f'No connection bound for toolkit "{slug}"')

        logger.debug("Invoking tool %s for step '%s'", step.tool_id, step.id)
        result = self.invoker.invoke(
            step.tool_id,
            dict(inputs),
            connection_id=connection_id,
            user_id=getattr(context, "user_id", None),
        )
        if inspect.isawaitable(result):
            result = await result
        return unwrap_tool_result(result)
