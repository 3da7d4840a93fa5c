"""
Table steps: delegate reads and writes to a table storage service.
"""

from __future__ import annotations

import inspect
from typing import Any, Mapping, Protocol

from steprail.errors import StepRailError
from steprail.schema.models import QueryTableStep, StepBase, WriteTableStep


class TableError(StepRailError):
    pass


class TableService(Protocol):
    async def query(self, table_ref: str, table_config: Mapping[str, Any], inputs: Mapping[str, Any]) -> Any:
        ...

    async def write(self, table_ref: str, table_config: Mapping[str, Any], inputs: Mapping[str, Any]) -> Any:
        ...


class TableStepHandler:
    """Serves both ``query-table`` and ``write-table`` steps."""

    def __init__(self, service: TableService) -> None:
        self.service = service

    async def execute(self, step: StepBase, inputs: Mapping[str, Any], context: Any) -> Any:
        if isinstance(step, QueryTableStep):
            operation = self.service.query
        elif isinstance(step, WriteTableStep):
            operation = self.service.write
        else:
            raise TableError(f"Step '{step.id}' is not a table step")
        if not step.table_ref:
            raise TableError(f"Step '{step.display_name}' has no table selected")

        result = operation(step.table_ref, dict(step.table_config), dict(inputs))
        if inspect.isawaitable(result):
            result = await result
        return result
