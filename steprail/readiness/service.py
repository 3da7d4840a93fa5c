"""
Readiness lookup by workflow id, backing the readiness endpoint contract
``{canExecute, errors, missingConnections, resolvedConnections}``.
"""

from __future__ import annotations

import inspect
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Union

from steprail.compiler.parse import parse_workflow_definition
from steprail.errors import DefinitionError
from steprail.readiness.check import ConnectionRecord, check_readiness
from steprail.schema.models import WorkflowDefinition
from steprail.shared.logger import get_logger

logger = get_logger(__name__)

StoredWorkflow = Union[WorkflowDefinition, Mapping[str, Any], str]


class WorkflowStore(Protocol):
    async def get_workflow(self, workflow_id: str) -> Optional[StoredWorkflow]:
        ...


class ConnectionProvider(Protocol):
    async def list_connections(self, user_id: Optional[str]) -> Iterable[ConnectionRecord | Mapping[str, Any]]:
        ...


class InMemoryWorkflowStore:
    def __init__(self, workflows: Optional[Mapping[str, StoredWorkflow]] = None) -> None:
        self._workflows: Dict[str, StoredWorkflow] = dict(workflows or {})

    def put(self, workflow_id: str, workflow: StoredWorkflow) -> None:
        self._workflows[workflow_id] = workflow

    async def get_workflow(self, workflow_id: str) -> Optional[StoredWorkflow]:
        return self._workflows.get(workflow_id)


class StaticConnectionProvider:
    """Same connection list for every user."""

    def __init__(self, connections: Iterable[ConnectionRecord | Mapping[str, Any]] = ()) -> None:
        self._connections = list(connections)

    async def list_connections(self, user_id: Optional[str]) -> Iterable[ConnectionRecord | Mapping[str, Any]]:
        return list(self._connections)


async def readiness_for_workflow(
    workflow_id: str,
    *,
    store: WorkflowStore,
    connections: ConnectionProvider,
    user_id: Optional[str] = None,
    tables: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    stored = await _maybe_await(store.get_workflow(workflow_id))
    if stored is None:
        return _not_ready([f"Workflow '{workflow_id}' not found"])

    try:
        definition = parse_workflow_definition(stored)
    except DefinitionError as exc:
        logger.warning("Stored workflow '%s' failed to parse", workflow_id)
        return _not_ready(exc.errors)

    records = await _maybe_await(connections.list_connections(user_id))
    return check_readiness(definition, records or (), tables=tables).to_contract()


def _not_ready(errors) -> Dict[str, Any]:
    return {
        "canExecute": False,
        "errors": list(errors),
        "missingConnections": [],
        "resolvedConnections": [],
    }


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
