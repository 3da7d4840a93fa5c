from steprail.readiness.check import (
    ConnectionRecord,
    ReadinessReport,
    check_readiness,
    missing_connections_message,
    required_connections,
)
from steprail.readiness.service import (
    ConnectionProvider,
    InMemoryWorkflowStore,
    StaticConnectionProvider,
    WorkflowStore,
    readiness_for_workflow,
)

__all__ = [
    "ConnectionProvider",
    "ConnectionRecord",
    "InMemoryWorkflowStore",
    "ReadinessReport",
    "StaticConnectionProvider",
    "WorkflowStore",
    "check_readiness",
    "missing_connections_message",
    "readiness_for_workflow",
    "required_connections",
]
