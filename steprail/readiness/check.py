"""
Pre-flight readiness check.

Inspects a definition without running anything: graph structure, bindings,
custom-code syntax, table references and the user connections that tool-call
steps need. A run must refuse to start when ``can_execute`` is false.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from steprail.bindings.validation import validate_bindings
from steprail.graph.model import StepGraph
from steprail.handlers.custom_code import validate_code_syntax
from steprail.schema.models import CustomCodeStep, QueryTableStep, ToolCallStep, WorkflowDefinition, WriteTableStep
from steprail.shared.config import SteprailConfig, config as default_config
from steprail.shared.logger import get_logger

logger = get_logger(__name__)

ACTIVE = "ACTIVE"


class ConnectionRecord(BaseModel):
    """One user connection to a toolkit, as returned by the connection service."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore", frozen=True)

    id: str
    toolkit_slug: str
    status: str = ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status.upper() == ACTIVE


@dataclass
class ReadinessReport:
    can_execute: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    missing_connections: List[str] = field(default_factory=list)
    resolved_connections: List[str] = field(default_factory=list)
    # toolkit slug -> connection id
    connection_bindings: Dict[str, str] = field(default_factory=dict)
    missing_tables: List[str] = field(default_factory=list)

    @property
    def missing_external_bindings(self) -> List[str]:
        return [*self.missing_connections, *(f"table:{table}" for table in self.missing_tables)]

    def to_contract(self) -> Dict[str, Any]:
        return {
            "canExecute": self.can_execute,
            "errors": list(self.errors),
            "missingConnections": list(self.missing_connections),
            "resolvedConnections": list(self.resolved_connections),
        }


def required_connections(
    definition: WorkflowDefinition,
    *,
    no_auth_toolkits: Iterable[str] = (),
) -> List[str]:
    """Distinct toolkit slugs used by tool-call steps, in step order."""
    skipped = set(no_auth_toolkits)
    required: List[str] = []
    for step in definition.steps:
        if isinstance(step, ToolCallStep) and step.toolkit_slug and step.toolkit_slug not in skipped:
            if step.toolkit_slug not in required:
                required.append(step.toolkit_slug)
    return required


def missing_connections_message(missing: List[str]) -> str:
    if len(missing) == 1:
        return f'Missing connection for "{missing[0]}". Please connect this integration first.'
    return f"Missing connections for: {', '.join(missing)}. Please connect these integrations first."


def check_readiness(
    definition: WorkflowDefinition,
    connections: Iterable[ConnectionRecord | Mapping[str, Any]] = (),
    *,
    tables: Optional[Iterable[str]] = None,
    settings: Optional[SteprailConfig] = None,
) -> ReadinessReport:
    settings = settings or default_config
    errors: List[str] = []

    graph = StepGraph(definition.steps)
    errors.extend(graph.validate())

    binding_report = validate_bindings(definition, graph)
    errors.extend(binding_report.errors)
    warnings = list(binding_report.warnings)

    for step in definition.steps:
        if isinstance(step, CustomCodeStep):
            valid, message = validate_code_syntax(step.code)
            if not valid:
                errors.append(f"Step '{step.display_name}' ({step.id}): {message}")

    missing_tables = _check_tables(definition, tables, errors)

    records = [_as_record(record) for record in connections]
    active: Dict[str, str] = {}
    for record in records:
        if record.is_active and record.toolkit_slug not in active:
            active[record.toolkit_slug] = record.id

    required = required_connections(definition, no_auth_toolkits=settings.no_auth_toolkits)
    missing = [slug for slug in required if slug not in active]
    resolved = [slug for slug in required if slug in active]
    if missing:
        errors.append(missing_connections_message(missing))

    report = ReadinessReport(
        can_execute=not errors,
        errors=errors,
        warnings=warnings,
        missing_connections=missing,
        resolved_connections=resolved,
        connection_bindings={slug: active[slug] for slug in resolved},
        missing_tables=missing_tables,
    )
    if not report.can_execute:
        logger.info("Workflow '%s' is not ready: %d problem(s)", definition.id or definition.name, len(errors))
    return report


def _check_tables(definition: WorkflowDefinition, tables: Optional[Iterable[str]], errors: List[str]) -> List[str]:
    known = set(tables) if tables is not None else None
    missing: List[str] = []
    for step in definition.steps:
        if not isinstance(step, (QueryTableStep, WriteTableStep)):
            continue
        if not step.table_ref:
            errors.append(f"Step '{step.display_name}' ({step.id}) has no table selected")
            continue
        if known is not None and step.table_ref not in known and step.table_ref not in missing:
            missing.append(step.table_ref)
            errors.append(f"Table '{step.table_ref}' used by step '{step.display_name}' does not exist")
    return missing


def _as_record(record: ConnectionRecord | Mapping[str, Any]) -> ConnectionRecord:
    if isinstance(record, ConnectionRecord):
        return record
    return ConnectionRecord.model_validate(record)
