"""
Static checks for bindings: missing required fields, sources that cannot
have run before the consuming step, unknown workflow inputs and type
mismatches (reported as warnings, never errors).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from steprail.bindings.coercion import Compatibility, check_type_compatibility, infer_value_type
from steprail.bindings.paths import has_each, parse_path, root_key
from steprail.graph.model import StepGraph
from steprail.schema.models import (
    LiteralBinding,
    StepOutputBinding,
    WorkflowDefinition,
    WorkflowInputBinding,
)


@dataclass
class BindingReport:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class OutputUsage:
    output_path: str
    used_by_step_id: str
    used_by_step_name: str
    used_by_field: str


def validate_bindings(definition: WorkflowDefinition, graph: StepGraph | None = None) -> BindingReport:
    graph = graph or StepGraph(definition.steps)
    report = BindingReport()
    input_definitions = definition.input_definitions()

    for step_id, field_bindings in definition.bindings.items():
        step = graph.maybe_get(step_id)
        if step is None:
            report.errors.append(f"Bindings reference unknown step '{step_id}'")
            continue
        predecessors = {s.id for s in graph.predecessors_of(step_id)}

        for field_name, binding in field_bindings.items():
            where = f"{step_id}.{field_name}"
            target = step.input_field(field_name)
            target_type = target.type if target else None

            if isinstance(binding, StepOutputBinding):
                source = graph.maybe_get(binding.source_step_id)
                if source is None:
                    report.errors.append(f"{where}: source step '{binding.source_step_id}' does not exist")
                    continue
                if binding.source_step_id not in predecessors:
                    report.errors.append(
                        f"{where}: source step '{binding.source_step_id}' does not run before '{step_id}'"
                    )
                    continue
                source_field = source.output_field(root_key(binding.source_path) or "")
                if source_field is None or source_field.type is None or len(parse_path(binding.source_path)) != 1:
                    continue
                if has_each(binding.source_path):
                    continue
                _check_types(report, where, source_field.type, target_type)

            elif isinstance(binding, WorkflowInputBinding):
                input_definition = input_definitions.get(binding.workflow_input_name)
                if input_definition is None:
                    report.errors.append(f"{where}: unknown workflow input '{binding.workflow_input_name}'")
                    continue
                _check_types(report, where, input_definition.type, target_type)

            elif isinstance(binding, LiteralBinding):
                literal_type = infer_value_type(binding.literal_value)
                if literal_type is not None:
                    _check_types(report, where, literal_type, target_type)

    for step in graph:
        field_bindings = definition.bindings.get(step.id) or {}
        for input_field in step.input_schema:
            if input_field.required and input_field.name not in field_bindings:
                report.errors.append(
                    f"Step '{step.display_name}' ({step.id}): required input '{input_field.name}' has no binding"
                )
    return report


def find_output_usage(definition: WorkflowDefinition, step_id: str) -> List[OutputUsage]:
    """Every binding that reads the output of ``step_id``."""
    usage: List[OutputUsage] = []
    for target_id, field_bindings in definition.bindings.items():
        for field_name, binding in field_bindings.items():
            if isinstance(binding, StepOutputBinding) and binding.source_step_id == step_id:
                target = definition.get_step(target_id)
                usage.append(
                    OutputUsage(
                        output_path=binding.source_path,
                        used_by_step_id=target_id,
                        used_by_step_name=target.display_name if target else "Unknown Step",
                        used_by_field=field_name,
                    )
                )
    return usage


def _check_types(report: BindingReport, where: str, source_type, target_type) -> None:
    if target_type is None:
        return
    if check_type_compatibility(source_type, target_type) == Compatibility.incompatible:
        report.warnings.append(
            f"{where}: {source_type.value} value bound to {target_type.value} field is incompatible"
        )
