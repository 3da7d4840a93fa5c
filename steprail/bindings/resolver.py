"""
Run-time resolution of a step's input fields from its bindings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from steprail.bindings.coercion import coerce_value
from steprail.bindings.paths import get_path
from steprail.errors import BindingResolutionError
from steprail.schema.models import (
    LiteralBinding,
    StepBase,
    StepOutputBinding,
    ValueType,
    WorkflowInputBinding,
    WorkflowInputDefinition,
)
from steprail.shared.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BindingContext:
    """
    Read-only view a step's bindings resolve against: workflow input values,
    the outputs of steps that already ran in this run, and the declared
    workflow inputs (for defaults).
    """

    inputs: Mapping[str, Any]
    outputs: Mapping[str, Any]
    input_definitions: Mapping[str, WorkflowInputDefinition] = field(default_factory=dict)


def resolve(step: StepBase, bindings: Mapping[str, Any], context: BindingContext) -> Dict[str, Any]:
    """
    Compute concrete input values for ``step``.

    Declared input fields are resolved in schema order and coerced to their
    declared type. Bindings for fields the schema does not declare are
    resolved as-is. A declared field without a binding is left out; required
    ones are reported by the readiness check before a run starts.
    """

    resolved: Dict[str, Any] = {}
    declared = set()
    for input_field in step.input_schema:
        declared.add(input_field.name)
        binding = bindings.get(input_field.name)
        if binding is None:
            continue
        resolved[input_field.name] = resolve_binding(
            binding, context, target_type=input_field.type, step_id=step.id
        )

    for field_name, binding in bindings.items():
        if field_name in declared:
            continue
        resolved[field_name] = resolve_binding(binding, context, target_type=None, step_id=step.id)
    return resolved


def resolve_binding(
    binding: Any,
    context: BindingContext,
    *,
    target_type: Optional[ValueType] = None,
    step_id: str = "",
) -> Any:
    if isinstance(binding, StepOutputBinding):
        if binding.source_step_id not in context.outputs:
            raise BindingResolutionError(
                f"Step '{step_id}' reads output of '{binding.source_step_id}', which has not run"
            )
        value = get_path(context.outputs[binding.source_step_id], binding.source_path)
    elif isinstance(binding, WorkflowInputBinding):
        value = _workflow_input(binding.workflow_input_name, context)
    elif isinstance(binding, LiteralBinding):
        value = binding.literal_value
    else:
        raise BindingResolutionError(f"Unsupported binding {type(binding).__name__} on step '{step_id}'")

    coerced = coerce_value(value, target_type)
    if coerced is value and target_type is not None and value is not None:
        logger.debug("Passing %r through unchanged for %s field on step '%s'", value, target_type.value, step_id)
    return coerced


def _workflow_input(name: str, context: BindingContext) -> Any:
    if name in context.inputs:
        return context.inputs[name]
    definition = context.input_definitions.get(name)
    if definition is not None:
        return definition.default_value
    return None
