from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Mapping

from steprail.errors import InputValidationError
from steprail.schema.models import ValueType, WorkflowDefinition, WorkflowInputDefinition


def coerce_inputs(
    definition: WorkflowDefinition | Iterable[WorkflowInputDefinition],
    provided_inputs: Mapping[str, Any] | None,
) -> Dict[str, Any]:
    """
    Validate and coerce run-time inputs against the declared workflow inputs.

    - Applies the ``defaultValue`` declared on each input.
    - Attempts type coercion for common literal formats (strings for numbers, etc.).
    - Raises InputValidationError if a required input is missing or cannot be coerced.
    """

    declared = definition.inputs if isinstance(definition, WorkflowDefinition) else list(definition)
    incoming: Dict[str, Any] = dict(provided_inputs or {})
    coerced: Dict[str, Any] = {}
    errors: list[str] = []

    for input_definition in declared:
        name = input_definition.name
        has_value = name in incoming and incoming[name] is not None

        if not has_value:
            if input_definition.default_value is not None:
                try:
                    coerced[name] = _coerce_value(input_definition.default_value, input_definition)
                except InputValidationError as exc:
                    errors.append(str(exc))
                continue
            if input_definition.required:
                errors.append(f"Input '{name}' is required but was not provided")
            continue

        try:
            coerced[name] = _coerce_value(incoming[name], input_definition)
        except InputValidationError as exc:
            errors.append(str(exc))

    if errors:
        raise InputValidationError("; ".join(errors))

    # Undeclared inputs pass through untouched.
    for extra_name, extra_value in incoming.items():
        if extra_name not in coerced:
            coerced[extra_name] = extra_value

    return coerced


def _coerce_value(value: Any, definition: WorkflowInputDefinition) -> Any:
    name = definition.name
    expected_type = definition.type

    if expected_type == ValueType.string:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        raise _input_error(name, "must be a string-compatible value")

    if expected_type == ValueType.integer:
        if _is_int(value):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip(), 10)
            except ValueError:
                raise _input_error(name, f"'{value}' is not a valid integer") from None
        raise _input_error(name, "must be an integer")

    if expected_type == ValueType.number:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text, 10)
            except ValueError:
                pass
            try:
                return float(text)
            except ValueError:
                raise _input_error(name, f"'{value}' is not a valid number") from None
        raise _input_error(name, "must be a number")

    if expected_type == ValueType.boolean:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "1", "yes", "on"}:
                return True
            if lowered in {"false", "0", "no", "off"}:
                return False
            raise _input_error(name, f"'{value}' is not a valid boolean literal")
        if _is_int(value) and value in (0, 1):
            return bool(value)
        raise _input_error(name, "must be a boolean")

    if expected_type == ValueType.object:
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            return _parse_json_literal(value, dict, name)
        raise _input_error(name, "must be an object")

    if expected_type == ValueType.array:
        if isinstance(value, list):
            return value
        if isinstance(value, tuple):
            return list(value)
        if isinstance(value, str):
            return _parse_json_literal(value, list, name)
        raise _input_error(name, "must be an array")

    return value


def _parse_json_literal(value: str, expected_type: type, name: str) -> Any:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise _input_error(name, f"invalid JSON literal: {exc.msg}") from exc

    if not isinstance(parsed, expected_type):
        type_name = "object" if expected_type is dict else "array"
        raise _input_error(name, f"JSON literal must decode to an {type_name}")
    return parsed


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _input_error(name: str, detail: str) -> InputValidationError:
    return InputValidationError(f"Input '{name}' {detail}")
