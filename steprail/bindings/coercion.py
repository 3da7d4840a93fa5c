"""
Type compatibility between a binding source and the target field, and the
best-effort coercion applied at resolution time.

The same table drives editor warnings and runtime behaviour: ``exact`` and
``coercible`` pairs are converted, ``incompatible`` values pass through
unchanged (warn in the editor, never block at runtime).
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Mapping, Optional

from steprail.schema.models import ValueType


class Compatibility(str, Enum):
    exact = "exact"
    coercible = "coercible"
    incompatible = "incompatible"


_COERCIBLE_PAIRS = {
    (ValueType.integer, ValueType.number),
    (ValueType.number, ValueType.integer),
    (ValueType.string, ValueType.number),
    (ValueType.number, ValueType.string),
    (ValueType.boolean, ValueType.string),
    (ValueType.string, ValueType.boolean),
}

_TRUE_WORDS = {"true", "1", "yes", "on"}
_FALSE_WORDS = {"false", "0", "no", "off"}


def check_type_compatibility(source: ValueType | str, target: ValueType | str) -> Compatibility:
    source_type = ValueType(source)
    target_type = ValueType(target)
    if source_type == target_type:
        return Compatibility.exact
    if (source_type, target_type) in _COERCIBLE_PAIRS:
        return Compatibility.coercible
    # Anything can be rendered as a string
    if target_type == ValueType.string:
        return Compatibility.coercible
    return Compatibility.incompatible


def infer_value_type(value: Any) -> Optional[ValueType]:
    if isinstance(value, bool):
        return ValueType.boolean
    if isinstance(value, int):
        return ValueType.integer
    if isinstance(value, float):
        return ValueType.number
    if isinstance(value, str):
        return ValueType.string
    if isinstance(value, Mapping):
        return ValueType.object
    if isinstance(value, (list, tuple)):
        return ValueType.array
    return None


def coerce_value(value: Any, target: ValueType | str | None) -> Any:
    """
    Convert ``value`` towards ``target`` when the pair is coercible.

    Never raises: a value that cannot be parsed, an incompatible pair, an
    unknown runtime type or an untyped target returns ``value`` unchanged.
    """

    if value is None or target is None:
        return value
    target_type = ValueType(target)
    source_type = infer_value_type(value)
    if source_type is None:
        return value

    compatibility = check_type_compatibility(source_type, target_type)
    if compatibility == Compatibility.incompatible:
        return value
    if compatibility == Compatibility.exact:
        return list(value) if isinstance(value, tuple) else value

    if target_type == ValueType.string:
        return _to_string(value)
    if target_type == ValueType.number:
        return _to_number(value)
    if target_type == ValueType.integer:
        return _to_integer(value)
    if target_type == ValueType.boolean:
        return _to_boolean(value)
    return value


def _to_string(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def _to_number(value: Any) -> Any:
    if isinstance(value, (int, float)):
        return value
    text = value.strip()
    try:
        return int(text, 10)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return value


def _to_integer(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _to_boolean(value: Any) -> Any:
    lowered = value.strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    return value
