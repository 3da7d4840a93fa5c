"""
Run-time workflow input coercion.

Inputs typed in a form arrive as strings; they must be coerced to the declared
type before any step sees them, and missing required inputs must fail early.
"""
import pytest

from steprail.errors import InputValidationError
from steprail.runtime.input_validation import coerce_inputs
from steprail.schema.models import ValueType, WorkflowInputDefinition


def _declared(value_type: ValueType, **kwargs):
    return [WorkflowInputDefinition(name="value", type=value_type, **kwargs)]


class TestInputCoercion:
    """Test suite for declared-type coercion of run inputs."""

    def test_boolean_to_string(self):
        """Booleans render as lower-case literals."""
        assert coerce_inputs(_declared(ValueType.string), {"value": True}) == {"value": "true"}
        assert coerce_inputs(_declared(ValueType.string), {"value": False}) == {"value": "false"}

    def test_number_to_string(self):
        assert coerce_inputs(_declared(ValueType.string), {"value": 45.67}) == {"value": "45.67"}

    def test_string_to_boolean(self):
        """String representations should coerce to boolean."""
        for literal in ("true", "True", "1", "yes", "on"):
            assert coerce_inputs(_declared(ValueType.boolean), {"value": literal})["value"] is True
        for literal in ("false", "0", "no", "off"):
            assert coerce_inputs(_declared(ValueType.boolean), {"value": literal})["value"] is False

    def test_string_to_integer(self):
        result = coerce_inputs(_declared(ValueType.integer), {"value": " 123 "})["value"]
        assert result == 123
        assert isinstance(result, int)

    def test_string_to_number_keeps_integers(self):
        assert coerce_inputs(_declared(ValueType.number), {"value": "12"})["value"] == 12
        assert isinstance(coerce_inputs(_declared(ValueType.number), {"value": "12"})["value"], int)
        assert coerce_inputs(_declared(ValueType.number), {"value": "45.67"})["value"] == 45.67

    def test_whole_float_to_integer(self):
        assert coerce_inputs(_declared(ValueType.integer), {"value": 3.0})["value"] == 3

    def test_json_literals(self):
        assert coerce_inputs(_declared(ValueType.object), {"value": '{"a": 1}'}) == {"value": {"a": 1}}
        assert coerce_inputs(_declared(ValueType.array), {"value": "[1, 2]"}) == {"value": [1, 2]}

    def test_no_coercion_when_type_matches(self):
        """Values matching their declared type pass through unchanged."""
        assert coerce_inputs(_declared(ValueType.string), {"value": "hello"})["value"] == "hello"
        assert coerce_inputs(_declared(ValueType.boolean), {"value": True})["value"] is True
        assert coerce_inputs(_declared(ValueType.array), {"value": [1]})["value"] == [1]


class TestMissingAndInvalid:
    def test_default_value_is_applied(self):
        declared = _declared(ValueType.integer, default_value="5")
        assert coerce_inputs(declared, {}) == {"value": 5}

    def test_optional_input_may_be_absent(self):
        assert coerce_inputs(_declared(ValueType.string, required=False), {}) == {}

    def test_required_input_missing(self):
        with pytest.raises(InputValidationError, match="Input 'value' is required but was not provided"):
            coerce_inputs(_declared(ValueType.string), {"value": None})

    @pytest.mark.parametrize(
        "value_type, value, detail",
        [
            (ValueType.integer, "12.5", "is not a valid integer"),
            (ValueType.number, "abc", "is not a valid number"),
            (ValueType.boolean, "maybe", "is not a valid boolean literal"),
            (ValueType.object, "[1]", "must decode to an object"),
            (ValueType.array, "{", "invalid JSON literal"),
            (ValueType.string, {"a": 1}, "string-compatible"),
        ],
    )
    def test_uncoercible_values(self, value_type, value, detail):
        with pytest.raises(InputValidationError, match=detail):
            coerce_inputs(_declared(value_type), {"value": value})

    def test_all_problems_are_reported_together(self):
        declared = [
            WorkflowInputDefinition(name="a", type=ValueType.integer),
            WorkflowInputDefinition(name="b", type=ValueType.string),
        ]
        with pytest.raises(InputValidationError) as excinfo:
            coerce_inputs(declared, {"a": "x"})
        assert str(excinfo.value) == "Input 'a' 'x' is not a valid integer; Input 'b' is required but was not provided"

    def test_undeclared_inputs_pass_through(self):
        assert coerce_inputs([], {"extra": 1}) == {"extra": 1}
