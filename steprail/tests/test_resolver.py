from __future__ import annotations

import pytest

from steprail.bindings.resolver import BindingContext, resolve
from steprail.bindings.validation import find_output_usage, validate_bindings
from steprail.errors import BindingResolutionError
from steprail.schema.models import ValueType, WorkflowInputDefinition
from steprail.tests.builders import (
    branch,
    definition,
    foreach,
    literal,
    loop,
    output_of,
    tool,
    typed_field,
    workflow_input,
)

AMOUNT = WorkflowInputDefinition(name="amount", type=ValueType.number, required=False, default_value=10)


def _context(outputs=None, inputs=None) -> BindingContext:
    return BindingContext(inputs=inputs or {}, outputs=outputs or {}, input_definitions={"amount": AMOUNT})


class TestResolve:
    def test_step_output_path_is_traversed_and_coerced(self):
        step = tool("b", 1, input_schema=[typed_field("value", ValueType.number)])
        resolved = resolve(step, {"value": output_of("a", "total")}, _context(outputs={"a": {"total": "42"}}))
        assert resolved == {"value": 42}

    def test_missing_intermediate_key_yields_none(self):
        step = tool("b", 1, inputs=["value"])
        resolved = resolve(step, {"value": output_of("a", "order.total")}, _context(outputs={"a": {}}))
        assert resolved == {"value": None}

    def test_source_that_has_not_run_is_fatal(self):
        step = tool("b", 1, inputs=["value"])
        with pytest.raises(BindingResolutionError, match="has not run"):
            resolve(step, {"value": output_of("a", "total")}, _context())

    def test_workflow_input_falls_back_to_default(self):
        step = tool("c", 2, input_schema=[typed_field("amount", ValueType.number)])
        bindings = {"amount": workflow_input("amount")}
        assert resolve(step, bindings, _context()) == {"amount": 10}
        assert resolve(step, bindings, _context(inputs={"amount": 7})) == {"amount": 7}

    def test_unknown_workflow_input_is_none(self):
        step = tool("c", 2, inputs=["other"])
        assert resolve(step, {"other": workflow_input("nope")}, _context()) == {"other": None}

    def test_literal_is_coerced_to_field_type(self):
        step = tool("c", 0, input_schema=[typed_field("flag", ValueType.boolean), typed_field("label", ValueType.string)])
        resolved = resolve(step, {"flag": literal("true"), "label": literal(5)}, _context())
        assert resolved == {"flag": True, "label": "5"}

    def test_incompatible_value_passes_through(self):
        step = tool("c", 0, input_schema=[typed_field("count", ValueType.number)])
        resolved = resolve(step, {"count": literal(["a"])}, _context())
        assert resolved == {"count": ["a"]}

    def test_unbound_fields_are_left_out_and_extra_bindings_kept(self):
        step = tool("c", 0, inputs=["declared"])
        resolved = resolve(step, {"extra": literal(1)}, _context())
        assert resolved == {"extra": 1}


class TestValidateBindings:
    def test_forward_reference_is_rejected(self):
        wf = definition(
            [tool("a", 0, inputs=["x"]), tool("b", 1)],
            bindings={"a": {"x": output_of("b")}},
        )
        report = validate_bindings(wf)
        assert not report.ok
        assert any("does not run before 'a'" in error for error in report.errors)

    def test_sibling_lane_is_not_a_predecessor(self):
        wf = definition(
            [
                branch("br", ["x > 1"], 0),
                tool("left", 0, parent_id="br", branch_condition_index=0),
                tool("right", 0, parent_id="br", branch_condition_index=1, inputs=["v"]),
            ],
            bindings={"right": {"v": output_of("left")}},
        )
        assert any("'left' does not run before 'right'" in error for error in validate_bindings(wf).errors)

    def test_steps_inside_a_container_are_not_visible_after_it(self):
        wf = definition(
            [
                loop("lp", "false", 0),
                tool("body", 0, parent_id="lp"),
                tool("after", 1, inputs=["v"]),
            ],
            bindings={"after": {"v": output_of("body")}},
        )
        assert not validate_bindings(wf).ok

    def test_container_frame_and_earlier_siblings_are_valid_sources(self):
        wf = definition(
            [
                tool("fetch", 0),
                foreach("fe", "${fetch.rows}", 1),
                tool("first", 0, parent_id="fe", inputs=["row"]),
                tool("second", 1, parent_id="fe", inputs=["row", "prev", "all"]),
            ],
            bindings={
                "first": {"row": output_of("fe", "item")},
                "second": {
                    "row": output_of("fe", "item"),
                    "prev": output_of("first"),
                    "all": output_of("fetch", "rows[].id"),
                },
            },
        )
        report = validate_bindings(wf)
        assert report.errors == []

    def test_unknown_sources_and_targets(self):
        wf = definition(
            [tool("a", 0, inputs=["x", "y"])],
            bindings={
                "a": {"x": output_of("ghost"), "y": workflow_input("missing")},
                "nowhere": {"z": literal(1)},
            },
        )
        errors = validate_bindings(wf).errors
        assert any("source step 'ghost' does not exist" in error for error in errors)
        assert any("unknown workflow input 'missing'" in error for error in errors)
        assert any("unknown step 'nowhere'" in error for error in errors)

    def test_required_field_without_binding(self):
        wf = definition([tool("a", 0, name="Send mail", input_schema=[typed_field("to", ValueType.string, required=True)])])
        errors = validate_bindings(wf).errors
        assert errors == ["Step 'Send mail' (a): required input 'to' has no binding"]

    def test_type_mismatches_are_warnings(self):
        wf = definition(
            [
                tool("a", 0, output_schema=[typed_field("total", ValueType.object)]),
                tool("b", 1, input_schema=[typed_field("n", ValueType.number), typed_field("m", ValueType.number)]),
            ],
            bindings={"b": {"n": output_of("a", "total"), "m": literal([1])}},
        )
        report = validate_bindings(wf)
        assert report.ok
        assert len(report.warnings) == 2
        assert all("incompatible" in warning for warning in report.warnings)

    def test_coercible_types_do_not_warn(self):
        wf = definition(
            [
                tool("a", 0, output_schema=[typed_field("total", ValueType.integer)]),
                tool("b", 1, input_schema=[typed_field("n", ValueType.string)]),
            ],
            bindings={"b": {"n": output_of("a", "total")}},
            inputs=[AMOUNT],
        )
        assert validate_bindings(wf).warnings == []


def test_find_output_usage():
    wf = definition(
        [tool("a", 0), tool("b", 1, name="Summarise", inputs=["x", "y"]), tool("c", 2, inputs=["z"])],
        bindings={
            "b": {"x": output_of("a", "total"), "y": literal(1)},
            "c": {"z": output_of("a")},
        },
    )
    usage = find_output_usage(wf, "a")
    assert [(u.used_by_step_id, u.used_by_step_name, u.used_by_field, u.output_path) for u in usage] == [
        ("b", "Summarise", "x", "total"),
        ("c", "tools.c", "z", ""),
    ]
    assert find_output_usage(wf, "c") == []
