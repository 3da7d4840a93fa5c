import json

import pytest

from steprail.compiler import load_workflow_file, parse_workflow_definition
from steprail.errors import DefinitionError
from steprail.schema.models import (
    BranchStep,
    ForEachStep,
    LiteralBinding,
    LoopMode,
    LoopStep,
    StepOutputBinding,
    ToolCallStep,
    ValueType,
    WorkflowInputBinding,
)

EDITOR_PAYLOAD = {
    "id": "wf-orders",
    "name": "Order triage",
    "inputs": [{"name": "threshold", "type": "number", "defaultValue": 100}],
    "steps": [
        {
            "id": "fetch",
            "type": "tool-call",
            "toolId": "SHOP_LIST_ORDERS",
            "toolkitSlug": "shop",
            "listIndex": 0,
            "position": {"x": 10, "y": 20},
            "outputSchema": {"type": "object", "properties": {"orders": {"type": "array"}}},
        },
        {
            "id": "each",
            "type": "control",
            "controlType": "foreach",
            "listIndex": 1,
            "controlConfig": {"arraySource": "${fetch.orders}", "itemVariable": "order", "concurrency": 3},
        },
        {
            "id": "big",
            "type": "control",
            "controlType": "branch",
            "parentId": "each",
            "controlConfig": {"conditions": [{"id": "c1", "expression": "order.total > threshold"}]},
        },
        {
            "id": "flag",
            "type": "tool-call",
            "toolId": "SHOP_FLAG_ORDER",
            "parentId": "big",
            "branchConditionIndex": 0,
            "inputSchema": {
                "type": "object",
                "properties": {"orderId": {"type": "string"}, "note": {"type": ["string", "null"]}},
                "required": ["orderId"],
            },
        },
        {
            "id": "retry",
            "type": "control",
            "controlType": "loop",
            "listIndex": 2,
            "controlConfig": {"type": "until", "condition": "iteration >= 1"},
        },
    ],
    "bindings": {
        "flag": {
            "orderId": {"sourceType": "step-output", "sourceStepId": "each", "sourcePath": "order.id"},
            "note": {"sourceType": "literal", "literalValue": "over threshold"},
        },
        "big": {"limit": {"sourceType": "workflow-input", "workflowInputName": "threshold"}},
    },
}


def test_editor_payload_parses_into_typed_steps():
    wf = parse_workflow_definition(EDITOR_PAYLOAD)

    fetch, each, big, flag, retry = wf.steps
    assert isinstance(fetch, ToolCallStep) and fetch.toolkit_slug == "shop"
    assert fetch.output_field("orders").type == ValueType.array
    assert isinstance(each, ForEachStep)
    assert each.control_config.item_variable == "order"
    assert each.control_config.index_variable == "index"
    assert isinstance(big, BranchStep) and big.control_config.has_else is True
    assert isinstance(retry, LoopStep) and retry.control_config.type == LoopMode.until

    note = flag.input_field("note")
    assert note.type == ValueType.string and note.required is False
    assert flag.input_field("orderId").required is True

    assert isinstance(wf.bindings["flag"]["orderId"], StepOutputBinding)
    assert isinstance(wf.bindings["flag"]["note"], LiteralBinding)
    assert isinstance(wf.bindings["big"]["limit"], WorkflowInputBinding)


def test_json_text_and_dump_are_accepted():
    wf = parse_workflow_definition(json.dumps(EDITOR_PAYLOAD))
    again = parse_workflow_definition(wf.model_dump(mode="json", by_alias=True))
    assert again == wf


def test_unknown_control_type_is_reported():
    payload = {"steps": [{"id": "x", "type": "control", "controlType": "goto", "controlConfig": {}}]}
    with pytest.raises(DefinitionError) as excinfo:
        parse_workflow_definition(payload)
    assert any("goto" in error or "controlType" in error for error in excinfo.value.errors)


def test_duplicate_step_ids_are_rejected():
    payload = {"steps": [{"id": "a", "type": "tool-call", "toolId": "T"}, {"id": "a", "type": "tool-call", "toolId": "T"}]}
    with pytest.raises(DefinitionError, match="duplicate step id 'a'"):
        parse_workflow_definition(payload)


def test_unknown_binding_keys_are_rejected():
    payload = {"bindings": {"a": {"v": {"sourceType": "literal", "literalValue": 1, "oops": True}}}}
    with pytest.raises(DefinitionError):
        parse_workflow_definition(payload)


def test_invalid_json_and_unsupported_payloads():
    with pytest.raises(DefinitionError, match="Invalid workflow JSON payload"):
        parse_workflow_definition("{not json")
    with pytest.raises(DefinitionError, match="Unsupported payload type"):
        parse_workflow_definition(42)


def test_load_workflow_file(tmp_path):
    path = tmp_path / "workflow.json"
    path.write_text(json.dumps(EDITOR_PAYLOAD), encoding="utf-8")
    assert load_workflow_file(path).id == "wf-orders"

    with pytest.raises(DefinitionError, match="Cannot read workflow file"):
        load_workflow_file(tmp_path / "missing.json")
