from __future__ import annotations

import pytest

from steprail.errors import ExpressionError
from steprail.expr.evaluator import evaluate_condition, normalize_expression, resolve_value

NAMES = {
    "x": 5,
    "status": "open",
    "order": {"total": 120, "items": [{"sku": "a"}, {"sku": "b"}]},
    "fetch-orders": {"rows": [1, 2, 3], "flagged": False},
    "inputs": {"limit": 2},
}


def test_normalize_rewrites_javascript_outside_strings() -> None:
    assert normalize_expression("a === 1 && !b") == "a == 1  and   not b"
    assert normalize_expression("a !== null || c == undefined") == "a != None  or  c == None"
    assert normalize_expression("s == 'a && !b' && t === true") == "s == 'a && !b'  and  t == True"


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("x > 10", False),
        ("x <= 5", True),
        ("x > 1 && status === 'open'", True),
        ("!(x > 1)", False),
        ("order.total >= 100", True),
        ("order.items[1].sku == 'b'", True),
        ("len(order.items) == 2", True),
        ("order.items.length == 2", True),
        ("order.missing is None", True),
        ("order.missing == null", True),
        ("${fetch-orders.flagged} == false", True),
        ("len(${fetch-orders.rows}) > inputs.limit", True),
        ("'op' in status", True),
        ("x if x > 3 else 0", True),
        ("order.missing > 100", False),
        ("order.missing <= 100", False),
        ("x > 'a'", False),
        ("1 < x < 10", True),
        ("1 < x == 5 >= 6", False),
    ],
)
def test_evaluate_condition(expression: str, expected: bool) -> None:
    assert evaluate_condition(expression, NAMES) is expected


@pytest.mark.parametrize(
    "expression",
    [
        "__import__('os')",
        "open('/etc/passwd')",
        "order.__class__",
        "unknown_name > 1",
        "[i for i in order.items]",
        "lambda: 1",
        "x ** 2",
        "x > ",
        "",
        "   ",
    ],
)
def test_invalid_or_unsafe_conditions_raise(expression: str) -> None:
    with pytest.raises(ExpressionError):
        evaluate_condition(expression, NAMES)


def test_resolve_value_reads_paths_and_expressions() -> None:
    assert resolve_value("${fetch-orders.rows}", NAMES) == [1, 2, 3]
    assert resolve_value("order.items[0]", NAMES) == {"sku": "a"}
    assert resolve_value("order.items[0:1]", NAMES) == [{"sku": "a"}]
    assert resolve_value("[1, 2, x]", NAMES) == [1, 2, 5]
    assert resolve_value("${missing.path}", NAMES) is None
