"""
Runtime evaluation of branch/loop conditions and foreach array sources.

Expressions are small Python-flavoured predicates such as ``x > 10`` or
``order.total >= 100 and not ${fetch.data.flagged}``. The editor also emits the
JavaScript spellings (``===``, ``&&``, ``!``, ``true``, ``null``), which are
normalised first. ``${path}`` placeholders are resolved against the same names
with the dot/bracket path rules used by bindings, so step ids that are not
Python identifiers (``fetch-orders``) stay reachable.
"""

from __future__ import annotations

import ast
import operator
import re
from typing import Any, Dict, Iterable, List, Mapping

from steprail.bindings.paths import get_path
from steprail.errors import ExpressionError


_PLACEHOLDER = re.compile(r"\$\{([^{}]*)\}")
_STRING_LITERAL = re.compile(r"(\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*')")
_JS_REWRITES = (
    (re.compile(r"!=="), "!="),
    (re.compile(r"==="), "=="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
    (re.compile(r"\btrue\b"), "True"),
    (re.compile(r"\bfalse\b"), "False"),
    (re.compile(r"\b(?:null|undefined)\b"), "None"),
)

SAFE_FUNCTIONS: Dict[str, Any] = {
    "len": len,
    "any": any,
    "all": all,
    "min": min,
    "max": max,
    "sum": sum,
    "abs": abs,
    "round": round,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
}

_LOOKUP = "__lookup"
_SLICE = "__slice"
_ORDER = "__order"

_ORDERINGS = {
    ast.Lt: ("lt", operator.lt),
    ast.Gt: ("gt", operator.gt),
    ast.LtE: ("le", operator.le),
    ast.GtE: ("ge", operator.ge),
}
_ORDERING_BY_NAME = {name: func for name, func in _ORDERINGS.values()}


def normalize_expression(expression: str) -> str:
    """Rewrite JavaScript operators and literals outside of string literals."""
    pieces: List[str] = []
    for position, piece in enumerate(_STRING_LITERAL.split(expression)):
        # split() with one group puts literals at odd positions
        if position % 2 == 0:
            for pattern, replacement in _JS_REWRITES:
                piece = pattern.sub(replacement, piece)
        pieces.append(piece)
    return "".join(pieces)


class _ExpressionValidator(ast.NodeVisitor):
    ALLOWED_NODES = (
        ast.Expression,
        ast.BoolOp,
        ast.BinOp,
        ast.UnaryOp,
        ast.Compare,
        ast.IfExp,
        ast.Call,
        ast.Name,
        ast.Load,
        ast.Constant,
        ast.Attribute,
        ast.Subscript,
        ast.Slice,
        ast.List,
        ast.Tuple,
        ast.Dict,
    )

    ALLOWED_BINOPS = (
        ast.Add,
        ast.Sub,
        ast.Mult,
        ast.Div,
        ast.FloorDiv,
        ast.Mod,
    )

    ALLOWED_UNARY = (ast.Not, ast.USub, ast.UAdd)

    ALLOWED_CMPS = (
        ast.Eq,
        ast.NotEq,
        ast.Lt,
        ast.Gt,
        ast.LtE,
        ast.GtE,
        ast.In,
        ast.NotIn,
        ast.Is,
        ast.IsNot,
    )

    def __init__(self, allowed_names: Iterable[str]) -> None:
        self.allowed_names = set(allowed_names)

    def generic_visit(self, node: ast.AST) -> None:
        if isinstance(node, (ast.cmpop, ast.operator, ast.boolop, ast.unaryop, ast.expr_context)):
            return
        if not isinstance(node, self.ALLOWED_NODES):
            raise ExpressionError(f"Disallowed expression node: {type(node).__name__}")
        super().generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        if not isinstance(node.func, ast.Name) or node.func.id not in SAFE_FUNCTIONS:
            raise ExpressionError("Only whitelisted helper functions can be used in conditions")
        if node.keywords:
            raise ExpressionError("Keyword arguments are not allowed in conditions")
        for arg in node.args:
            self.visit(arg)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id not in self.allowed_names and node.id not in SAFE_FUNCTIONS:
            raise ExpressionError(f"Unknown variable '{node.id}' in expression")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_"):
            raise ExpressionError(f"Access to '{node.attr}' is not allowed")
        self.visit(node.value)

    def visit_BinOp(self, node: ast.BinOp) -> None:
        if not isinstance(node.op, self.ALLOWED_BINOPS):
            raise ExpressionError(f"Operator '{type(node.op).__name__}' is not allowed")
        self.generic_visit(node)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> None:
        if not isinstance(node.op, self.ALLOWED_UNARY):
            raise ExpressionError(f"Unary op '{type(node.op).__name__}' is not allowed")
        self.generic_visit(node)

    def visit_Compare(self, node: ast.Compare) -> None:
        for op in node.ops:
            if not isinstance(op, self.ALLOWED_CMPS):
                raise ExpressionError(f"Comparator '{type(op).__name__}' is not allowed")
        self.generic_visit(node)


class _LookupRewriter(ast.NodeTransformer):
    """Turn ``a.b`` and ``a[k]`` into total lookups that yield ``None`` when missing."""

    def visit_Attribute(self, node: ast.Attribute) -> ast.AST:
        value = self.visit(node.value)
        return ast.Call(
            func=ast.Name(id=_LOOKUP, ctx=ast.Load()),
            args=[value, ast.Constant(value=node.attr)],
            keywords=[],
        )

    def visit_Subscript(self, node: ast.Subscript) -> ast.AST:
        value = self.visit(node.value)
        key = node.slice
        if isinstance(key, ast.Slice):
            bounds = [self.visit(part) if part is not None else ast.Constant(value=None)
                      for part in (key.lower, key.upper, key.step)]
            key = ast.Call(func=ast.Name(id=_SLICE, ctx=ast.Load()), args=bounds, keywords=[])
        else:
            key = self.visit(key)
        return ast.Call(func=ast.Name(id=_LOOKUP, ctx=ast.Load()), args=[value, key], keywords=[])

    def visit_Compare(self, node: ast.Compare) -> ast.AST:
        operands = [self.visit(node.left)] + [self.visit(comparator) for comparator in node.comparators]
        if not any(type(op) in _ORDERINGS for op in node.ops):
            return ast.Compare(left=operands[0], ops=node.ops, comparators=operands[1:])
        # Chains become pairwise checks joined by ``and``
        checks = []
        for op, left, right in zip(node.ops, operands, operands[1:]):
            if type(op) in _ORDERINGS:
                checks.append(ast.Call(
                    func=ast.Name(id=_ORDER, ctx=ast.Load()),
                    args=[left, ast.Constant(value=_ORDERINGS[type(op)][0]), right],
                    keywords=[],
                ))
            else:
                checks.append(ast.Compare(left=left, ops=[op], comparators=[right]))
        return checks[0] if len(checks) == 1 else ast.BoolOp(op=ast.And(), values=checks)


def _lookup(value: Any, key: Any) -> Any:
    if value is None:
        return None
    if isinstance(key, slice):
        return value[key] if isinstance(value, (list, tuple, str)) else None
    if isinstance(value, Mapping):
        return value.get(key)
    if isinstance(value, (list, tuple, str)):
        if isinstance(key, str) and key.lstrip("-").isdigit():
            key = int(key)
        if isinstance(key, int) and not isinstance(key, bool) and -len(value) <= key < len(value):
            return value[key]
        if key == "length":
            return len(value)
    return None


def _order(left: Any, name: str, right: Any) -> bool:
    """Ordering comparison where a missing (None) or mismatched operand is false, as in JavaScript."""
    if left is None or right is None:
        return False
    try:
        return bool(_ORDERING_BY_NAME[name](left, right))
    except TypeError:
        return False


def _render(expression: str, names: Mapping[str, Any]) -> tuple[str, Dict[str, Any]]:
    bindings: Dict[str, Any] = {}

    def substitute(match: re.Match[str]) -> str:
        placeholder = f"__ref_{len(bindings)}"
        bindings[placeholder] = get_path(names, match.group(1).strip())
        return placeholder

    rendered = _PLACEHOLDER.sub(substitute, expression)
    return normalize_expression(rendered).strip(), bindings


def _evaluate(expression: str, names: Mapping[str, Any], *, label: str) -> Any:
    if not expression or not expression.strip():
        raise ExpressionError(f"{label} expression is empty")

    rendered, bindings = _render(expression, names)
    if not rendered:
        raise ExpressionError(f"{label} expression resolved to empty string")

    try:
        tree = ast.parse(rendered, mode="eval")
    except SyntaxError as exc:
        raise ExpressionError(f"Invalid {label.lower()} expression '{expression}': {exc.msg}") from exc

    identifiers = {name for name in names if isinstance(name, str) and name.isidentifier()}
    validator = _ExpressionValidator(identifiers | set(bindings))
    validator.visit(tree)
    tree = ast.fix_missing_locations(_LookupRewriter().visit(tree))
    compiled = compile(tree, f"<{label.lower()}>", "eval")

    safe_locals: Dict[str, Any] = {name: names[name] for name in identifiers}
    safe_locals.update(SAFE_FUNCTIONS)
    safe_locals.update(bindings)
    safe_locals[_LOOKUP] = _lookup
    safe_locals[_SLICE] = slice
    safe_locals[_ORDER] = _order
    try:
        return eval(compiled, {"__builtins__": {}}, safe_locals)
    except Exception as exc:
        raise ExpressionError(f"Failed to evaluate '{expression}': {exc}") from exc


def evaluate_condition(expression: str, names: Mapping[str, Any]) -> bool:
    return bool(_evaluate(expression, names, label="Condition"))


def resolve_value(source: str, names: Mapping[str, Any]) -> Any:
    """
    Resolve a value source such as a foreach ``arraySource``.

    A lone ``${path}`` placeholder (or a bare dotted path whose root is a known
    name) is looked up directly. Anything else is evaluated as an expression.
    """

    text = (source or "").strip()
    whole = _PLACEHOLDER.fullmatch(text)
    if whole:
        return get_path(names, whole.group(1).strip())
    root = re.split(r"[.\[]", text, maxsplit=1)[0]
    if root and root in names and re.fullmatch(r"[^\s()+*/<>=!&|,:]+", text):
        return get_path(names, text)
    return _evaluate(text, names, label="Value")


__all__ = ["SAFE_FUNCTIONS", "evaluate_condition", "normalize_expression", "resolve_value"]
