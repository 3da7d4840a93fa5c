from steprail.expr.evaluator import evaluate_condition, normalize_expression, resolve_value

__all__ = ["evaluate_condition", "normalize_expression", "resolve_value"]
