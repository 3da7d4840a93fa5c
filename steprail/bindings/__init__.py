from steprail.bindings.coercion import Compatibility, check_type_compatibility, coerce_value
from steprail.bindings.paths import get_path
from steprail.bindings.resolver import BindingContext, resolve, resolve_binding
from steprail.bindings.validation import BindingReport, OutputUsage, find_output_usage, validate_bindings

__all__ = [
    "BindingContext",
    "BindingReport",
    "Compatibility",
    "OutputUsage",
    "check_type_compatibility",
    "coerce_value",
    "find_output_usage",
    "get_path",
    "resolve",
    "resolve_binding",
    "validate_bindings",
]
