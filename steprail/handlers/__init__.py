from steprail.handlers.custom_code import CodeExecutionError, CustomCodeHandler, validate_code_syntax
from steprail.handlers.tables import TableError, TableService, TableStepHandler
from steprail.handlers.tool_call import ToolCallError, ToolCallHandler, ToolInvoker, unwrap_tool_result

__all__ = [
    "CodeExecutionError",
    "CustomCodeHandler",
    "TableError",
    "TableService",
    "TableStepHandler",
    "ToolCallError",
    "ToolCallHandler",
    "ToolInvoker",
    "unwrap_tool_result",
    "validate_code_syntax",
]
