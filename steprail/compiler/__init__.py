from steprail.compiler.emit_langgraph import RailState, emit_langgraph
from steprail.compiler.parse import load_workflow_file, parse_workflow_definition

__all__ = ["RailState", "emit_langgraph", "load_workflow_file", "parse_workflow_definition"]
