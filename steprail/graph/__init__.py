from steprail.graph.model import TOP_LEVEL, ScopeKey, StepGraph

__all__ = ["TOP_LEVEL", "ScopeKey", "StepGraph"]
